"""task evidences: files attached to open tasks

Revision ID: b7e42c9d1f03
Revises: a1c0f3d2e801
Create Date: 2026-10-19 15:00:00.000000
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect as sa_inspect


# revision identifiers, used by Alembic.
revision = "b7e42c9d1f03"
down_revision = "a1c0f3d2e801"
branch_labels = None
depends_on = None


def upgrade():
    if "task_evidences" in sa_inspect(op.get_bind()).get_table_names():
        return
    op.create_table(
        "task_evidences",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("tenant_id", sa.Integer(), nullable=False),
        sa.Column("task_id", sa.String(length=36), nullable=False),
        sa.Column("file_name", sa.String(length=255), nullable=False),
        sa.Column("file_path", sa.String(length=1024), nullable=False),
        sa.Column("mime_type", sa.String(length=120), nullable=False),
        sa.Column("file_size", sa.Integer(), nullable=False),
        sa.Column("uploaded_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("uploaded_by", sa.String(length=200), nullable=False),
        sa.ForeignKeyConstraint(["tenant_id"], ["tenants.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["task_id"], ["tasks.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_task_evidences_tenant_id", "task_evidences", ["tenant_id"])
    op.create_index("ix_task_evidences_tenant_task", "task_evidences", ["tenant_id", "task_id"])


def downgrade():
    op.drop_index("ix_task_evidences_tenant_task", table_name="task_evidences")
    op.drop_index("ix_task_evidences_tenant_id", table_name="task_evidences")
    op.drop_table("task_evidences")
