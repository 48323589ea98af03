"""initial_taskhub_schema

Tenants, users, tasks (with subtasks), justifications, evidences, area
rules and the audit log.

Revision ID: a1c0f3d2e801
Revises:
Create Date: 2026-10-19 09:00:00.000000
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect as sa_inspect


# revision identifiers, used by Alembic.
revision = "a1c0f3d2e801"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    bind = op.get_bind()
    existing_tables = set(sa_inspect(bind).get_table_names())

    if "tenants" not in existing_tables:
        op.create_table(
            "tenants",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("name", sa.String(length=200), nullable=False),
            sa.Column("slug", sa.String(length=100), nullable=False),
            sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("settings", sa.JSON(), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("slug"),
        )

    if "users" not in existing_tables:
        op.create_table(
            "users",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("tenant_id", sa.Integer(), nullable=False),
            sa.Column("email", sa.String(length=200), nullable=False),
            sa.Column("name", sa.String(length=200), nullable=False),
            sa.Column("role", sa.String(length=10), nullable=False),
            sa.Column("area", sa.String(length=120), nullable=False),
            sa.Column("can_delete", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("password_hash", sa.String(length=256), nullable=True),
            sa.Column("must_change_password", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("last_login_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["tenant_id"], ["tenants.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("tenant_id", "email", name="uq_user_tenant_email"),
        )
        op.create_index("ix_users_tenant_id", "users", ["tenant_id"])
        op.create_index("ix_users_tenant_area", "users", ["tenant_id", "area"])

    if "tasks" not in existing_tables:
        op.create_table(
            "tasks",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("tenant_id", sa.Integer(), nullable=False),
            sa.Column("competencia_ym", sa.String(length=7), nullable=False),
            sa.Column("recorrencia", sa.String(length=50), nullable=False),
            sa.Column("tipo", sa.String(length=80), nullable=False),
            sa.Column("atividade", sa.String(length=200), nullable=False),
            sa.Column("responsavel_email", sa.String(length=200), nullable=False),
            sa.Column("responsavel_nome", sa.String(length=200), nullable=True),
            sa.Column("area", sa.String(length=120), nullable=False),
            sa.Column("prazo", sa.Date(), nullable=True),
            sa.Column("realizado", sa.Date(), nullable=True),
            sa.Column("status", sa.String(length=30), nullable=False),
            sa.Column("observacoes", sa.Text(), nullable=True),
            sa.Column("parent_task_id", sa.String(length=36), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
            sa.Column("created_by", sa.String(length=200), nullable=True),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
            sa.Column("updated_by", sa.String(length=200), nullable=True),
            sa.Column("prazo_modified_by", sa.String(length=200), nullable=True),
            sa.Column("realizado_por", sa.String(length=200), nullable=True),
            sa.Column("justification_blocked", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("justification_blocked_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("justification_blocked_by", sa.String(length=200), nullable=True),
            sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("deleted_by", sa.String(length=200), nullable=True),
            sa.ForeignKeyConstraint(["tenant_id"], ["tenants.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["parent_task_id"], ["tasks.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_tasks_tenant_id", "tasks", ["tenant_id"])
        op.create_index("ix_tasks_parent_task_id", "tasks", ["parent_task_id"])
        op.create_index("ix_tasks_deleted_at", "tasks", ["deleted_at"])
        op.create_index("ix_tasks_tenant_area", "tasks", ["tenant_id", "area"])
        op.create_index("ix_tasks_tenant_responsavel", "tasks", ["tenant_id", "responsavel_email"])
        op.create_index("ix_tasks_tenant_competencia", "tasks", ["tenant_id", "competencia_ym"])

    if "task_justifications" not in existing_tables:
        op.create_table(
            "task_justifications",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("tenant_id", sa.Integer(), nullable=False),
            sa.Column("task_id", sa.String(length=36), nullable=False),
            sa.Column("description", sa.Text(), nullable=False),
            sa.Column("status", sa.String(length=20), nullable=False),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
            sa.Column("created_by", sa.String(length=200), nullable=False),
            sa.Column("reviewed_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("reviewed_by", sa.String(length=200), nullable=True),
            sa.Column("review_comment", sa.Text(), nullable=True),
            sa.ForeignKeyConstraint(["tenant_id"], ["tenants.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["task_id"], ["tasks.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_task_justifications_tenant_id", "task_justifications", ["tenant_id"])
        op.create_index("ix_task_justifications_tenant_task", "task_justifications", ["tenant_id", "task_id"])
        op.create_index("ix_task_justifications_tenant_status", "task_justifications", ["tenant_id", "status"])
        # At most one pending justification per task.
        op.create_index(
            "uq_task_justifications_one_pending",
            "task_justifications",
            ["tenant_id", "task_id"],
            unique=True,
            sqlite_where=sa.text("status = 'pending'"),
            postgresql_where=sa.text("status = 'pending'"),
        )

    if "justification_evidences" not in existing_tables:
        op.create_table(
            "justification_evidences",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("tenant_id", sa.Integer(), nullable=False),
            sa.Column("justification_id", sa.String(length=36), nullable=False),
            sa.Column("file_name", sa.String(length=255), nullable=False),
            sa.Column("file_path", sa.String(length=1024), nullable=False),
            sa.Column("mime_type", sa.String(length=120), nullable=False),
            sa.Column("file_size", sa.Integer(), nullable=False),
            sa.Column("uploaded_at", sa.DateTime(timezone=True), nullable=False),
            sa.Column("uploaded_by", sa.String(length=200), nullable=False),
            sa.ForeignKeyConstraint(["tenant_id"], ["tenants.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["justification_id"], ["task_justifications.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("justification_id", name="uq_justification_evidences_one_per_justification"),
        )
        op.create_index("ix_justification_evidences_tenant_id", "justification_evidences", ["tenant_id"])

    if "rules" not in existing_tables:
        op.create_table(
            "rules",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("tenant_id", sa.Integer(), nullable=False),
            sa.Column("area", sa.String(length=120), nullable=False),
            sa.Column("allowed_recorrencias", sa.JSON(), nullable=False),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("updated_by", sa.String(length=200), nullable=True),
            sa.ForeignKeyConstraint(["tenant_id"], ["tenants.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("tenant_id", "area", name="uq_rules_tenant_area"),
        )
        op.create_index("ix_rules_tenant_id", "rules", ["tenant_id"])

    if "audit_logs" not in existing_tables:
        op.create_table(
            "audit_logs",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("tenant_id", sa.Integer(), nullable=True),
            sa.Column("entity_type", sa.String(length=30), nullable=False),
            sa.Column("entity_id", sa.String(length=36), nullable=False),
            sa.Column("action", sa.String(length=60), nullable=False),
            sa.Column("actor", sa.String(length=200), nullable=False),
            sa.Column("actor_user_id", sa.Integer(), nullable=True),
            sa.Column("diff_json", sa.Text(), nullable=True),
            sa.Column("timestamp", sa.DateTime(timezone=True), nullable=False),
            sa.ForeignKeyConstraint(["tenant_id"], ["tenants.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["actor_user_id"], ["users.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_audit_logs_tenant_id", "audit_logs", ["tenant_id"])
        op.create_index("ix_audit_logs_actor_user_id", "audit_logs", ["actor_user_id"])
        op.create_index("idx_audit_entity", "audit_logs", ["entity_type", "entity_id"])
        op.create_index("idx_audit_actor", "audit_logs", ["actor"])
        op.create_index("idx_audit_ts", "audit_logs", ["timestamp"])


def downgrade():
    op.drop_table("audit_logs")
    op.drop_table("rules")
    op.drop_table("justification_evidences")
    op.drop_index("uq_task_justifications_one_pending", table_name="task_justifications")
    op.drop_table("task_justifications")
    op.drop_table("tasks")
    op.drop_table("users")
    op.drop_table("tenants")
