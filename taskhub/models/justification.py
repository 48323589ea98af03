"""
TaskHub
Late-completion justification models.

Models:
    - TaskJustification:     a responsible user's explanation for finishing a
                             task after its due date, reviewed by a leader.
    - JustificationEvidence: the single file attached to a justification.

Invariants held by the schema itself, so concurrent requests cannot break
them even when both pass the service-level pre-checks:
    - at most one ``pending`` justification per (tenant_id, task_id):
      partial UNIQUE index uq_task_justifications_one_pending
    - at most one evidence per justification: UNIQUE(justification_id)
"""

from taskhub.models import db
from taskhub.models.base import TenantModel, new_uuid, utcnow

JUSTIFICATION_PENDING = "pending"
JUSTIFICATION_APPROVED = "approved"
JUSTIFICATION_REFUSED = "refused"
JUSTIFICATION_STATUSES = (JUSTIFICATION_PENDING, JUSTIFICATION_APPROVED, JUSTIFICATION_REFUSED)


class TaskJustification(TenantModel):
    __tablename__ = "task_justifications"
    __table_args__ = (
        db.Index("ix_task_justifications_tenant_task", "tenant_id", "task_id"),
        db.Index("ix_task_justifications_tenant_status", "tenant_id", "status"),
        db.Index(
            "uq_task_justifications_one_pending",
            "tenant_id",
            "task_id",
            unique=True,
            sqlite_where=db.text("status = 'pending'"),
            postgresql_where=db.text("status = 'pending'"),
        ),
    )

    id = db.Column(db.String(36), primary_key=True, default=new_uuid)
    task_id = db.Column(
        db.String(36),
        db.ForeignKey("tasks.id", ondelete="CASCADE"),
        nullable=False,
    )
    description = db.Column(db.Text, nullable=False)
    status = db.Column(db.String(20), nullable=False, default=JUSTIFICATION_PENDING)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    created_by = db.Column(db.String(200), nullable=False)
    reviewed_at = db.Column(db.DateTime(timezone=True))
    reviewed_by = db.Column(db.String(200))
    review_comment = db.Column(db.Text)

    task = db.relationship("Task", lazy="joined")
    evidences = db.relationship(
        "JustificationEvidence",
        back_populates="justification",
        cascade="all, delete-orphan",
        order_by="JustificationEvidence.uploaded_at",
    )

    def to_dict(self, include_evidences: bool = True) -> dict:
        result = {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "task_id": self.task_id,
            "description": self.description,
            "status": self.status,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "created_by": self.created_by,
            "reviewed_at": self.reviewed_at.isoformat() if self.reviewed_at else None,
            "reviewed_by": self.reviewed_by,
            "review_comment": self.review_comment,
        }
        if include_evidences:
            result["evidences"] = [e.to_dict() for e in self.evidences]
        return result

    def __repr__(self):
        return f"<TaskJustification {self.id}: task={self.task_id} [{self.status}]>"


class JustificationEvidence(TenantModel):
    __tablename__ = "justification_evidences"
    __table_args__ = (
        db.UniqueConstraint("justification_id", name="uq_justification_evidences_one_per_justification"),
    )

    id = db.Column(db.String(36), primary_key=True, default=new_uuid)
    justification_id = db.Column(
        db.String(36),
        db.ForeignKey("task_justifications.id", ondelete="CASCADE"),
        nullable=False,
    )
    file_name = db.Column(db.String(255), nullable=False)
    file_path = db.Column(db.String(1024), nullable=False)
    mime_type = db.Column(db.String(120), nullable=False)
    file_size = db.Column(db.Integer, nullable=False)
    uploaded_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    uploaded_by = db.Column(db.String(200), nullable=False)

    justification = db.relationship("TaskJustification", back_populates="evidences")

    def to_dict(self) -> dict:
        # file_path is internal; clients download through the API
        return {
            "id": self.id,
            "justification_id": self.justification_id,
            "file_name": self.file_name,
            "mime_type": self.mime_type,
            "file_size": self.file_size,
            "uploaded_at": self.uploaded_at.isoformat() if self.uploaded_at else None,
            "uploaded_by": self.uploaded_by,
        }
