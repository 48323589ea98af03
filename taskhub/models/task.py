"""
TaskHub
Task domain model.

A Task is one occurrence of a recurring obligation for a reference month
(competencia_ym). Subtasks hang one level below a top-level task and share
its month, recurrence, type, area and due date.

Files attached to an open task live in TaskEvidence; late-completion
evidence belongs to the justification instead (models/justification.py).

``status`` is persisted for filtering and reporting but is always a function
of (prazo, realizado, today); see services/task_lifecycle.py.
"""

from datetime import date

from taskhub.models import db
from taskhub.models.base import TenantModel, new_uuid, utcnow
from taskhub.models.soft_delete import SoftDeleteMixin
from taskhub.services.task_lifecycle import derive_status


class Task(SoftDeleteMixin, TenantModel):
    __tablename__ = "tasks"
    __table_args__ = (
        db.Index("ix_tasks_tenant_area", "tenant_id", "area"),
        db.Index("ix_tasks_tenant_responsavel", "tenant_id", "responsavel_email"),
        db.Index("ix_tasks_tenant_competencia", "tenant_id", "competencia_ym"),
    )

    id = db.Column(db.String(36), primary_key=True, default=new_uuid)
    competencia_ym = db.Column(db.String(7), nullable=False)
    recorrencia = db.Column(db.String(50), nullable=False)
    tipo = db.Column(db.String(80), nullable=False)
    atividade = db.Column(db.String(200), nullable=False)
    responsavel_email = db.Column(db.String(200), nullable=False)
    responsavel_nome = db.Column(db.String(200))
    area = db.Column(db.String(120), nullable=False)
    prazo = db.Column(db.Date)
    realizado = db.Column(db.Date)
    status = db.Column(db.String(30), nullable=False)
    observacoes = db.Column(db.Text)
    parent_task_id = db.Column(
        db.String(36),
        db.ForeignKey("tasks.id", ondelete="CASCADE"),
        nullable=True,
        index=True,
    )

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    created_by = db.Column(db.String(200))
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)
    updated_by = db.Column(db.String(200))
    prazo_modified_by = db.Column(db.String(200))
    realizado_por = db.Column(db.String(200))

    # Punitive flag set by refuse_and_block; cleared only by an explicit unblock
    justification_blocked = db.Column(db.Boolean, nullable=False, default=False)
    justification_blocked_at = db.Column(db.DateTime(timezone=True))
    justification_blocked_by = db.Column(db.String(200))

    evidences = db.relationship(
        "TaskEvidence",
        back_populates="task",
        cascade="all, delete-orphan",
        order_by="TaskEvidence.uploaded_at.desc()",
    )

    @property
    def is_subtask(self) -> bool:
        return self.parent_task_id is not None

    def live_status(self, today: date | None = None) -> str:
        return derive_status(self.prazo, self.realizado, today).value

    def to_dict(self, today: date | None = None, include_evidences: bool = False) -> dict:
        result = {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "competencia_ym": self.competencia_ym,
            "recorrencia": self.recorrencia,
            "tipo": self.tipo,
            "atividade": self.atividade,
            "responsavel_email": self.responsavel_email,
            "responsavel_nome": self.responsavel_nome,
            "area": self.area,
            "prazo": self.prazo.isoformat() if self.prazo else None,
            "realizado": self.realizado.isoformat() if self.realizado else None,
            "status": self.live_status(today),
            "observacoes": self.observacoes,
            "parent_task_id": self.parent_task_id,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "created_by": self.created_by,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
            "updated_by": self.updated_by,
            "prazo_modified_by": self.prazo_modified_by,
            "realizado_por": self.realizado_por,
            "justification_blocked": bool(self.justification_blocked),
            "justification_blocked_at": (
                self.justification_blocked_at.isoformat() if self.justification_blocked_at else None
            ),
            "justification_blocked_by": self.justification_blocked_by,
        }
        if include_evidences:
            result["evidences"] = [e.to_dict() for e in self.evidences]
        return result

    def __repr__(self):
        return f"<Task {self.id}: {self.atividade!r} [{self.status}]>"


class TaskEvidence(TenantModel):
    """A working file attached to a task while it is still open."""

    __tablename__ = "task_evidences"
    __table_args__ = (
        db.Index("ix_task_evidences_tenant_task", "tenant_id", "task_id"),
    )

    id = db.Column(db.String(36), primary_key=True, default=new_uuid)
    task_id = db.Column(db.String(36), db.ForeignKey("tasks.id", ondelete="CASCADE"), nullable=False)
    file_name = db.Column(db.String(255), nullable=False)
    file_path = db.Column(db.String(1024), nullable=False)
    mime_type = db.Column(db.String(120), nullable=False)
    file_size = db.Column(db.Integer, nullable=False, default=0)
    uploaded_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    uploaded_by = db.Column(db.String(200), nullable=False)

    task = db.relationship("Task", back_populates="evidences")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "task_id": self.task_id,
            "file_name": self.file_name,
            "mime_type": self.mime_type,
            "file_size": self.file_size,
            "uploaded_at": self.uploaded_at.isoformat() if self.uploaded_at else None,
            "uploaded_by": self.uploaded_by,
        }
