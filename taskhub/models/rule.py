"""
TaskHub
Recurrence rule model.

One row per (tenant, area) listing the recurrences a USER of that area may
choose when creating their own tasks. Administration of these rows is done
outside this service; the application only reads them.
"""

from taskhub.models import db
from taskhub.models.base import TenantModel, utcnow


class Rule(TenantModel):
    __tablename__ = "rules"
    __table_args__ = (
        db.UniqueConstraint("tenant_id", "area", name="uq_rules_tenant_area"),
    )

    id = db.Column(db.Integer, primary_key=True)
    area = db.Column(db.String(120), nullable=False)
    allowed_recorrencias = db.Column(db.JSON, nullable=False, default=list)
    updated_at = db.Column(db.DateTime(timezone=True), default=utcnow, onupdate=utcnow)
    updated_by = db.Column(db.String(200))

    def to_dict(self):
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "area": self.area,
            "allowed_recorrencias": list(self.allowed_recorrencias or []),
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
            "updated_by": self.updated_by,
        }
