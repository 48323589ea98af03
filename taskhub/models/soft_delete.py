"""
Soft Delete Mixin.

Adds `deleted_at` / `deleted_by` columns. Deleted tasks stay in the table for
history; scoped lookups and listings filter on ``deleted_at IS NULL``.

Usage:
    class Task(SoftDeleteMixin, TenantModel):
        ...

    task.soft_delete(by="leader@acme.com")
    db.session.commit()
"""

from datetime import UTC, datetime

from taskhub.models import db


class SoftDeleteMixin:
    """Mixin that adds soft delete support to any SQLAlchemy model."""

    deleted_at = db.Column(db.DateTime(timezone=True), nullable=True, default=None, index=True)
    deleted_by = db.Column(db.String(200), nullable=True)

    def soft_delete(self, by: str | None = None):
        """Mark this record as deleted."""
        self.deleted_at = datetime.now(UTC)
        self.deleted_by = by

    @property
    def is_deleted(self):
        return self.deleted_at is not None
