"""
TenantModel: Abstract base class for tenant-scoped models.

Every table that belongs to a customer workspace inherits from TenantModel
instead of db.Model directly. This adds:
  - tenant_id FK column with index
"""

import uuid
from datetime import UTC, datetime

from taskhub.models import db


def utcnow():
    return datetime.now(UTC)


def new_uuid():
    return str(uuid.uuid4())


class TenantModel(db.Model):
    """Abstract base for tenant-scoped tables."""
    __abstract__ = True

    tenant_id = db.Column(
        db.Integer,
        db.ForeignKey("tenants.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
