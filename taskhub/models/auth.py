"""
TaskHub
Identity models.

Models:
    - Tenant: an isolated customer workspace, addressed by slug.
    - User:   a person inside one tenant with a role tier and an area.
"""

from datetime import UTC, datetime

from taskhub.models import db

ROLE_ADMIN = "ADMIN"
ROLE_LEADER = "LEADER"
ROLE_USER = "USER"
VALID_ROLES = (ROLE_ADMIN, ROLE_LEADER, ROLE_USER)


# ═══════════════════════════════════════════════════════════════
# 1. TENANTS
# ═══════════════════════════════════════════════════════════════
class Tenant(db.Model):
    __tablename__ = "tenants"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    slug = db.Column(db.String(100), unique=True, nullable=False)
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    settings = db.Column(db.JSON, default=dict)
    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(UTC))

    users = db.relationship("User", back_populates="tenant", lazy="dynamic")

    @property
    def timezone(self) -> str | None:
        return (self.settings or {}).get("timezone")

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "slug": self.slug,
            "is_active": self.is_active,
            "settings": self.settings or {},
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


# ═══════════════════════════════════════════════════════════════
# 2. USERS
# ═══════════════════════════════════════════════════════════════
class User(db.Model):
    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(
        db.Integer, db.ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False
    )
    email = db.Column(db.String(200), nullable=False)  # stored lower-case
    name = db.Column(db.String(200), nullable=False)
    role = db.Column(db.String(10), nullable=False, default=ROLE_USER)
    area = db.Column(db.String(120), nullable=False)
    can_delete = db.Column(db.Boolean, nullable=False, default=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    password_hash = db.Column(db.String(256))
    must_change_password = db.Column(db.Boolean, nullable=False, default=False)
    last_login_at = db.Column(db.DateTime(timezone=True))
    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(UTC))

    # Composite unique: same email can exist in different tenants
    __table_args__ = (
        db.UniqueConstraint("tenant_id", "email", name="uq_user_tenant_email"),
        db.Index("ix_users_tenant_id", "tenant_id"),
        db.Index("ix_users_tenant_area", "tenant_id", "area"),
    )

    tenant = db.relationship("Tenant", back_populates="users")

    def to_dict(self):
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "email": self.email,
            "name": self.name,
            "role": self.role,
            "area": self.area,
            "can_delete": bool(self.can_delete),
            "is_active": bool(self.is_active),
            "must_change_password": bool(self.must_change_password),
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<User {self.id}: {self.email} ({self.role})>"
