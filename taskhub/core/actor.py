"""
Actor model: who is making the request, resolved once per request.

The role is a closed tagged variant:

    AdminRole()                 tenant-wide
    LeaderRole(area)            scoped to one area
    UserRole(email, area)       scoped to tasks they are responsible for

Every consumer matches on the variant with an isinstance chain that ends by
raising ``unknown_role(role)``; a new role must be handled everywhere before
it can grant anything.
"""

from __future__ import annotations

from dataclasses import dataclass

from taskhub.models.auth import ROLE_ADMIN, ROLE_LEADER, ROLE_USER


@dataclass(frozen=True)
class AdminRole:
    name = ROLE_ADMIN


@dataclass(frozen=True)
class LeaderRole:
    area: str
    name = ROLE_LEADER


@dataclass(frozen=True)
class UserRole:
    email: str
    area: str
    name = ROLE_USER


Role = AdminRole | LeaderRole | UserRole


def unknown_role(role) -> TypeError:
    return TypeError(f"Unhandled role variant: {role!r}")


def build_role(role_name: str, email: str, area: str | None) -> Role:
    """Construct the role variant from persisted/claimed fields."""
    if role_name == ROLE_ADMIN:
        return AdminRole()
    if role_name == ROLE_LEADER:
        return LeaderRole(area=area or "")
    if role_name == ROLE_USER:
        return UserRole(email=(email or "").lower(), area=area or "")
    raise ValueError(f"Unknown role {role_name!r}")


@dataclass(frozen=True)
class Actor:
    """Authenticated principal bound to exactly one tenant."""

    user_id: int
    tenant_id: int
    email: str
    name: str
    role: Role
    area: str | None = None
    can_delete: bool = False
    impersonating: bool = False
    impersonator_id: int | None = None
    platform_admin: bool = False

    @property
    def role_name(self) -> str:
        return self.role.name

    @property
    def is_admin(self) -> bool:
        return isinstance(self.role, AdminRole)

    @property
    def is_leader(self) -> bool:
        return isinstance(self.role, LeaderRole)

    @property
    def is_user(self) -> bool:
        return isinstance(self.role, UserRole)

    @classmethod
    def from_user(cls, user, *, impersonating: bool = False, impersonator_id: int | None = None,
                  platform_admin: bool = False) -> Actor:
        return cls(
            user_id=user.id,
            tenant_id=user.tenant_id,
            email=user.email.lower(),
            name=user.name,
            role=build_role(user.role, user.email, user.area),
            area=user.area,
            can_delete=bool(user.can_delete),
            impersonating=impersonating,
            impersonator_id=impersonator_id,
            platform_admin=platform_admin,
        )

    @classmethod
    def from_claims(cls, claims: dict) -> Actor:
        """Build from decoded JWT claims (see jwt_service.generate_access_token)."""
        email = (claims.get("email") or "").lower()
        return cls(
            user_id=int(claims["sub"]),
            tenant_id=int(claims["tenant_id"]),
            email=email,
            name=claims.get("name") or email,
            role=build_role(claims.get("role"), email, claims.get("area")),
            area=claims.get("area"),
            can_delete=bool(claims.get("can_delete")),
            impersonating=bool(claims.get("impersonating")),
            impersonator_id=claims.get("impersonator_id"),
            platform_admin=bool(claims.get("platform_admin")),
        )

    def to_dict(self) -> dict:
        return {
            "user_id": self.user_id,
            "tenant_id": self.tenant_id,
            "email": self.email,
            "name": self.name,
            "role": self.role_name,
            "area": self.area,
            "can_delete": self.can_delete,
            "impersonating": self.impersonating,
            "impersonator_id": self.impersonator_id,
            "platform_admin": self.platform_admin,
        }
