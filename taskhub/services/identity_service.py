"""
Identity Service: login, tenant lookup and read-only impersonation.

Login errors are distinct codes so the UI can react precisely:
    NO_USER          e-mail not registered in the tenant          401
    INACTIVE         account disabled                             403
    RESET_REQUIRED   password must be (re)defined before login    403
    BAD_CREDENTIALS  wrong password                               401

Impersonation lets an ADMIN of the reserved system tenant (a platform
administrator) view a tenant exactly as one of its users sees it. The
resulting token is marked ``impersonating`` and every write made with it is
rejected before reaching business logic.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime

from flask import current_app
from sqlalchemy import select

from taskhub.core.actor import Actor
from taskhub.core.exceptions import AuthError, ForbiddenError, NotFoundError, ValidationError
from taskhub.models import db
from taskhub.models.auth import ROLE_ADMIN, Tenant, User
from taskhub.services.helpers.scoped_queries import get_scoped
from taskhub.services.jwt_service import generate_access_token
from taskhub.utils.crypto import hash_password, verify_password

logger = logging.getLogger(__name__)


def _system_slug() -> str:
    return current_app.config.get("SYSTEM_TENANT_SLUG", "system")


def get_tenant_by_slug(slug: str) -> Tenant | None:
    """Active tenant by slug, or None."""
    if not slug:
        return None
    return db.session.execute(
        select(Tenant).where(Tenant.slug == slug, Tenant.is_active.is_(True))
    ).scalar_one_or_none()


def is_system_tenant(tenant: Tenant) -> bool:
    return tenant is not None and tenant.slug == _system_slug()


def is_platform_admin(user: User) -> bool:
    return user.role == ROLE_ADMIN and is_system_tenant(user.tenant)


def authenticate(tenant: Tenant, email: str, password: str) -> User:
    """Check credentials inside *tenant*. Returns the user on success."""
    email = (email or "").strip().lower()
    if not email or not password:
        raise ValidationError("E-mail e senha são obrigatórios")

    user = db.session.execute(
        select(User).where(User.tenant_id == tenant.id, User.email == email)
    ).scalar_one_or_none()
    if user is None:
        raise AuthError("NO_USER", "Usuário não encontrado", 401)
    if not user.is_active:
        raise AuthError("INACTIVE", "Usuário inativo", 403)
    if user.must_change_password or not user.password_hash:
        raise AuthError("RESET_REQUIRED", "É necessário redefinir a senha", 403)
    if not verify_password(password, user.password_hash):
        raise AuthError("BAD_CREDENTIALS", "Credenciais inválidas", 401)

    user.last_login_at = datetime.now(UTC)
    db.session.commit()
    logger.info("Login succeeded", extra={"tenant_id": tenant.id, "actor": user.email})
    return user


def issue_login_token(user: User) -> str:
    return generate_access_token(user, platform_admin=is_platform_admin(user))


def get_current_user(actor: Actor) -> User:
    return get_scoped(User, actor.user_id, tenant_id=actor.tenant_id, label="Usuário")


def start_impersonation(actor: Actor, user_id: int) -> tuple[User, str]:
    """Issue a read-only token acting as *user_id* of the actor's tenant.

    The platform administrator selects the target tenant through the normal
    tenant resolution (X-Tenant-Slug), so the lookup stays tenant-scoped.
    """
    if not actor.platform_admin:
        raise ForbiddenError("Apenas administradores da plataforma podem impersonar")
    if actor.impersonating:
        raise ValidationError("Sessão de impersonação já ativa")

    target = get_scoped(User, user_id, tenant_id=actor.tenant_id, label="Usuário")
    if is_system_tenant(target.tenant):
        raise ForbiddenError("Usuários do sistema não podem ser impersonados")
    if not target.is_active or not target.tenant.is_active:
        raise ForbiddenError("Usuário ou empresa inativos")

    token = generate_access_token(target, impersonator_id=actor.user_id)
    logger.info(
        "Impersonation started",
        extra={
            "tenant_id": target.tenant_id,
            "actor": actor.email,
            "event_type": "impersonation_start",
        },
    )
    return target, token


def stop_impersonation(actor: Actor) -> tuple[User, str]:
    """End an impersonation session and return a fresh token for the admin."""
    if not actor.impersonating or actor.impersonator_id is None:
        raise ValidationError("Nenhuma sessão de impersonação ativa")

    system = get_tenant_by_slug(_system_slug())
    if system is None:
        raise NotFoundError(resource="Tenant", resource_id=_system_slug())
    admin = get_scoped(User, actor.impersonator_id, tenant_id=system.id, label="Usuário")
    if not admin.is_active:
        raise AuthError("INACTIVE", "Usuário inativo", 403)

    logger.info(
        "Impersonation stopped",
        extra={"tenant_id": actor.tenant_id, "actor": admin.email, "event_type": "impersonation_stop"},
    )
    return admin, issue_login_token(admin)


def seed_system_admin(email: str, password: str, name: str = "Administrador") -> User:
    """Create the reserved system tenant and a platform administrator (idempotent)."""
    slug = _system_slug()
    tenant = db.session.execute(select(Tenant).where(Tenant.slug == slug)).scalar_one_or_none()
    if tenant is None:
        tenant = Tenant(name="Sistema", slug=slug, is_active=True)
        db.session.add(tenant)
        db.session.flush()

    email = email.strip().lower()
    user = db.session.execute(
        select(User).where(User.tenant_id == tenant.id, User.email == email)
    ).scalar_one_or_none()
    if user is None:
        user = User(tenant_id=tenant.id, email=email, name=name, role=ROLE_ADMIN, area="Sistema", can_delete=True)
        db.session.add(user)
    user.password_hash = hash_password(password)
    user.must_change_password = False
    user.is_active = True
    db.session.commit()
    logger.info("System admin seeded", extra={"tenant_id": tenant.id, "actor": email})
    return user
