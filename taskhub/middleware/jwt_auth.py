"""
JWT Auth Middleware: turns the Bearer token into ``g.actor``.

Rules:
  - No Authorization header: g.actor stays None; protected routes answer
    401 UNAUTHORIZED through require_actor().
  - Expired token: 401 TOKEN_EXPIRED.  Invalid token: 401 UNAUTHORIZED.
  - Token tenant differs from the resolved tenant: 403 TENANT_MISMATCH,
    except a platform administrator (ADMIN of the system tenant, not
    impersonating), who is re-bound to the resolved tenant.
  - Impersonation tokens are read-only: any non-GET request other than
    stopping the impersonation is rejected with 403 READ_ONLY_SESSION.
"""

import dataclasses
import logging

import jwt as pyjwt
from flask import g, request

from taskhub.core.actor import Actor
from taskhub.core.exceptions import AuthError
from taskhub.services.jwt_service import decode_access_token
from taskhub.services.security_observability import (
    EVENT_INVALID_TOKEN,
    EVENT_READ_ONLY_VIOLATION,
    EVENT_TENANT_MISMATCH,
    record_security_event,
)
from taskhub.utils.errors import E, api_error

logger = logging.getLogger(__name__)

# Paths that skip JWT auth entirely
JWT_SKIP_PREFIXES = (
    "/api/v1/auth/login",
    "/api/v1/health",
    "/static/",
)

SAFE_METHODS = frozenset({"GET", "HEAD", "OPTIONS"})
READ_ONLY_ALLOWED_PATHS = frozenset({"/api/v1/auth/impersonate/stop"})


def require_actor() -> Actor:
    """Return the authenticated actor or raise 401."""
    actor = getattr(g, "actor", None)
    if actor is None:
        raise AuthError("UNAUTHORIZED", "Autenticação necessária", 401)
    return actor


def init_jwt_middleware(app):
    """Register JWT and read-only session hooks."""

    @app.before_request
    def _jwt_auth():
        g.actor = None

        path = request.path
        if not path.startswith("/api/v1/"):
            return None
        for prefix in JWT_SKIP_PREFIXES:
            if path.startswith(prefix):
                return None

        auth_header = request.headers.get("Authorization", "")
        if not auth_header.startswith("Bearer "):
            return None

        try:
            claims = decode_access_token(auth_header[7:])
            actor = Actor.from_claims(claims)
        except pyjwt.ExpiredSignatureError:
            return api_error(E.TOKEN_EXPIRED, "Sessão expirada")
        except (pyjwt.InvalidTokenError, KeyError, TypeError, ValueError):
            record_security_event(event_type=EVENT_INVALID_TOKEN, reason="undecodable_token")
            return api_error(E.UNAUTHORIZED, "Token inválido")

        tenant = getattr(g, "tenant", None)
        if tenant is not None and actor.tenant_id != tenant.id:
            if actor.platform_admin and not actor.impersonating:
                logger.info(
                    "Platform admin acting in tenant %s", tenant.slug,
                    extra={"tenant_id": tenant.id, "actor": actor.email},
                )
                actor = dataclasses.replace(actor, tenant_id=tenant.id)
            else:
                record_security_event(
                    event_type=EVENT_TENANT_MISMATCH,
                    reason="token_tenant_differs_from_request",
                    severity="high",
                    tenant_id=tenant.id,
                    details={"token_tenant_id": actor.tenant_id},
                )
                return api_error(E.TENANT_MISMATCH, "Token não pertence a esta empresa")

        g.actor = actor
        return None

    @app.before_request
    def _read_only_session_guard():
        actor = getattr(g, "actor", None)
        if actor is None or not actor.impersonating:
            return None
        if request.method in SAFE_METHODS or request.path in READ_ONLY_ALLOWED_PATHS:
            return None
        record_security_event(
            event_type=EVENT_READ_ONLY_VIOLATION,
            reason="write_during_impersonation",
            tenant_id=actor.tenant_id,
        )
        return api_error(E.READ_ONLY_SESSION, "Sessão de impersonação é somente leitura")
