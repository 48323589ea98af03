"""
JWT Service: access token generation and verification.

Access token:  12 hours (configurable via JWT_ACCESS_EXPIRES)
Impersonation: 1 hour   (configurable via IMPERSONATION_EXPIRES)
Algorithm:     HS256

Token payload:
{
    "sub": "<user_id>",
    "tenant_id": <tenant_id>,
    "email": "...", "name": "...",
    "role": "ADMIN|LEADER|USER",
    "area": "...",
    "can_delete": bool,
    "platform_admin": bool,          # ADMIN of the reserved system tenant
    "impersonating": bool,           # read-only session
    "impersonator_id": <user_id>,    # only when impersonating
    "type": "access",
    "iat": ..., "exp": ..., "jti": ...
}
"""

import uuid
from datetime import UTC, datetime, timedelta

import jwt
from flask import current_app


DEFAULT_ACCESS_EXPIRES = 43200     # 12 hours
DEFAULT_IMPERSONATION_EXPIRES = 3600
ALGORITHM = "HS256"


def _get_secret():
    """Get the JWT secret key from app config."""
    return current_app.config.get("JWT_SECRET_KEY") or current_app.config["SECRET_KEY"]


def _get_access_expires():
    return current_app.config.get("JWT_ACCESS_EXPIRES", DEFAULT_ACCESS_EXPIRES)


def _get_impersonation_expires():
    return current_app.config.get("IMPERSONATION_EXPIRES", DEFAULT_IMPERSONATION_EXPIRES)


def generate_access_token(
    user,
    *,
    platform_admin: bool = False,
    impersonator_id: int | None = None,
) -> str:
    """Generate an access token for *user*.

    Passing *impersonator_id* produces a read-only impersonation token with
    the shorter impersonation lifetime.
    """
    now = datetime.now(UTC)
    impersonating = impersonator_id is not None
    lifetime = _get_impersonation_expires() if impersonating else _get_access_expires()
    payload = {
        # PyJWT 2.10+ requires "sub" to be a string
        "sub": str(user.id),
        "tenant_id": user.tenant_id,
        "email": user.email,
        "name": user.name,
        "role": user.role,
        "area": user.area,
        "can_delete": bool(user.can_delete),
        "platform_admin": platform_admin,
        "impersonating": impersonating,
        "type": "access",
        "iat": now,
        "exp": now + timedelta(seconds=lifetime),
        "jti": str(uuid.uuid4()),
    }
    if impersonating:
        payload["impersonator_id"] = impersonator_id
    return jwt.encode(payload, _get_secret(), algorithm=ALGORITHM)


def decode_access_token(token: str) -> dict:
    """
    Decode and verify an access token.

    Raises jwt.exceptions on failure (ExpiredSignatureError, InvalidTokenError).
    """
    payload = jwt.decode(token, _get_secret(), algorithms=[ALGORITHM])
    if payload.get("type") != "access":
        raise jwt.InvalidTokenError(f"Expected access token, got {payload.get('type')}")
    return payload


def token_response(token: str, user, *, impersonating: bool = False) -> dict:
    return {
        "access_token": token,
        "token_type": "Bearer",
        "expires_in": _get_impersonation_expires() if impersonating else _get_access_expires(),
        "user": user.to_dict(),
        "impersonating": impersonating,
    }
