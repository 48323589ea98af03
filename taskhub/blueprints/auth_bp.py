"""
Auth Blueprint: login, session profile and read-only impersonation.

Endpoints:
  POST /api/v1/auth/login              e-mail + password → access token
  GET  /api/v1/auth/me                 current actor (and user record)
  POST /api/v1/auth/impersonate        platform admin → read-only token for a user
  POST /api/v1/auth/impersonate/stop   back to the platform admin's own token

The tenant is resolved by the tenant-context middleware before any of these
run; login authenticates inside that tenant only.
"""

import logging

from flask import Blueprint, g, jsonify

from taskhub.blueprints import json_body, register_error_handlers
from taskhub.core.exceptions import AuthError, ValidationError
from taskhub.middleware.jwt_auth import require_actor
from taskhub.models.auth import User
from taskhub.services import identity_service
from taskhub.services.helpers.scoped_queries import get_scoped_or_none
from taskhub.services.jwt_service import token_response

logger = logging.getLogger(__name__)

auth_bp = Blueprint("auth_bp", __name__, url_prefix="/api/v1/auth")
register_error_handlers(auth_bp)


# ═══════════════════════════════════════════════════════════════
# POST /api/v1/auth/login
# ═══════════════════════════════════════════════════════════════
@auth_bp.route("/login", methods=["POST"])
def login():
    """
    Authenticate inside the request's tenant.

    Body: { "email": "...", "password": "..." }
    """
    data = json_body()
    tenant = getattr(g, "tenant", None)
    if tenant is None:
        raise AuthError("TENANT_NOT_FOUND", "Empresa não encontrada", 404)

    user = identity_service.authenticate(tenant, data.get("email", ""), data.get("password", ""))
    token = identity_service.issue_login_token(user)
    return jsonify(token_response(token, user)), 200


# ═══════════════════════════════════════════════════════════════
# GET /api/v1/auth/me
# ═══════════════════════════════════════════════════════════════
@auth_bp.route("/me", methods=["GET"])
def me():
    actor = require_actor()
    body = {"actor": actor.to_dict(), "user": None}
    # A platform admin rebound into another tenant has no user record there.
    if actor.platform_admin and not identity_service.is_system_tenant(g.tenant):
        return jsonify(body), 200
    user = get_scoped_or_none(User, actor.user_id, tenant_id=actor.tenant_id)
    if user is not None:
        body["user"] = user.to_dict()
    return jsonify(body), 200


# ═══════════════════════════════════════════════════════════════
# Impersonation
# ═══════════════════════════════════════════════════════════════
@auth_bp.route("/impersonate", methods=["POST"])
def impersonate():
    """Body: { "user_id": 42 }"""
    actor = require_actor()
    raw = json_body().get("user_id")
    try:
        user_id = int(raw)
    except (TypeError, ValueError):
        raise ValidationError("user_id é obrigatório") from None

    target, token = identity_service.start_impersonation(actor, user_id)
    return jsonify(token_response(token, target, impersonating=True)), 200


@auth_bp.route("/impersonate/stop", methods=["POST"])
def stop_impersonation():
    actor = require_actor()
    admin, token = identity_service.stop_impersonation(actor)
    return jsonify(token_response(token, admin)), 200
