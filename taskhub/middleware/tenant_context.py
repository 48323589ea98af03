"""
Tenant Context Middleware: resolves the tenant of every API request.

Resolution order for the tenant slug:
  1. X-Tenant-Slug header
  2. Subdomain of the Host header (acme.taskhub.example → "acme")
  3. ?tenant=<slug> query parameter (non-production only)
  4. the reserved system tenant

Unknown or inactive tenants get 404 TENANT_NOT_FOUND. The resolved tenant
is stored in g.tenant / g.tenant_id; jwt_auth then checks the token against
it.

Chain order:
  timing.py  →  tenant_context.py  →  jwt_auth.py  →  route handler
"""

import ipaddress
import logging
import re

from flask import current_app, g, request

from taskhub.services.identity_service import get_tenant_by_slug
from taskhub.services.security_observability import EVENT_TENANT_NOT_FOUND, record_security_event
from taskhub.utils.errors import E, api_error

logger = logging.getLogger(__name__)

# Paths that skip tenant resolution
TENANT_SKIP_PREFIXES = (
    "/api/v1/health",
    "/static/",
)

_HOST_CHARS = re.compile(r"^[A-Za-z0-9.\-:\[\]]+$")
_SLUG_STRIP = re.compile(r"[^a-z0-9-]")
_NON_TENANT_SUBDOMAINS = frozenset({"www", "api", "app"})
MAX_HOST_LENGTH = 253


def normalise_slug(raw: str | None) -> str:
    return _SLUG_STRIP.sub("", (raw or "").strip().lower())


def _hostname(host: str) -> str:
    if host.startswith("["):
        return host[1:].split("]", 1)[0]
    return host.rsplit(":", 1)[0] if host.count(":") == 1 else host


def _subdomain_slug(hostname: str) -> str | None:
    if hostname in ("localhost", "") or hostname.endswith(".localhost"):
        return None
    try:
        ipaddress.ip_address(hostname)
        return None
    except ValueError:
        pass
    labels = hostname.split(".")
    if len(labels) < 3 or labels[0] in _NON_TENANT_SUBDOMAINS:
        return None
    return labels[0]


def validate_host(host: str) -> bool:
    if not host or len(host) > MAX_HOST_LENGTH or not _HOST_CHARS.match(host):
        return False
    pattern = current_app.config.get("ALLOWED_HOST_PATTERN")
    if current_app.config.get("IS_PRODUCTION") and pattern:
        return re.fullmatch(pattern, _hostname(host)) is not None
    return True


def resolve_tenant_slug() -> str:
    header = normalise_slug(request.headers.get("X-Tenant-Slug"))
    if header:
        return header
    sub = normalise_slug(_subdomain_slug(_hostname(request.host or "")))
    if sub:
        return sub
    if not current_app.config.get("IS_PRODUCTION"):
        query = normalise_slug(request.args.get("tenant"))
        if query:
            return query
    return current_app.config.get("SYSTEM_TENANT_SLUG", "system")


def init_tenant_context(app):
    """Register tenant resolution as a before_request hook."""

    @app.before_request
    def _tenant_context():
        g.tenant = None
        g.tenant_id = None

        if not request.path.startswith("/api/v1/"):
            return None
        for prefix in TENANT_SKIP_PREFIXES:
            if request.path.startswith(prefix):
                return None

        if not validate_host(request.host or ""):
            logger.warning("Rejected request with invalid Host header")
            return api_error(E.INVALID_HOST, "Host inválido")

        slug = resolve_tenant_slug()
        tenant = get_tenant_by_slug(slug)
        if tenant is None:
            record_security_event(
                event_type=EVENT_TENANT_NOT_FOUND,
                reason="unknown_or_inactive_slug",
                details={"slug": slug},
            )
            return api_error(E.TENANT_NOT_FOUND, "Empresa não encontrada")

        g.tenant = tenant
        g.tenant_id = tenant.id
        return None

    logger.info("Tenant context middleware installed")
