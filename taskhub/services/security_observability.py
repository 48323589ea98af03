"""Security observability helpers for tenant-boundary incidents.

Events are kept in an in-process ring buffer and also logged with
``event_type`` so the JSON log pipeline can alert on them.
"""

from __future__ import annotations

import logging
import time
from typing import Any

from flask import g, has_request_context, request

logger = logging.getLogger(__name__)

_SECURITY_EVENTS: list[dict[str, Any]] = []
_MAX_SECURITY_EVENTS = 5000

EVENT_TENANT_MISMATCH = "tenant_mismatch"
EVENT_TENANT_NOT_FOUND = "tenant_not_found"
EVENT_READ_ONLY_VIOLATION = "read_only_violation"
EVENT_INVALID_TOKEN = "invalid_token"
EVENT_CROSS_TENANT_LOOKUP = "cross_tenant_lookup"


def _trim() -> None:
    if len(_SECURITY_EVENTS) > _MAX_SECURITY_EVENTS:
        del _SECURITY_EVENTS[: _MAX_SECURITY_EVENTS // 2]


def record_security_event(
    *,
    event_type: str,
    reason: str,
    severity: str = "warning",
    tenant_id: int | None = None,
    details: dict[str, Any] | None = None,
) -> dict[str, Any]:
    path = method = request_id = None
    if has_request_context():
        path = request.path
        method = request.method
        request_id = getattr(g, "request_id", None)
        if tenant_id is None:
            tenant_id = getattr(g, "tenant_id", None)

    event = {
        "ts": time.time(),
        "event_type": event_type,
        "severity": severity,
        "reason": reason,
        "tenant_id": tenant_id,
        "path": path,
        "method": method,
        "request_id": request_id,
        "details": details or {},
    }
    _SECURITY_EVENTS.append(event)
    _trim()
    logger.warning(
        "Security event: %s (%s)", event_type, reason,
        extra={"event_type": event_type, "tenant_id": tenant_id, "request_id": request_id},
    )
    return event


def get_recent_security_events(*, seconds: int = 3600, event_type: str | None = None) -> list[dict[str, Any]]:
    cutoff = time.time() - seconds
    rows = [e for e in _SECURITY_EVENTS if e["ts"] >= cutoff]
    if event_type:
        rows = [e for e in rows if e["event_type"] == event_type]
    return rows


def reset_security_events() -> None:
    _SECURITY_EVENTS.clear()
