"""
Request id and access log.

First middleware in the chain: every later log line can read ``g.request_id``
through the logging filter. Responses carry ``X-Request-ID`` (echoed when the
client sent a usable one) and ``X-Request-Duration-Ms``.
"""

import logging
import re
import time
import uuid

from flask import Flask, g, request

logger = logging.getLogger(__name__)

SLOW_REQUEST_MS = 1000

_QUIET_PATHS = ("/api/v1/health",)
_CLIENT_ID = re.compile(r"^[A-Za-z0-9._-]{1,64}$")


def _request_id() -> str:
    given = request.headers.get("X-Request-ID", "")
    return given if _CLIENT_ID.match(given) else uuid.uuid4().hex[:12]


def _log_level(status: int, duration_ms: float) -> int:
    if status >= 500:
        return logging.ERROR
    if duration_ms > SLOW_REQUEST_MS:
        return logging.WARNING
    return logging.DEBUG


def init_request_timing(app: Flask):
    @app.before_request
    def _stamp_request():
        g.request_id = _request_id()
        g.request_start = time.perf_counter()

    @app.after_request
    def _access_log(response):
        started = g.get("request_start")
        if started is None:
            return response

        elapsed = (time.perf_counter() - started) * 1000
        response.headers["X-Request-ID"] = g.request_id
        response.headers["X-Request-Duration-Ms"] = f"{elapsed:.1f}"

        if request.path.startswith(_QUIET_PATHS):
            return response

        logger.log(
            _log_level(response.status_code, elapsed),
            "%s %s -> %d",
            request.method,
            request.full_path.rstrip("?"),
            response.status_code,
            extra={
                "method": request.method,
                "path": request.path,
                "status": response.status_code,
                "duration_ms": elapsed,
                "remote_addr": request.remote_addr,
            },
        )
        return response
