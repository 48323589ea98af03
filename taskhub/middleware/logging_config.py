"""
Logging setup.

Every record passes through ``RequestContextFilter``, which stamps the
current request id, tenant and actor (when a request is active) so service
code never has to repeat them in ``extra``.

Output format is chosen by ``LOG_FORMAT`` ("json" or "text"). When unset,
production logs JSON lines and everything else logs short colored text.
"""

import json
import logging
import os
import sys
from datetime import UTC, datetime

from flask import g, has_request_context

CONTEXT_FIELDS = ("request_id", "tenant_id", "actor")

# Attributes services pass through ``extra=``; emitted only when set
EXTRA_FIELDS = (
    "method",
    "path",
    "status",
    "duration_ms",
    "remote_addr",
    "task_id",
    "justification_id",
    "event_type",
)

_LEVEL_COLORS = {
    logging.DEBUG: "\033[2m",
    logging.INFO: "\033[32m",
    logging.WARNING: "\033[33m",
    logging.ERROR: "\033[31m",
    logging.CRITICAL: "\033[1;31m",
}
_RESET = "\033[0m"

_QUIET_LOGGERS = ("werkzeug", "sqlalchemy.engine", "urllib3", "alembic.runtime.migration")


class RequestContextFilter(logging.Filter):
    """Copy request-scoped identifiers onto the record unless already given."""

    def filter(self, record: logging.LogRecord) -> bool:
        if has_request_context():
            actor = getattr(g, "actor", None)
            defaults = {
                "request_id": getattr(g, "request_id", None),
                "tenant_id": getattr(g, "tenant_id", None),
                "actor": actor.email if actor is not None else None,
            }
            for key, value in defaults.items():
                if getattr(record, key, None) is None:
                    setattr(record, key, value)
        return True


class JSONFormatter(logging.Formatter):
    """One JSON object per line for log shipping."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "ts": datetime.fromtimestamp(record.created, UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
            "where": f"{record.module}:{record.lineno}",
        }
        for key in CONTEXT_FIELDS + EXTRA_FIELDS:
            value = getattr(record, key, None)
            if value is not None:
                entry[key] = value
        if record.exc_info and record.exc_info[0] is not None:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False, default=str)


class ReadableFormatter(logging.Formatter):
    """Compact colored lines for a terminal."""

    def format(self, record: logging.LogRecord) -> str:
        color = _LEVEL_COLORS.get(record.levelno, "")
        clock = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")
        context = " ".join(
            f"{label}={getattr(record, key)}"
            for key, label in (("tenant_id", "t"), ("actor", "by"), ("request_id", "rq"))
            if getattr(record, key, None) is not None
        )
        line = f"{color}{clock} {record.levelname[:4]}{_RESET} {record.name} {record.getMessage()}"
        if context:
            line += f"  [{context}]"
        duration = getattr(record, "duration_ms", None)
        if duration is not None:
            line += f" ({duration:.0f}ms)"
        if record.exc_info and record.exc_info[0] is not None:
            line += "\n" + self.formatException(record.exc_info)
        return line


def _wants_json(app) -> bool:
    explicit = (app.config.get("LOG_FORMAT") or os.getenv("LOG_FORMAT") or "").lower()
    if explicit in ("json", "text"):
        return explicit == "json"
    return bool(app.config.get("IS_PRODUCTION"))


def configure_logging(app):
    """Install one stderr handler on the root logger.

    Level comes from LOG_LEVEL (default INFO in production, DEBUG elsewhere).
    Re-running replaces the handler, so repeated app creation in tests does
    not duplicate output.
    """
    as_json = _wants_json(app)
    default_level = "INFO" if app.config.get("IS_PRODUCTION") else "DEBUG"
    level_name = (os.getenv("LOG_LEVEL") or default_level).upper()
    level = logging.getLevelName(level_name)
    if not isinstance(level, int):
        level = logging.INFO

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JSONFormatter() if as_json else ReadableFormatter())
    handler.addFilter(RequestContextFilter())

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)
    app.logger.setLevel(level)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    if not app.config.get("TESTING"):
        app.logger.info("Logging ready (level=%s, format=%s)", level_name, "json" if as_json else "text")
