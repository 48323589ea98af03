"""
Health check blueprint.

Endpoints:
    GET /api/v1/health        alias of /ready
    GET /api/v1/health/ready  simple 200 for load balancers
    GET /api/v1/health/live   database and cache status
"""

import logging
import time

from flask import Blueprint, current_app, jsonify
from sqlalchemy.exc import SQLAlchemyError

from taskhub.models import db
from taskhub.services import cache_service

logger = logging.getLogger(__name__)

health_bp = Blueprint("health_bp", __name__, url_prefix="/api/v1/health")


@health_bp.route("", methods=["GET"])
@health_bp.route("/ready", methods=["GET"])
def ready():
    """Readiness check: 200 whenever the app is serving."""
    return jsonify({"status": "ok"}), 200


@health_bp.route("/live", methods=["GET"])
def live():
    """Database round-trip plus cache backend status. 503 when the database is down."""
    started = time.perf_counter()
    try:
        db.session.execute(db.text("SELECT 1"))
    except SQLAlchemyError as exc:
        db.session.rollback()
        logger.error("Health check: database unreachable: %s", exc)
        database = {"status": "error", "detail": str(exc)}
    else:
        database = {"status": "ok", "latency_ms": round((time.perf_counter() - started) * 1000, 1)}

    db_ok = database["status"] == "ok"
    body = {
        "status": "ok" if db_ok else "degraded",
        "checks": {
            "database": database,
            # Reported only; a cache outage does not fail the check.
            "cache": cache_service.health_check(),
            "app": {"name": "TaskHub", "debug": current_app.debug, "testing": current_app.testing},
        },
    }
    return jsonify(body), 200 if db_ok else 503
