"""
TaskHub
Blueprint registry and shared view helpers.
"""

import functools
import logging

from flask import g, request
from sqlalchemy.exc import SQLAlchemyError

from taskhub.core.exceptions import AppError
from taskhub.models import db
from taskhub.services import cache_service
from taskhub.utils.errors import E, api_error, error_from_exception

logger = logging.getLogger(__name__)


def register_error_handlers(bp):
    """Map service exceptions to JSON error responses for *bp*."""

    @bp.errorhandler(AppError)
    def _handle_app_error(exc):
        if exc.status >= 500:
            logger.error("Unhandled application error: %s", exc, extra={"tenant_id": getattr(g, "tenant_id", None)})
        else:
            logger.debug("%s → %s %s", request.path, exc.status, exc.code)
        return error_from_exception(exc)

    @bp.errorhandler(SQLAlchemyError)
    def _handle_db_error(exc):
        db.session.rollback()
        logger.exception("Database error on %s %s", request.method, request.path)
        return api_error(E.DATABASE, "Erro de banco de dados")


def invalidates_task_listings(view):
    """Drop the tenant's cached task listings after a mutating view runs.

    Runs whether the view succeeded or raised, so a partially applied
    change can never be served from a stale listing.
    """

    @functools.wraps(view)
    def wrapper(*args, **kwargs):
        try:
            return view(*args, **kwargs)
        finally:
            tenant_id = getattr(g, "tenant_id", None)
            if tenant_id is not None:
                cache_service.invalidate_task_listings(tenant_id)

    return wrapper


def json_body() -> dict:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}
