"""
TaskHub
Flask Application Factory.

Usage:
    from taskhub import create_app
    app = create_app()           # defaults to "development"
    app = create_app("testing")  # explicit config
"""

import logging
import os

import click
from flask import Flask, request
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_migrate import Migrate

from taskhub.config import config
from taskhub.middleware.jwt_auth import init_jwt_middleware
from taskhub.middleware.logging_config import configure_logging
from taskhub.middleware.rate_limiter import init_rate_limits
from taskhub.middleware.security_headers import init_security_headers
from taskhub.middleware.tenant_context import init_tenant_context
from taskhub.middleware.timing import init_request_timing
from taskhub.models import db
from taskhub.utils.errors import E, api_error

logger = logging.getLogger(__name__)

# ── SQLite FK enforcement (global engine event) ─────────────────────────
from sqlalchemy import engine as _sa_engine
from sqlalchemy import event as _sa_event
from sqlalchemy.exc import SQLAlchemyError


@_sa_event.listens_for(_sa_engine.Engine, "connect")
def _enable_sqlite_fk(dbapi_conn, connection_record):
    """Enable foreign key enforcement for SQLite connections."""
    if "sqlite" in type(dbapi_conn).__module__:
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


migrate = Migrate()
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[],                     # no global limit, applied per blueprint
    storage_uri=os.getenv("REDIS_URL", "memory://"),
)


_MODEL_MODULES = ("audit", "auth", "justification", "rule", "task")


def create_app(config_name=None):
    """
    Create and configure the Flask application.

    ``config_name`` is one of "development", "testing" or "production" and
    defaults to the APP_ENV environment variable.
    """
    config_name = config_name or os.getenv("APP_ENV", "development")

    app = Flask(__name__, instance_relative_config=True)
    # Instantiated so ProductionConfig can refuse to start without secrets.
    app.config.from_object(config[config_name]())
    configure_logging(app)

    db.init_app(app)
    migrate.init_app(app, db)
    limiter.init_app(app)
    # "*" in dev; an empty production setting allows no cross-origin callers.
    origins = app.config.get("CORS_ORIGINS", "*")
    CORS(app, origins="*" if origins == "*" else [o.strip() for o in origins.split(",") if o.strip()])
    init_security_headers(app)

    # Order matters: request id, then tenant, then the token checked against it.
    init_request_timing(app)
    init_tenant_context(app)
    init_jwt_middleware(app)
    app.before_request(_require_json_body)

    _create_schema(app)
    _register_blueprints(app)
    _register_cli(app)
    _register_error_handlers(app)
    init_rate_limits(app, limiter)

    # The listing cache picks its backend from this app's REDIS_URL.
    from taskhub.services import cache_service
    cache_service.reset_backend()

    logger.debug("TaskHub app created (config=%s)", config_name)
    return app


def _require_json_body():
    if request.method not in ("POST", "PUT", "PATCH") or not request.path.startswith("/api/"):
        return None
    if request.data and not request.is_json:
        return api_error(E.VALIDATION, "Content-Type deve ser application/json", status=415)
    return None


def _create_schema(app):
    """Import every model module, then CREATE IF NOT EXISTS for dev and tests."""
    import importlib

    for name in _MODEL_MODULES:
        importlib.import_module(f"taskhub.models.{name}")

    with app.app_context():
        try:
            db.create_all()
        except SQLAlchemyError as exc:
            app.logger.warning("db.create_all() failed: %s", exc)


def _register_blueprints(app):
    from taskhub.blueprints.auth_bp import auth_bp
    from taskhub.blueprints.health_bp import health_bp
    from taskhub.blueprints.justification_bp import justification_bp
    from taskhub.blueprints.task_bp import task_bp

    for bp in (health_bp, auth_bp, task_bp, justification_bp):
        app.register_blueprint(bp)


def _register_cli(app):
    @app.cli.command("seed-system-admin")
    @click.option("--email", required=True)
    @click.option("--password", required=True)
    @click.option("--name", default="Administrador")
    def seed_system_admin_cmd(email, password, name):
        """Create the system tenant and a platform administrator."""
        from taskhub.services.identity_service import seed_system_admin

        user = seed_system_admin(email, password, name)
        click.echo(f"Platform admin ready: {user.email}")

    @app.cli.command("refresh-task-status")
    @click.option("--tenant-id", type=int, default=None)
    def refresh_task_status_cmd(tenant_id):
        """Rewrite the persisted status column from the live derivation."""
        from taskhub.services.task_service import refresh_persisted_statuses

        click.echo(f"Updated {refresh_persisted_statuses(tenant_id)} task(s).")


def _register_error_handlers(app):
    """JSON bodies for errors raised outside any blueprint handler."""

    @app.errorhandler(404)
    def not_found(e):
        return api_error(E.NOT_FOUND, "Recurso não encontrado", status=404)

    @app.errorhandler(405)
    def method_not_allowed(e):
        return api_error(E.VALIDATION, "Método não permitido", status=405)

    @app.errorhandler(413)
    def too_large(e):
        return api_error(E.FILE_TOO_LARGE, "Corpo da requisição muito grande", status=413)

    @app.errorhandler(429)
    def rate_limited(e):
        return api_error(E.RATE_LIMITED, "Muitas requisições", status=429, details={"retry_after": e.description})

    @app.errorhandler(500)
    def server_error(e):
        logger.error("Unhandled error: %s", e, exc_info=True)
        db.session.rollback()
        return api_error(E.INTERNAL, "Erro interno do servidor", status=500)
