"""
OpsDesk
Flask Application Factory.

Usage:
    from opsdesk import create_app
    app = create_app()           # defaults to "development"
    app = create_app("testing")  # explicit config
"""

import logging
import os

import click
from flask import Flask, abort, jsonify, request
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_migrate import Migrate
from sqlalchemy import engine as _sa_engine
from sqlalchemy import event as _sa_event
from sqlalchemy.exc import IntegrityError

from opsdesk.config import config
from opsdesk.core.exceptions import (
    AuthenticationError,
    ConflictError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from opsdesk.middleware.jwt_auth import init_jwt_middleware
from opsdesk.middleware.logging_config import configure_logging
from opsdesk.middleware.rate_limiter import init_rate_limits
from opsdesk.middleware.security_headers import init_security_headers
from opsdesk.middleware.timing import init_request_timing
from opsdesk.models import db
from opsdesk.utils.errors import E, api_error

logger = logging.getLogger(__name__)


# ── SQLite FK enforcement (global engine event) ─────────────────────────
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
    default_limits=[],                     # per-blueprint limits only
    storage_uri=os.getenv("REDIS_URL", "memory://"),
)


def _import_models():
    from opsdesk.models import audit as _audit_models                # noqa: F401
    from opsdesk.models import auth as _auth_models                  # noqa: F401
    from opsdesk.models import chat as _chat_models                  # noqa: F401
    from opsdesk.models import client as _client_models              # noqa: F401
    from opsdesk.models import credential as _credential_models      # noqa: F401
    from opsdesk.models import finance as _finance_models            # noqa: F401
    from opsdesk.models import notification as _notification_models  # noqa: F401
    from opsdesk.models import organization as _organization_models  # noqa: F401
    from opsdesk.models import project as _project_models            # noqa: F401
    from opsdesk.models import proposal as _proposal_models          # noqa: F401
    from opsdesk.models import realtime as _realtime_models          # noqa: F401
    from opsdesk.models import reminder as _reminder_models          # noqa: F401
    from opsdesk.models import task as _task_models                  # noqa: F401
    from opsdesk.models import ticket as _ticket_models              # noqa: F401


def _register_error_handlers(app):
    """One JSON error shape for service exceptions and HTTP errors."""

    @app.errorhandler(ValidationError)
    def _validation_error(e):
        db.session.rollback()
        return api_error(E.VALIDATION_CONSTRAINT, str(e), details=e.details)

    @app.errorhandler(NotFoundError)
    def _not_found_error(e):
        db.session.rollback()
        logger.debug("Not found: %s", e)
        return api_error(E.NOT_FOUND, f"{e.resource} not found")

    @app.errorhandler(ConflictError)
    def _conflict_error(e):
        db.session.rollback()
        return api_error(E.CONFLICT_DUPLICATE, str(e), field=e.field)

    @app.errorhandler(PermissionDeniedError)
    def _permission_error(e):
        db.session.rollback()
        return api_error(E.FORBIDDEN, str(e), required=e.required)

    @app.errorhandler(AuthenticationError)
    def _authentication_error(e):
        db.session.rollback()
        return api_error(E.UNAUTHORIZED, str(e))

    @app.errorhandler(IntegrityError)
    def _integrity_error(e):
        db.session.rollback()
        logger.warning("Integrity error: %s", e.orig)
        return api_error(E.CONFLICT_DUPLICATE, "Duplicate or constraint violation")

    @app.errorhandler(404)
    def not_found(e):
        return api_error(E.NOT_FOUND, "Not found", path=request.path)

    @app.errorhandler(405)
    def method_not_allowed(e):
        return api_error(E.METHOD_NOT_ALLOWED, "Method not allowed")

    @app.errorhandler(413)
    def payload_too_large(e):
        return api_error(E.PAYLOAD_TOO_LARGE, "Request body too large")

    @app.errorhandler(415)
    def unsupported_media(e):
        return api_error(E.UNSUPPORTED_MEDIA, "Content-Type must be application/json")

    @app.errorhandler(429)
    def rate_limited(e):
        return api_error(E.RATE_LIMITED, "Too many requests", retry_after=e.description)

    @app.errorhandler(500)
    def server_error(e):
        db.session.rollback()
        logger.error("500 error: %s", e, exc_info=True)
        return api_error(E.INTERNAL, "Internal server error")


def _register_cli(app):
    @app.cli.command("seed-roles")
    def seed_roles_cmd():
        """Upsert the built-in admin / employee roles."""
        from opsdesk.services.role_service import seed_system_roles
        created = seed_system_roles()
        click.echo(f"System roles seeded ({created} new).")

    @app.cli.command("dispatch-reminders")
    def dispatch_reminders_cmd():
        """Deliver every due reminder as a notification."""
        from opsdesk.services.reminder_service import dispatch_due_reminders
        count = dispatch_due_reminders()
        click.echo(f"Dispatched {count} reminder(s).")


def create_app(config_name=None):
    """
    Create and configure the Flask application.

    Args:
        config_name: Configuration environment name.
                     One of: "development", "testing", "production".
                     Defaults to APP_ENV env var, or "development" if unset.

    Returns:
        Configured Flask application instance.
    """
    if config_name is None:
        config_name = os.getenv("APP_ENV", "development")

    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(config[config_name]())
    os.makedirs(app.instance_path, exist_ok=True)

    # ── Structured logging (must be first) ───────────────────────────────
    configure_logging(app)

    # ── Extensions ───────────────────────────────────────────────────────
    db.init_app(app)
    migrate.init_app(app, db)
    limiter.init_app(app)
    cors_origins = app.config.get("CORS_ORIGINS", "*")
    if cors_origins and cors_origins != "*":
        CORS(app, origins=[o.strip() for o in cors_origins.split(",") if o.strip()])
    else:
        CORS(app)

    # ── Request timing (sets g.request_id before auth logs anything) ─────
    init_request_timing(app)

    # ── Security headers (CSP, HSTS, X-Frame-Options, etc.) ─────────────
    init_security_headers(app)

    # ── Request guards (input length + Content-Type) ─────────────────────
    app.config.setdefault("MAX_CONTENT_LENGTH", 2 * 1024 * 1024)  # 2 MB

    @app.before_request
    def _guard_request():
        max_len = app.config.get("MAX_CONTENT_LENGTH")
        if max_len and request.content_length and request.content_length > max_len:
            abort(413, description="Request body too large")
        if request.method in ("POST", "PUT", "PATCH") and request.path.startswith("/api/"):
            ct = request.content_type or ""
            if request.get_data(cache=True) and "json" not in ct:
                abort(415, description="Content-Type must be application/json")
        return None

    # ── JWT auth middleware ──────────────────────────────────────────────
    init_jwt_middleware(app)

    # ── Models, change feed and tables ───────────────────────────────────
    _import_models()
    from opsdesk.models.realtime import register_change_listeners
    register_change_listeners()

    with app.app_context():
        db.create_all()
        app.logger.info("db.create_all() completed successfully")

    # ── Blueprints ───────────────────────────────────────────────────────
    from opsdesk.blueprints import register_blueprints
    register_blueprints(app)

    _register_error_handlers(app)
    _register_cli(app)

    # ── Rate limiting (after blueprints registered) ──────────────────────
    init_rate_limits(app, limiter)

    logger.info("%s started (%s)", app.config["APP_NAME"], config_name)
    return app
