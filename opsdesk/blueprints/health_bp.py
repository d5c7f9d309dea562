"""
Health Blueprint (public, no token).

Endpoints:
    GET /api/v1/health        — {status, app}
    GET /api/v1/health/ready  — process is up (always 200)
    GET /api/v1/health/live   — database round-trip, change-feed cursor and
                                optional integrations; 503 when the DB is down
"""

import logging
import time

from flask import Blueprint, current_app, jsonify
from sqlalchemy.exc import SQLAlchemyError

from opsdesk.models import db
from opsdesk.services import realtime_service
from opsdesk.utils.crypto import encryption_enabled

logger = logging.getLogger(__name__)

health_bp = Blueprint("health", __name__, url_prefix="/api/v1/health")


def _app_name():
    return current_app.config.get("APP_NAME", "OpsDesk")


@health_bp.route("", methods=["GET"])
def health():
    return jsonify({"status": "ok", "app": _app_name()}), 200


@health_bp.route("/ready", methods=["GET"])
def ready():
    return jsonify({"status": "ok"}), 200


@health_bp.route("/live", methods=["GET"])
def live():
    checks = {}
    healthy = True

    started = time.perf_counter()
    try:
        db.session.execute(db.text("SELECT 1"))
        checks["database"] = {"status": "ok", "latency_ms": round((time.perf_counter() - started) * 1000, 1)}
        checks["change_feed"] = {"status": "ok", "cursor": realtime_service.latest_cursor()}
    except SQLAlchemyError as exc:
        db.session.rollback()
        logger.error("Liveness check: database unavailable: %s", exc)
        checks["database"] = {"status": "error", "detail": str(exc)}
        healthy = False

    checks["integrations"] = {
        "push": bool(current_app.config.get("PUSH_FUNCTION_URL")),
        "credential_encryption": encryption_enabled(),
    }
    checks["app"] = {"name": _app_name(), "debug": current_app.debug, "testing": current_app.testing}

    return jsonify({"status": "healthy" if healthy else "degraded", "checks": checks}), 200 if healthy else 503
