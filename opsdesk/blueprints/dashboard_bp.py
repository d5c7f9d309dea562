"""
Dashboard Blueprint.

Endpoints:
  GET /api/v1/dashboard/overview   — Counts, revenue, open tasks, recent activity
  GET /api/v1/dashboard/workload   — Team and project task load
"""

from flask import Blueprint, jsonify

from opsdesk.middleware.permission_required import current_user, require_permission
from opsdesk.services import dashboard_service
from opsdesk.services.permission_service import is_admin

dashboard_bp = Blueprint("dashboard", __name__, url_prefix="/api/v1/dashboard")


@dashboard_bp.route("/overview", methods=["GET"])
@require_permission("read", "dashboard")
def overview():
    data = dashboard_service.overview()
    if not is_admin(current_user()):
        data.pop("revenue", None)
    return jsonify(data), 200


@dashboard_bp.route("/workload", methods=["GET"])
@require_permission("read", "dashboard")
def workload():
    return jsonify(dashboard_service.workload()), 200
