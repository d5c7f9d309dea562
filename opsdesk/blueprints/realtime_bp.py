"""
Realtime Blueprint — change feed polling and navigation helpers.

Endpoints:
  GET /api/v1/realtime/changes        — ?since=<cursor>&table=&record_id=&limit=&hydrate=1
  GET /api/v1/realtime/cursor         — Latest cursor (start point for new clients)
  GET /api/v1/navigation/breadcrumbs  — ?path=/projects/<id>/phases
"""

from flask import Blueprint, jsonify, request

from opsdesk.middleware.permission_required import current_user
from opsdesk.services import realtime_service
from opsdesk.utils.helpers import flag
from opsdesk.utils.navigation import build_breadcrumbs

realtime_bp = Blueprint("realtime", __name__, url_prefix="/api/v1")


@realtime_bp.route("/realtime/changes", methods=["GET"])
def changes():
    return jsonify(realtime_service.changes(
        current_user(),
        since=request.args.get("since"),
        table=request.args.get("table"),
        record_id=request.args.get("record_id"),
        limit=request.args.get("limit", type=int),
        hydrate=flag(request.args.get("hydrate")),
    )), 200


@realtime_bp.route("/realtime/cursor", methods=["GET"])
def cursor():
    return jsonify({"cursor": realtime_service.latest_cursor()}), 200


@realtime_bp.route("/navigation/breadcrumbs", methods=["GET"])
def breadcrumbs():
    return jsonify({"items": build_breadcrumbs(request.args.get("path", ""))}), 200
