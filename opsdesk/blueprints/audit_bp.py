"""
Audit Blueprint.

Endpoints:
  GET /api/v1/audit-logs   — Admin only; ?table_name, ?action, ?user_id, ?record_id,
                             ?limit (default 50, max 200), ?offset
"""

from flask import Blueprint, jsonify, request

from opsdesk.middleware.permission_required import require_admin
from opsdesk.services import audit_service
from opsdesk.utils.helpers import pagination_args

audit_bp = Blueprint("audit", __name__, url_prefix="/api/v1")


@audit_bp.route("/audit-logs", methods=["GET"])
@require_admin
def list_audit_logs():
    limit, offset = pagination_args(default_limit=audit_service.DEFAULT_LIMIT, max_limit=audit_service.MAX_LIMIT)
    return jsonify(audit_service.list_audit_logs(
        table_name=request.args.get("table_name"),
        action=request.args.get("action"),
        user_id=request.args.get("user_id"),
        record_id=request.args.get("record_id"),
        limit=limit,
        offset=offset,
    )), 200
