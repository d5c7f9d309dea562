"""
Team Blueprint — profiles, custom roles, PIN audit and the organization.

Endpoints:
  GET    /api/v1/users                  — Team list (?role, ?q, ?include_clients=1)
  POST   /api/v1/users                  — Create profile (admin)
  GET    /api/v1/users/:id              — Profile
  PUT    /api/v1/users/:id              — Admin: anything; self: name/username/avatar
  DELETE /api/v1/users/:id              — Delete account + memberships (admin)

  GET    /api/v1/roles                  — Custom roles
  POST   /api/v1/roles                  — Create (admin)
  PUT    /api/v1/roles/:id              — Update (admin)
  DELETE /api/v1/roles/:id              — Delete non-system role (admin)

  GET    /api/v1/pin-logs               — PIN attempts (admin; ?user_id, ?attempt_type, ?is_success)

  GET    /api/v1/organizations/current  — Company profile
  PUT    /api/v1/organizations/current  — Update company profile / VAT (admin)
"""

from flask import Blueprint, jsonify, request

from opsdesk.blueprints import json_body
from opsdesk.middleware.permission_required import current_user, require_admin, require_permission
from opsdesk.services import organization_service, pin_service, role_service, user_service
from opsdesk.utils.helpers import flag

team_bp = Blueprint("team", __name__, url_prefix="/api/v1")


# ═══════════════════════════════════════════════════════════════
# Users
# ═══════════════════════════════════════════════════════════════
@team_bp.route("/users", methods=["GET"])
@require_permission("read", "team")
def list_users():
    users = user_service.list_profiles(
        role=request.args.get("role"),
        q=request.args.get("q"),
        include_clients=flag(request.args.get("include_clients")),
    )
    return jsonify({"items": [u.to_dict() for u in users], "total": len(users)}), 200


@team_bp.route("/users", methods=["POST"])
@require_admin
def create_user():
    actor = current_user()
    user = user_service.create_profile(json_body(), organization_id=actor.organization_id)
    return jsonify(user.to_dict()), 201


@team_bp.route("/users/<user_id>", methods=["GET"])
@require_permission("read", "team")
def get_user(user_id):
    return jsonify(user_service.get_profile(user_id).to_dict()), 200


@team_bp.route("/users/<user_id>", methods=["PUT", "PATCH"])
def update_user(user_id):
    user = user_service.update_profile(user_id, json_body(), current_user())
    return jsonify(user.to_dict()), 200


@team_bp.route("/users/<user_id>", methods=["DELETE"])
@require_admin
def delete_user(user_id):
    user_service.delete_account(user_id, actor=current_user())
    return jsonify({"deleted": True, "id": user_id}), 200


# ═══════════════════════════════════════════════════════════════
# Custom roles
# ═══════════════════════════════════════════════════════════════
@team_bp.route("/roles", methods=["GET"])
@require_permission("read", "team")
def list_roles():
    return jsonify({"items": [r.to_dict() for r in role_service.list_roles()]}), 200


@team_bp.route("/roles", methods=["POST"])
@require_admin
def create_role():
    return jsonify(role_service.create_role(json_body()).to_dict()), 201


@team_bp.route("/roles/<role_id>", methods=["GET"])
@require_permission("read", "team")
def get_role(role_id):
    return jsonify(role_service.get_role(role_id).to_dict()), 200


@team_bp.route("/roles/<role_id>", methods=["PUT", "PATCH"])
@require_admin
def update_role(role_id):
    return jsonify(role_service.update_role(role_id, json_body()).to_dict()), 200


@team_bp.route("/roles/<role_id>", methods=["DELETE"])
@require_admin
def delete_role(role_id):
    role_service.delete_role(role_id)
    return jsonify({"deleted": True, "id": role_id}), 200


# ═══════════════════════════════════════════════════════════════
# PIN logs
# ═══════════════════════════════════════════════════════════════
@team_bp.route("/pin-logs", methods=["GET"])
@require_admin
def list_pin_logs():
    raw_success = request.args.get("is_success")
    logs = pin_service.list_pin_logs(
        user_id=request.args.get("user_id"),
        attempt_type=request.args.get("attempt_type"),
        is_success=None if raw_success in (None, "") else flag(raw_success),
    )
    return jsonify({"items": [log.to_dict() for log in logs], "total": len(logs)}), 200


# ═══════════════════════════════════════════════════════════════
# Organization
# ═══════════════════════════════════════════════════════════════
@team_bp.route("/organizations/current", methods=["GET"])
def get_organization():
    org = organization_service.get_current(current_user())
    return jsonify(org.to_dict() if org else None), 200


@team_bp.route("/organizations/current", methods=["PUT", "PATCH"])
@require_admin
def update_organization():
    org = organization_service.update_current(current_user(), json_body())
    return jsonify(org.to_dict()), 200
