"""
Credentials Blueprint — project secret vault.

Staff only: client logins get 403 on every route.

Endpoints:
  GET    /api/v1/credentials              — Masked list (?project_id, ?type)
  POST   /api/v1/credentials              — Store a secret
  GET    /api/v1/credentials/:id          — Masked detail
  PUT    /api/v1/credentials/:id          — Update (secret replaced only when supplied)
  DELETE /api/v1/credentials/:id          — Delete
  GET    /api/v1/credentials/:id/reveal   — Plaintext value (audited)
"""

from flask import Blueprint, jsonify, request

from opsdesk.blueprints import json_body
from opsdesk.middleware.permission_required import current_user, deny_clients, require_permission
from opsdesk.services import credential_service

credential_bp = Blueprint("credentials", __name__, url_prefix="/api/v1/credentials")


@credential_bp.route("", methods=["GET"])
@require_permission("read", "credentials")
@deny_clients
def list_credentials():
    creds = credential_service.list_credentials(
        project_id=request.args.get("project_id"), type=request.args.get("type"),
    )
    return jsonify({"items": [c.to_dict() for c in creds], "total": len(creds)}), 200


@credential_bp.route("", methods=["POST"])
@require_permission("create", "credentials")
@deny_clients
def create_credential():
    return jsonify(credential_service.create_credential(json_body(), current_user()).to_dict()), 201


@credential_bp.route("/<credential_id>", methods=["GET"])
@require_permission("read", "credentials")
@deny_clients
def get_credential(credential_id):
    return jsonify(credential_service.get_credential(credential_id).to_dict()), 200


@credential_bp.route("/<credential_id>", methods=["PUT", "PATCH"])
@require_permission("update", "credentials")
@deny_clients
def update_credential(credential_id):
    return jsonify(credential_service.update_credential(credential_id, json_body()).to_dict()), 200


@credential_bp.route("/<credential_id>", methods=["DELETE"])
@require_permission("delete", "credentials")
@deny_clients
def delete_credential(credential_id):
    credential_service.delete_credential(credential_id)
    return jsonify({"deleted": True, "id": credential_id}), 200


@credential_bp.route("/<credential_id>/reveal", methods=["GET"])
@require_permission("read", "credentials")
@deny_clients
def reveal_credential(credential_id):
    return jsonify(credential_service.reveal_credential(credential_id, current_user())), 200
