"""
Clients Blueprint.

Endpoints:
  GET    /api/v1/clients               — List (?q, ?sort, ?order)
  POST   /api/v1/clients               — Create (optional enable_login + password)
  GET    /api/v1/clients/:id           — Detail
  PUT    /api/v1/clients/:id           — Update (enable_login=false unlinks the login)
  DELETE /api/v1/clients/:id           — Delete
  GET    /api/v1/clients/:id/overview  — Client, projects with phase counts, local time
"""

from flask import Blueprint, jsonify, request

from opsdesk.blueprints import json_body
from opsdesk.middleware.permission_required import require_permission
from opsdesk.services import client_service

client_bp = Blueprint("clients", __name__, url_prefix="/api/v1/clients")


@client_bp.route("", methods=["GET"])
@require_permission("read", "clients")
def list_clients():
    clients = client_service.list_clients(
        q=request.args.get("q"),
        sort=request.args.get("sort", "created_at"),
        order=request.args.get("order", "desc"),
    )
    return jsonify({"items": [c.to_dict() for c in clients], "total": len(clients)}), 200


@client_bp.route("", methods=["POST"])
@require_permission("create", "clients")
def create_client():
    return jsonify(client_service.create_client(json_body()).to_dict()), 201


@client_bp.route("/<client_id>", methods=["GET"])
@require_permission("read", "clients")
def get_client(client_id):
    return jsonify(client_service.get_client(client_id).to_dict()), 200


@client_bp.route("/<client_id>", methods=["PUT", "PATCH"])
@require_permission("update", "clients")
def update_client(client_id):
    return jsonify(client_service.update_client(client_id, json_body()).to_dict()), 200


@client_bp.route("/<client_id>", methods=["DELETE"])
@require_permission("delete", "clients")
def delete_client(client_id):
    client_service.delete_client(client_id)
    return jsonify({"deleted": True, "id": client_id}), 200


@client_bp.route("/<client_id>/overview", methods=["GET"])
@require_permission("read", "clients")
def client_overview(client_id):
    return jsonify(client_service.client_overview(client_id)), 200
