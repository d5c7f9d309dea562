"""
Projects Blueprint.

Client logins only see their own projects and never write.

Endpoints:
  GET    /api/v1/projects                       — List (?client_id, ?status, ?q, ?member=1)
  POST   /api/v1/projects                       — Create (client_id required; member_ids)
  GET    /api/v1/projects/:id                   — Detail
  PUT    /api/v1/projects/:id                   — Update (member_ids replaces membership)
  DELETE /api/v1/projects/:id                   — Delete with phases, tasks, channels, docs, credentials
  POST   /api/v1/projects/:id/refresh-status    — Recompute status from phases
  GET    /api/v1/projects/:id/documents         — Documents
  POST   /api/v1/projects/:id/documents         — Add document
  DELETE /api/v1/projects/:id/documents/:doc_id — Remove document
"""

from flask import Blueprint, jsonify, request

from opsdesk.blueprints import json_body
from opsdesk.middleware.permission_required import current_user, deny_clients, require_permission
from opsdesk.services import project_service
from opsdesk.services.permission_service import is_client
from opsdesk.utils.helpers import db_commit_or_error, flag

project_bp = Blueprint("projects", __name__, url_prefix="/api/v1/projects")


@project_bp.route("", methods=["GET"])
@require_permission("read", "projects")
def list_projects():
    user = current_user()
    member_of = user.id if flag(request.args.get("member")) else None
    projects = project_service.list_projects(
        client_id=request.args.get("client_id"),
        status=request.args.get("status"),
        q=request.args.get("q"),
        member_of=member_of,
        client_user_id=user.id if is_client(user) else None,
    )
    return jsonify({"items": [p.to_dict() for p in projects], "total": len(projects)}), 200


@project_bp.route("", methods=["POST"])
@require_permission("create", "projects")
@deny_clients
def create_project():
    project = project_service.create_project(json_body(), actor_id=current_user().id)
    return jsonify(project.to_dict()), 201


@project_bp.route("/<project_id>", methods=["GET"])
@require_permission("read", "projects")
def get_project(project_id):
    return jsonify(project_service.get_visible_project(project_id, current_user()).to_dict()), 200


@project_bp.route("/<project_id>", methods=["PUT", "PATCH"])
@require_permission("update", "projects")
@deny_clients
def update_project(project_id):
    return jsonify(project_service.update_project(project_id, json_body()).to_dict()), 200


@project_bp.route("/<project_id>", methods=["DELETE"])
@require_permission("delete", "projects")
@deny_clients
def delete_project(project_id):
    project_service.delete_project(project_id)
    return jsonify({"deleted": True, "id": project_id}), 200


@project_bp.route("/<project_id>/refresh-status", methods=["POST"])
@require_permission("update", "projects")
@deny_clients
def refresh_status(project_id):
    project_service.get_project(project_id)
    status = project_service.update_project_status(project_id)
    err = db_commit_or_error()
    if err:
        return err
    return jsonify({"id": project_id, "status": status}), 200


# ── Documents ────────────────────────────────────────────────────────────────

@project_bp.route("/<project_id>/documents", methods=["GET"])
@require_permission("read", "projects")
@deny_clients
def list_documents(project_id):
    docs = project_service.list_documents(project_id)
    return jsonify({"items": [d.to_dict() for d in docs], "total": len(docs)}), 200


@project_bp.route("/<project_id>/documents", methods=["POST"])
@require_permission("update", "projects")
@deny_clients
def add_document(project_id):
    doc = project_service.add_document(project_id, json_body(), actor_id=current_user().id)
    return jsonify(doc.to_dict()), 201


@project_bp.route("/<project_id>/documents/<document_id>", methods=["DELETE"])
@require_permission("update", "projects")
@deny_clients
def delete_document(project_id, document_id):
    project_service.delete_document(project_id, document_id)
    return jsonify({"deleted": True, "id": document_id}), 200
