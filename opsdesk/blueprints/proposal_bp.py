"""
Proposals (phases) Blueprint — phases, deliverables, revisions, phase chat.

Endpoints:
  GET    /api/v1/proposals                        — List (?project_id, ?status); clients: own projects
  POST   /api/v1/proposals                        — Create (money fields: admin only)
  GET    /api/v1/proposals/:id                    — Detail + parsed template items
  PUT    /api/v1/proposals/:id                    — Update (deliverables replaced when given)
  DELETE /api/v1/proposals/:id                    — Delete
  POST   /api/v1/proposals/reorder                — { project_id, ids: [...] }
  POST   /api/v1/proposals/:id/channel            — Get or create the phase chat channel

  GET    /api/v1/proposals/:id/revisions          — Revisions of a phase
  POST   /api/v1/proposals/:id/revisions          — Client change request
  GET    /api/v1/revisions                        — All revisions (?status; clients: own)
  PUT    /api/v1/revisions/:id                    — Update (clients: own pending, no status)
  DELETE /api/v1/revisions/:id                    — Delete (clients: own pending)
  POST   /api/v1/revisions/:id/delegate           — Create a task from the revision
"""

from flask import Blueprint, jsonify, request

from opsdesk.blueprints import json_body
from opsdesk.middleware.permission_required import current_user, deny_clients, require_permission
from opsdesk.services import chat_service, proposal_service
from opsdesk.services.permission_service import is_admin, is_client

proposal_bp = Blueprint("proposals", __name__, url_prefix="/api/v1")


def _serialize(proposal, with_template=False):
    d = proposal.to_dict(include_money=is_admin(current_user()))
    if with_template:
        d["template"] = proposal_service.template_items(proposal)
    return d


# ═══════════════════════════════════════════════════════════════
# Proposals
# ═══════════════════════════════════════════════════════════════
@proposal_bp.route("/proposals", methods=["GET"])
@require_permission("read", "proposals")
def list_proposals():
    user = current_user()
    proposals = proposal_service.list_proposals(
        project_id=request.args.get("project_id"),
        status=request.args.get("status"),
        client_user_id=user.id if is_client(user) else None,
    )
    return jsonify({"items": [_serialize(p) for p in proposals], "total": len(proposals)}), 200


@proposal_bp.route("/proposals", methods=["POST"])
@require_permission("create", "proposals")
@deny_clients
def create_proposal():
    proposal = proposal_service.create_proposal(json_body(), current_user())
    return jsonify(_serialize(proposal, with_template=True)), 201


@proposal_bp.route("/proposals/reorder", methods=["POST"])
@require_permission("update", "proposals")
@deny_clients
def reorder_proposals():
    data = json_body()
    proposals = proposal_service.reorder_proposals(data.get("project_id"), data.get("ids"))
    return jsonify({"items": [_serialize(p) for p in proposals]}), 200


@proposal_bp.route("/proposals/<proposal_id>", methods=["GET"])
@require_permission("read", "proposals")
def get_proposal(proposal_id):
    proposal = proposal_service.get_visible_proposal(proposal_id, current_user())
    return jsonify(_serialize(proposal, with_template=True)), 200


@proposal_bp.route("/proposals/<proposal_id>", methods=["PUT", "PATCH"])
@require_permission("update", "proposals")
@deny_clients
def update_proposal(proposal_id):
    proposal = proposal_service.update_proposal(proposal_id, json_body(), current_user())
    return jsonify(_serialize(proposal, with_template=True)), 200


@proposal_bp.route("/proposals/<proposal_id>", methods=["DELETE"])
@require_permission("delete", "proposals")
@deny_clients
def delete_proposal(proposal_id):
    proposal_service.delete_proposal(proposal_id)
    return jsonify({"deleted": True, "id": proposal_id}), 200


@proposal_bp.route("/proposals/<proposal_id>/channel", methods=["POST"])
@require_permission("read", "chat")
def proposal_channel(proposal_id):
    channel, created = chat_service.get_or_create_proposal_channel(proposal_id, current_user())
    return jsonify(channel.to_dict()), 201 if created else 200


# ═══════════════════════════════════════════════════════════════
# Revisions
# ═══════════════════════════════════════════════════════════════
@proposal_bp.route("/proposals/<proposal_id>/revisions", methods=["GET"])
@require_permission("read", "proposals")
def list_proposal_revisions(proposal_id):
    proposal_service.get_visible_proposal(proposal_id, current_user())
    revisions = proposal_service.list_revisions(
        proposal_id=proposal_id, status=request.args.get("status"), actor=current_user(),
    )
    return jsonify({"items": [r.to_dict() for r in revisions], "total": len(revisions)}), 200


@proposal_bp.route("/proposals/<proposal_id>/revisions", methods=["POST"])
@require_permission("create", "proposals")
def create_revision(proposal_id):
    revision = proposal_service.create_revision(proposal_id, json_body(), current_user())
    return jsonify(revision.to_dict()), 201


@proposal_bp.route("/revisions", methods=["GET"])
@require_permission("read", "proposals")
def list_revisions():
    revisions = proposal_service.list_revisions(status=request.args.get("status"), actor=current_user())
    return jsonify({"items": [r.to_dict() for r in revisions], "total": len(revisions)}), 200


@proposal_bp.route("/revisions/<revision_id>", methods=["PUT", "PATCH"])
@require_permission("update", "proposals")
def update_revision(revision_id):
    revision = proposal_service.update_revision(revision_id, json_body(), current_user())
    return jsonify(revision.to_dict()), 200


@proposal_bp.route("/revisions/<revision_id>", methods=["DELETE"])
@require_permission("delete", "proposals")
def delete_revision(revision_id):
    proposal_service.delete_revision(revision_id, current_user())
    return jsonify({"deleted": True, "id": revision_id}), 200


@proposal_bp.route("/revisions/<revision_id>/delegate", methods=["POST"])
@require_permission("create", "tasks")
def delegate_revision(revision_id):
    revision, task = proposal_service.delegate_revision(revision_id, json_body(), current_user())
    return jsonify({"revision": revision.to_dict(), "task": task.to_dict()}), 201
