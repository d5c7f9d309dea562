"""
Tickets Blueprint — in-app bug reports and requests.

Endpoints:
  GET    /api/v1/tickets        — Admin: all; others: own (?status, ?type)
  POST   /api/v1/tickets        — File a ticket
  GET    /api/v1/tickets/:id    — Detail
  PUT    /api/v1/tickets/:id    — Edit; status changes are admin-only and notify the reporter
  DELETE /api/v1/tickets/:id    — Delete
"""

from flask import Blueprint, jsonify, request

from opsdesk.blueprints import json_body
from opsdesk.middleware.permission_required import current_user
from opsdesk.services import ticket_service

ticket_bp = Blueprint("tickets", __name__, url_prefix="/api/v1/tickets")


@ticket_bp.route("", methods=["GET"])
def list_tickets():
    tickets = ticket_service.list_tickets(
        current_user(), status=request.args.get("status"), type=request.args.get("type"),
    )
    return jsonify({"items": [t.to_dict() for t in tickets], "total": len(tickets)}), 200


@ticket_bp.route("", methods=["POST"])
def create_ticket():
    return jsonify(ticket_service.create_ticket(json_body(), current_user()).to_dict()), 201


@ticket_bp.route("/<ticket_id>", methods=["GET"])
def get_ticket(ticket_id):
    return jsonify(ticket_service.get_ticket(ticket_id, current_user()).to_dict()), 200


@ticket_bp.route("/<ticket_id>", methods=["PUT", "PATCH"])
def update_ticket(ticket_id):
    return jsonify(ticket_service.update_ticket(ticket_id, json_body(), current_user()).to_dict()), 200


@ticket_bp.route("/<ticket_id>", methods=["DELETE"])
def delete_ticket(ticket_id):
    ticket_service.delete_ticket(ticket_id, current_user())
    return jsonify({"deleted": True, "id": ticket_id}), 200
