"""
Reminders Blueprint.

Endpoints:
  GET    /api/v1/reminders            — Own reminders → {upcoming, past}
  POST   /api/v1/reminders            — { title, description, link, date, time }
  PUT    /api/v1/reminders/:id        — Update (new date/time re-arms it)
  DELETE /api/v1/reminders/:id        — Delete
  POST   /api/v1/reminders/dispatch   — Deliver due reminders now (admin)
"""

from flask import Blueprint, jsonify

from opsdesk.blueprints import json_body
from opsdesk.middleware.permission_required import current_user, require_admin
from opsdesk.services import reminder_service

reminder_bp = Blueprint("reminders", __name__, url_prefix="/api/v1/reminders")


@reminder_bp.route("", methods=["GET"])
def list_reminders():
    return jsonify(reminder_service.list_reminders(current_user().id)), 200


@reminder_bp.route("", methods=["POST"])
def create_reminder():
    return jsonify(reminder_service.create_reminder(current_user().id, json_body()).to_dict()), 201


@reminder_bp.route("/<reminder_id>", methods=["PUT", "PATCH"])
def update_reminder(reminder_id):
    reminder = reminder_service.update_reminder(reminder_id, current_user().id, json_body())
    return jsonify(reminder.to_dict()), 200


@reminder_bp.route("/<reminder_id>", methods=["DELETE"])
def delete_reminder(reminder_id):
    reminder_service.delete_reminder(reminder_id, current_user().id)
    return jsonify({"deleted": True, "id": reminder_id}), 200


@reminder_bp.route("/dispatch", methods=["POST"])
@require_admin
def dispatch_reminders():
    return jsonify({"dispatched": reminder_service.dispatch_due_reminders()}), 200
