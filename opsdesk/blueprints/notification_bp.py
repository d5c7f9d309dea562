"""
Notifications Blueprint — in-app notifications, settings, push subscriptions.

Endpoints:
  GET    /api/v1/notifications                  — Latest 50 + unread_count
  POST   /api/v1/notifications                  — Send a system notification (admin)
  GET    /api/v1/notifications/unread-count     — {unread_count}
  POST   /api/v1/notifications/:id/read         — Mark one read
  POST   /api/v1/notifications/read-all         — Mark all read → {marked}
  DELETE /api/v1/notifications/:id              — Delete own notification
  GET    /api/v1/notifications/settings         — Settings (created on first read)
  PUT    /api/v1/notifications/settings         — Toggle dm / mention / task
  POST   /api/v1/notifications/push             — Register push subscription
  DELETE /api/v1/notifications/push             — Unregister by endpoint
"""

import logging

from flask import Blueprint, jsonify, request

from opsdesk.blueprints import json_body
from opsdesk.middleware.permission_required import current_user, require_admin
from opsdesk.services.notification_service import NotificationService
from opsdesk.utils.helpers import db_commit_or_error, text_arg

logger = logging.getLogger(__name__)

notification_bp = Blueprint("notifications", __name__, url_prefix="/api/v1/notifications")


# ═══════════════════════════════════════════════════════════════════════════
#  NOTIFICATIONS
# ═══════════════════════════════════════════════════════════════════════════

@notification_bp.route("", methods=["GET"])
def list_notifications():
    user = current_user()
    items = NotificationService.list_for_user(user.id)
    return jsonify({
        "items": [n.to_dict() for n in items],
        "unread_count": NotificationService.unread_count(user.id),
    }), 200


@notification_bp.route("", methods=["POST"])
@require_admin
def send_notification():
    """Body: { "user_id", "title", "content", "link" }"""
    data = json_body()
    title = text_arg(data.get("title"), "title")
    if not data.get("user_id") or not title:
        return jsonify({"error": "user_id and title are required", "code": "ERR_VALIDATION_REQUIRED"}), 400
    notif = NotificationService.notify(
        user_id=data["user_id"],
        type="system",
        title=title,
        content=text_arg(data.get("content"), "content"),
        link=data.get("link"),
        metadata=data.get("metadata") or {},
        actor_id=current_user().id,
    )
    err = db_commit_or_error()
    if err:
        return err
    if notif is None:
        return jsonify({"sent": False}), 200
    return jsonify(notif.to_dict()), 201


@notification_bp.route("/unread-count", methods=["GET"])
def unread_count():
    return jsonify({"unread_count": NotificationService.unread_count(current_user().id)}), 200


@notification_bp.route("/<notification_id>/read", methods=["POST"])
def mark_read(notification_id):
    notif = NotificationService.mark_read(notification_id, current_user().id)
    return jsonify(notif.to_dict()), 200


@notification_bp.route("/read-all", methods=["POST"])
def mark_all_read():
    return jsonify({"marked": NotificationService.mark_all_read(current_user().id)}), 200


@notification_bp.route("/<notification_id>", methods=["DELETE"])
def delete_notification(notification_id):
    NotificationService.delete(notification_id, current_user().id)
    return jsonify({"deleted": True, "id": notification_id}), 200


# ═══════════════════════════════════════════════════════════════════════════
#  SETTINGS & PUSH
# ═══════════════════════════════════════════════════════════════════════════

@notification_bp.route("/settings", methods=["GET"])
def get_settings():
    settings = NotificationService.get_settings(current_user().id)
    err = db_commit_or_error()
    if err:
        return err
    return jsonify(settings.to_dict()), 200


@notification_bp.route("/settings", methods=["PUT", "PATCH"])
def update_settings():
    settings = NotificationService.update_settings(current_user().id, json_body())
    return jsonify(settings.to_dict()), 200


@notification_bp.route("/push", methods=["POST"])
def register_push():
    data = json_body()
    sub, created = NotificationService.register_push(current_user().id, data.get("subscription", data))
    return jsonify(sub.to_dict()), 201 if created else 200


@notification_bp.route("/push", methods=["DELETE"])
def unregister_push():
    endpoint = json_body().get("endpoint") or request.args.get("endpoint")
    removed = NotificationService.unregister_push(current_user().id, endpoint)
    return jsonify({"removed": removed}), 200
