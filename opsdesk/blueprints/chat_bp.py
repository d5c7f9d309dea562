"""
Chat Blueprint — channels, direct messages and messages.

Endpoints:
  GET    /api/v1/chat/channels                — List (?project_id; ?dms=1 adds own DMs)
  POST   /api/v1/chat/channels                — Create (name is slugified)
  GET    /api/v1/chat/channels/:id            — Detail
  PUT    /api/v1/chat/channels/:id            — Rename / describe (creator or chat:update)
  DELETE /api/v1/chat/channels/:id            — Delete (creator or chat:update)
  POST   /api/v1/chat/dms                     — { user_id } → get-or-create DM
  GET    /api/v1/chat/channels/:id/messages   — Oldest → newest (?before, ?limit ≤ 100)
  POST   /api/v1/chat/channels/:id/messages   — Post (mentions notify)
  POST   /api/v1/chat/channels/:id/read       — Mark this channel's notifications read
"""

from flask import Blueprint, jsonify, request

from opsdesk.blueprints import json_body
from opsdesk.middleware.permission_required import current_user, require_permission
from opsdesk.services import chat_service
from opsdesk.utils.helpers import flag

chat_bp = Blueprint("chat", __name__, url_prefix="/api/v1/chat")


@chat_bp.route("/channels", methods=["GET"])
@require_permission("read", "chat")
def list_channels():
    channels = chat_service.list_channels(
        current_user(),
        project_id=request.args.get("project_id"),
        include_dms=flag(request.args.get("dms")),
    )
    return jsonify({"items": [c.to_dict() for c in channels], "total": len(channels)}), 200


@chat_bp.route("/channels", methods=["POST"])
@require_permission("create", "chat")
def create_channel():
    return jsonify(chat_service.create_channel(json_body(), current_user()).to_dict()), 201


@chat_bp.route("/channels/<channel_id>", methods=["GET"])
@require_permission("read", "chat")
def get_channel(channel_id):
    return jsonify(chat_service.get_channel(channel_id, current_user()).to_dict()), 200


@chat_bp.route("/channels/<channel_id>", methods=["PUT", "PATCH"])
@require_permission("read", "chat")
def update_channel(channel_id):
    channel = chat_service.update_channel(channel_id, json_body(), current_user())
    return jsonify(channel.to_dict()), 200


@chat_bp.route("/channels/<channel_id>", methods=["DELETE"])
@require_permission("read", "chat")
def delete_channel(channel_id):
    chat_service.delete_channel(channel_id, current_user())
    return jsonify({"deleted": True, "id": channel_id}), 200


@chat_bp.route("/dms", methods=["POST"])
@require_permission("create", "chat")
def open_dm():
    channel, created = chat_service.get_or_create_dm(current_user(), json_body().get("user_id"))
    return jsonify(channel.to_dict()), 201 if created else 200


@chat_bp.route("/channels/<channel_id>/messages", methods=["GET"])
@require_permission("read", "chat")
def list_messages(channel_id):
    messages = chat_service.list_messages(
        channel_id,
        current_user(),
        before=request.args.get("before"),
        limit=request.args.get("limit", type=int),
    )
    return jsonify({"items": [m.to_dict() for m in messages], "total": len(messages)}), 200


@chat_bp.route("/channels/<channel_id>/messages", methods=["POST"])
@require_permission("create", "chat")
def post_message(channel_id):
    message = chat_service.post_message(channel_id, json_body().get("content"), current_user())
    return jsonify(message.to_dict()), 201


@chat_bp.route("/channels/<channel_id>/read", methods=["POST"])
@require_permission("read", "chat")
def mark_read(channel_id):
    count = chat_service.mark_channel_read(channel_id, current_user())
    return jsonify({"marked": count}), 200
