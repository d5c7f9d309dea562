"""
Tasks Blueprint — project tasks (kanban) and personal to-dos.

Project tasks are staff only; personal to-dos belong to whoever is signed in.

Endpoints:
  GET    /api/v1/tasks                          — List (?project_id, ?proposal_id, ?user_id, ?assigned_to, ?status)
  GET    /api/v1/tasks/board                    — Kanban columns (same filters)
  POST   /api/v1/tasks                          — Create (subtasks, member_ids)
  GET    /api/v1/tasks/:id                      — Detail with subtasks
  PUT    /api/v1/tasks/:id                      — Update
  DELETE /api/v1/tasks/:id                      — Delete (subtasks cascade)
  POST   /api/v1/tasks/:id/move                 — { status, over_task_id | position }

  GET    /api/v1/personal-tasks                 — Own to-dos
  GET    /api/v1/personal-tasks/board           — Own kanban
  POST   /api/v1/personal-tasks                 — Create
  PUT    /api/v1/personal-tasks/:id             — Update
  DELETE /api/v1/personal-tasks/:id             — Delete
  POST   /api/v1/personal-tasks/:id/move        — Kanban drop
  POST   /api/v1/personal-tasks/:id/promote     — { proposal_id } → project task
"""

from flask import Blueprint, jsonify, request

from opsdesk.blueprints import json_body
from opsdesk.middleware.permission_required import current_user, deny_clients, require_permission
from opsdesk.services import task_service

task_bp = Blueprint("tasks", __name__, url_prefix="/api/v1")

FILTER_ARGS = ("project_id", "proposal_id", "user_id", "assigned_to", "status")


def _filters():
    return {k: request.args.get(k) for k in FILTER_ARGS if request.args.get(k)}


def _board_json(board):
    return {column: [item.to_dict() for item in items] for column, items in board.items()}


# ═══════════════════════════════════════════════════════════════
# Project tasks
# ═══════════════════════════════════════════════════════════════
@task_bp.route("/tasks", methods=["GET"])
@require_permission("read", "tasks")
@deny_clients
def list_tasks():
    tasks = task_service.list_tasks(top_level_only=True, **_filters())
    return jsonify({"items": [t.to_dict() for t in tasks], "total": len(tasks)}), 200


@task_bp.route("/tasks/board", methods=["GET"])
@require_permission("read", "tasks")
@deny_clients
def task_board():
    return jsonify({"columns": _board_json(task_service.board(**_filters()))}), 200


@task_bp.route("/tasks", methods=["POST"])
@require_permission("create", "tasks")
@deny_clients
def create_task():
    return jsonify(task_service.create_task(json_body(), current_user()).to_dict()), 201


@task_bp.route("/tasks/<task_id>", methods=["GET"])
@require_permission("read", "tasks")
@deny_clients
def get_task(task_id):
    return jsonify(task_service.get_task(task_id).to_dict()), 200


@task_bp.route("/tasks/<task_id>", methods=["PUT", "PATCH"])
@require_permission("update", "tasks")
@deny_clients
def update_task(task_id):
    return jsonify(task_service.update_task(task_id, json_body(), current_user()).to_dict()), 200


@task_bp.route("/tasks/<task_id>", methods=["DELETE"])
@require_permission("delete", "tasks")
@deny_clients
def delete_task(task_id):
    task_service.delete_task(task_id)
    return jsonify({"deleted": True, "id": task_id}), 200


@task_bp.route("/tasks/<task_id>/move", methods=["POST"])
@require_permission("update", "tasks")
@deny_clients
def move_task(task_id):
    data = json_body()
    task, changed = task_service.move_task(
        task_id,
        status=data.get("status"),
        over_task_id=data.get("over_task_id"),
        position=data.get("position"),
    )
    return jsonify({
        "task": task.to_dict(),
        "changed": [{"id": t.id, "status": t.status, "order_index": t.order_index} for t in changed],
    }), 200


# ═══════════════════════════════════════════════════════════════
# Personal tasks
# ═══════════════════════════════════════════════════════════════
@task_bp.route("/personal-tasks", methods=["GET"])
def list_personal_tasks():
    tasks = task_service.list_personal(current_user().id)
    return jsonify({"items": [t.to_dict() for t in tasks], "total": len(tasks)}), 200


@task_bp.route("/personal-tasks/board", methods=["GET"])
def personal_board():
    return jsonify({"columns": _board_json(task_service.personal_board(current_user().id))}), 200


@task_bp.route("/personal-tasks", methods=["POST"])
def create_personal_task():
    task = task_service.create_personal(current_user().id, json_body())
    return jsonify(task.to_dict()), 201


@task_bp.route("/personal-tasks/<task_id>", methods=["PUT", "PATCH"])
def update_personal_task(task_id):
    task = task_service.update_personal(task_id, current_user().id, json_body())
    return jsonify(task.to_dict()), 200


@task_bp.route("/personal-tasks/<task_id>", methods=["DELETE"])
def delete_personal_task(task_id):
    task_service.delete_personal(task_id, current_user().id)
    return jsonify({"deleted": True, "id": task_id}), 200


@task_bp.route("/personal-tasks/<task_id>/move", methods=["POST"])
def move_personal_task(task_id):
    data = json_body()
    task, changed = task_service.move_personal(
        task_id, current_user().id,
        status=data.get("status"),
        over_task_id=data.get("over_task_id"),
    )
    return jsonify({
        "task": task.to_dict(),
        "changed": [{"id": t.id, "status": t.status, "order_index": t.order_index} for t in changed],
    }), 200


@task_bp.route("/personal-tasks/<task_id>/promote", methods=["POST"])
@require_permission("create", "tasks")
@deny_clients
def promote_personal_task(task_id):
    task = task_service.promote_personal(task_id, current_user(), json_body().get("proposal_id"))
    return jsonify(task.to_dict()), 201
