"""
Task Service — project tasks (kanban cards), assignments, subtasks and
personal to-dos.

Board scope: top-level tasks (no parent) of one proposal, or of one
project when the task has no proposal. Moves renumber within that scope.
"""

import logging

from sqlalchemy import or_

from opsdesk.core.exceptions import NotFoundError, ValidationError
from opsdesk.models import db
from opsdesk.models.audit import write_audit
from opsdesk.models.auth import Profile
from opsdesk.models.project import Project
from opsdesk.models.proposal import Proposal
from opsdesk.models.task import PersonalTask, Task, TaskMember
from opsdesk.services import kanban
from opsdesk.services.notification_service import NotificationService
from opsdesk.utils.helpers import text_arg

logger = logging.getLogger(__name__)

DEFAULT_STATUS = "todo"


def _clean_status(value, default=DEFAULT_STATUS) -> str:
    status = str(value or "").strip().lower()
    return status or default


def _require_profile(user_id, field="user_id"):
    if user_id and db.session.get(Profile, user_id) is None:
        raise ValidationError(f"{field} does not exist", details={field: "not_found"})


def task_link(task: Task) -> str:
    if task.project_id and task.proposal_id:
        return f"/projects/{task.project_id}/phases/{task.proposal_id}"
    if task.project_id:
        return f"/projects/{task.project_id}/phases"
    return "/projects"


def _notify_assigned(task: Task, user_ids, actor) -> None:
    actor_id = actor.id if actor is not None else None
    for user_id in dict.fromkeys(u for u in user_ids if u):
        NotificationService.notify(
            user_id=user_id,
            type="task",
            title="New task assigned",
            content=task.title,
            link=task_link(task),
            metadata={"task_id": task.id, "assigned_by": actor_id},
            actor_id=actor_id,
        )


def set_members(task: Task, member_ids) -> list[str]:
    """Replace task members; returns the user ids that were newly added."""
    if member_ids is None:
        return []
    if not isinstance(member_ids, list):
        raise ValidationError("member_ids must be a list", details={"member_ids": "list"})
    wanted = list(dict.fromkeys(str(m) for m in member_ids if m))
    for user_id in wanted:
        _require_profile(user_id, "member_ids")

    for member in list(task.members):
        if member.user_id not in wanted:
            task.members.remove(member)
    current = {m.user_id for m in task.members}
    added = [u for u in wanted if u not in current]
    for user_id in added:
        task.members.append(TaskMember(user_id=user_id))
    return added


# ── Queries ──────────────────────────────────────────────────────────────────

def get_task(task_id) -> Task:
    task = db.session.get(Task, task_id)
    if task is None:
        raise NotFoundError(resource="Task", resource_id=task_id)
    return task


def list_tasks(project_id=None, proposal_id=None, user_id=None, assigned_to=None,
               status=None, top_level_only=False):
    """
    ``assigned_to`` matches tasks where the user is the primary assignee
    OR a task member.
    """
    query = Task.query
    if project_id:
        query = query.filter(Task.project_id == project_id)
    if proposal_id:
        query = query.filter(Task.proposal_id == proposal_id)
    if user_id:
        query = query.filter(Task.user_id == user_id)
    if assigned_to:
        query = query.filter(or_(
            Task.user_id == assigned_to,
            Task.members.any(TaskMember.user_id == assigned_to),
        ))
    if status:
        query = query.filter(Task.status == status)
    if top_level_only:
        query = query.filter(Task.parent_id.is_(None))
    return query.order_by(Task.order_index.asc(), Task.created_at.asc()).all()


def board(**filters) -> dict[str, list]:
    tasks = list_tasks(top_level_only=True, **filters)
    return kanban.group_by_column(tasks)


def _scope_query(task: Task):
    query = Task.query.filter(Task.parent_id.is_(None))
    if task.proposal_id:
        return query.filter(Task.proposal_id == task.proposal_id)
    if task.project_id:
        return query.filter(Task.project_id == task.project_id, Task.proposal_id.is_(None))
    return query.filter(Task.proposal_id.is_(None), Task.project_id.is_(None))


# ── Mutations ────────────────────────────────────────────────────────────────

def _resolve_parent_scope(data: dict) -> tuple[str | None, str | None]:
    proposal_id = data.get("proposal_id")
    project_id = data.get("project_id")
    if proposal_id:
        proposal = db.session.get(Proposal, proposal_id)
        if proposal is None:
            raise ValidationError("proposal_id does not exist", details={"proposal_id": "not_found"})
        project_id = proposal.project_id
    elif project_id and db.session.get(Project, project_id) is None:
        raise ValidationError("project_id does not exist", details={"project_id": "not_found"})
    return proposal_id, project_id


def create_task(data: dict, actor, commit: bool = True) -> Task:
    title = text_arg(data.get("title"), "title")
    if not title:
        raise ValidationError("title is required", details={"title": "required"})
    proposal_id, project_id = _resolve_parent_scope(data)
    _require_profile(data.get("user_id"))

    parent_id = data.get("parent_id")
    if parent_id:
        parent = get_task(parent_id)
        proposal_id, project_id = parent.proposal_id, parent.project_id

    task = Task(
        title=title,
        description=text_arg(data.get("description"), "description"),
        status=_clean_status(data.get("status")),
        user_id=data.get("user_id") or None,
        proposal_id=proposal_id,
        project_id=project_id,
        deliverable_id=data.get("deliverable_id") or None,
        parent_id=parent_id or None,
        created_by=actor.id if actor is not None else None,
    )
    if data.get("order_index") is not None:
        task.order_index = _parse_position(data["order_index"], "order_index")
    else:
        task.order_index = _scope_query(task).filter(Task.status == task.status).count()
    db.session.add(task)
    added = set_members(task, data.get("member_ids"))

    for idx, sub_title in enumerate(data.get("subtasks") or []):
        sub_title = str(sub_title.get("title") if isinstance(sub_title, dict) else sub_title or "").strip()
        if sub_title:
            task.subtasks.append(Task(
                title=sub_title,
                status=DEFAULT_STATUS,
                proposal_id=proposal_id,
                project_id=project_id,
                order_index=idx,
                created_by=task.created_by,
            ))

    db.session.flush()
    write_audit(table_name="tasks", record_id=task.id, action="INSERT", new_data=task.to_dict())
    _notify_assigned(task, [task.user_id] + added, actor)
    if commit:
        db.session.commit()
    return task


def update_task(task_id, data: dict, actor) -> Task:
    task = get_task(task_id)
    old = task.to_dict()
    newly_assigned = []

    if "title" in data:
        title = text_arg(data.get("title"), "title")
        if not title:
            raise ValidationError("title cannot be empty", details={"title": "required"})
        task.title = title
    if "description" in data:
        task.description = text_arg(data.get("description"), "description")
    if "status" in data:
        task.status = _clean_status(data["status"])
    if "order_index" in data and data["order_index"] is not None:
        task.order_index = _parse_position(data["order_index"], "order_index")
    if "deliverable_id" in data:
        task.deliverable_id = data["deliverable_id"] or None
    if "proposal_id" in data or "project_id" in data:
        task.proposal_id, task.project_id = _resolve_parent_scope({
            "proposal_id": data.get("proposal_id", task.proposal_id),
            "project_id": data.get("project_id", task.project_id),
        })
    if "user_id" in data:
        user_id = data["user_id"] or None
        _require_profile(user_id)
        if user_id and user_id != task.user_id:
            newly_assigned.append(user_id)
        task.user_id = user_id
    newly_assigned += set_members(task, data.get("member_ids"))

    db.session.flush()
    write_audit(table_name="tasks", record_id=task.id, action="UPDATE", old_data=old, new_data=task.to_dict())
    _notify_assigned(task, newly_assigned, actor)
    db.session.commit()
    return task


def delete_task(task_id) -> None:
    task = get_task(task_id)
    old = task.to_dict()
    db.session.delete(task)
    write_audit(table_name="tasks", record_id=task_id, action="DELETE", old_data=old)
    db.session.commit()


def _parse_position(value, field="position") -> int:
    try:
        return int(value)
    except (TypeError, ValueError) as e:
        raise ValidationError(f"{field} must be an integer", details={field: "invalid"}) from e


def move_task(task_id, status=None, over_task_id=None, position=None) -> tuple[Task, list[Task]]:
    """
    Kanban drop. ``over_task_id`` → splice before/after that card;
    ``position`` → that index of the target column;
    otherwise append to the end of ``status``'s column.

    Returns (task, changed_tasks).
    """
    task = get_task(task_id)
    over = None
    if over_task_id:
        over = get_task(over_task_id)
        if over.id != task.id and _scope_query(task).filter(Task.id == over.id).first() is None:
            raise ValidationError("over_task_id is not on the same board", details={"over_task_id": "scope"})
    elif not status and position is None:
        raise ValidationError("status or over_task_id is required", details={"status": "required"})

    target = _clean_status(status, default=task.status) if status else task.status
    board_items = _scope_query(task).all()
    if task not in board_items:
        board_items.append(task)
    if over is None and position is not None:
        changed = kanban.move_to_position(board_items, task, target, _parse_position(position))
    else:
        changed = kanban.move_card(board_items, task, target, over)
    if changed:
        db.session.commit()
        logger.debug("Task %s moved to %s; %d rows renumbered", task.id, task.status, len(changed))
    return task, changed


# ═══════════════════════════════════════════════════════════════
# Personal tasks
# ═══════════════════════════════════════════════════════════════

def _own_personal(task_id, user_id) -> PersonalTask:
    task = db.session.get(PersonalTask, task_id)
    if task is None or task.user_id != user_id:
        raise NotFoundError(resource="PersonalTask", resource_id=task_id)
    return task


def list_personal(user_id):
    return (
        PersonalTask.query.filter_by(user_id=user_id, parent_id=None)
        .order_by(PersonalTask.order_index.asc(), PersonalTask.created_at.asc())
        .all()
    )


def personal_board(user_id) -> dict[str, list]:
    return kanban.group_by_column(list_personal(user_id))


def create_personal(user_id, data: dict) -> PersonalTask:
    title = text_arg(data.get("title"), "title")
    if not title:
        raise ValidationError("title is required", details={"title": "required"})
    parent_id = data.get("parent_id")
    if parent_id:
        _own_personal(parent_id, user_id)
    status = _clean_status(data.get("status"))
    task = PersonalTask(
        user_id=user_id,
        title=title,
        description=text_arg(data.get("description"), "description"),
        status=status,
        parent_id=parent_id or None,
        order_index=PersonalTask.query.filter_by(user_id=user_id, parent_id=parent_id or None, status=status).count(),
    )
    db.session.add(task)
    for idx, sub_title in enumerate(data.get("subtasks") or []):
        sub_title = str(sub_title or "").strip()
        if sub_title:
            task.subtasks.append(PersonalTask(user_id=user_id, title=sub_title, status=DEFAULT_STATUS, order_index=idx))
    db.session.commit()
    return task


def update_personal(task_id, user_id, data: dict) -> PersonalTask:
    task = _own_personal(task_id, user_id)
    if "title" in data:
        title = text_arg(data.get("title"), "title")
        if not title:
            raise ValidationError("title cannot be empty", details={"title": "required"})
        task.title = title
    if "description" in data:
        task.description = text_arg(data.get("description"), "description")
    if "status" in data:
        task.status = _clean_status(data["status"])
    if "order_index" in data and data["order_index"] is not None:
        task.order_index = _parse_position(data["order_index"], "order_index")
    db.session.commit()
    return task


def delete_personal(task_id, user_id) -> None:
    task = _own_personal(task_id, user_id)
    db.session.delete(task)
    db.session.commit()


def move_personal(task_id, user_id, status=None, over_task_id=None):
    task = _own_personal(task_id, user_id)
    over = _own_personal(over_task_id, user_id) if over_task_id else None
    if over is not None and over.parent_id != task.parent_id:
        raise ValidationError("over_task_id is not on the same board", details={"over_task_id": "scope"})
    if over is None and not status:
        raise ValidationError("status or over_task_id is required", details={"status": "required"})
    target = _clean_status(status, default=task.status) if status else task.status
    items = PersonalTask.query.filter_by(user_id=user_id, parent_id=task.parent_id).all()
    changed = kanban.move_card(items, task, target, over)
    if changed:
        db.session.commit()
    return task, changed


def promote_personal(task_id, user, proposal_id) -> Task:
    """
    Convert a personal to-do into a project task on ``proposal_id``.

    Title, description and status carry over; the owner becomes a task
    member; the personal row (and its subtasks) is removed.
    """
    personal = _own_personal(task_id, user.id)
    if not proposal_id:
        raise ValidationError("proposal_id is required", details={"proposal_id": "required"})
    task = create_task(
        {
            "title": personal.title,
            "description": personal.description,
            "status": personal.status,
            "proposal_id": proposal_id,
            "member_ids": [user.id],
            "subtasks": [s.title for s in personal.subtasks],
        },
        user,
        commit=False,
    )
    db.session.delete(personal)
    db.session.commit()
    logger.info("Personal task %s promoted to task %s", task_id, task.id)
    return task
