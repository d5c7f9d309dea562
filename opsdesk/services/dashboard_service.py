"""
Dashboard Service — headline numbers and team workload.

Provides:
    overview()   counts, revenue, open tasks, recent activity
    workload()   per-member and per-project task load, status distribution
"""

import logging
from collections import Counter

from sqlalchemy import func

from opsdesk.models import db, iso
from opsdesk.models.audit import AuditLog
from opsdesk.models.auth import Profile
from opsdesk.models.client import Client
from opsdesk.models.project import Project
from opsdesk.models.proposal import Proposal
from opsdesk.models.task import COMPLETED_STATUSES, Task, TaskMember

logger = logging.getLogger(__name__)

REVENUE_STATUSES = ("active", "complete")
OPEN_EXCLUDED_STATUSES = ("done", "complete")
RECENT_LIMIT = 5


def overview() -> dict:
    revenue = (
        db.session.query(func.coalesce(func.sum(Proposal.amount), 0))
        .filter(Proposal.status.in_(REVENUE_STATUSES))
        .scalar()
    )
    open_tasks = Task.query.filter(Task.status.notin_(OPEN_EXCLUDED_STATUSES)).count()
    recent_activity = AuditLog.query.order_by(AuditLog.created_at.desc()).limit(RECENT_LIMIT).all()
    recent_projects = Project.query.order_by(Project.created_at.desc()).limit(RECENT_LIMIT).all()

    return {
        "projects": Project.query.count(),
        "clients": Client.query.count(),
        "revenue": round(float(revenue or 0), 2),
        "open_tasks": open_tasks,
        "recent_activity": [
            {
                "id": log.id,
                "table_name": log.table_name,
                "record_id": log.record_id,
                "action": log.action,
                "user_name": log.actor.full_name if log.actor else None,
                "created_at": iso(log.created_at),
            }
            for log in recent_activity
        ],
        "recent_projects": [p.to_dict(include_members=False) for p in recent_projects],
    }


def _is_completed(status) -> bool:
    return (status or "").lower() in COMPLETED_STATUSES


def workload() -> dict:
    tasks = Task.query.all()
    members_by_task = {}
    for link in TaskMember.query.all():
        members_by_task.setdefault(link.task_id, set()).add(link.user_id)

    # A task counts once per person, whether they are primary assignee or member
    per_user = {}
    for task in tasks:
        assignees = set(members_by_task.get(task.id, ()))
        if task.user_id:
            assignees.add(task.user_id)
        for user_id in assignees:
            bucket = per_user.setdefault(user_id, {"active": 0, "completed": 0})
            bucket["completed" if _is_completed(task.status) else "active"] += 1

    team = Profile.query.filter(Profile.role != "client").order_by(Profile.full_name.asc()).all()
    members = []
    for profile in team:
        counts = per_user.get(profile.id, {"active": 0, "completed": 0})
        members.append({
            **profile.brief(),
            "active_tasks": counts["active"],
            "completed_tasks": counts["completed"],
            "total_tasks": counts["active"] + counts["completed"],
        })

    per_project = {}
    for task in tasks:
        project_id = task.project_id or (task.proposal.project_id if task.proposal else None)
        if not project_id:
            continue
        bucket = per_project.setdefault(project_id, {"total": 0, "active": 0})
        bucket["total"] += 1
        if not _is_completed(task.status):
            bucket["active"] += 1

    projects = []
    if per_project:
        for project in Project.query.filter(Project.id.in_(list(per_project))).order_by(Project.name.asc()):
            counts = per_project[project.id]
            projects.append({
                "id": project.id,
                "name": project.name,
                "total_tasks": counts["total"],
                "active_tasks": counts["active"],
            })

    distribution = Counter((task.status or "todo") for task in tasks)

    return {
        "members": members,
        "projects": projects,
        "status_distribution": dict(distribution),
    }
