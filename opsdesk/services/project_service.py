"""
Project Service — projects, memberships, documents, derived status.

Project status is derived from its proposals: ``active`` while any proposal
is active or sent, ``completed`` otherwise. ``update_project_status`` is
called by the proposal service after every proposal write.
"""

import logging

from sqlalchemy import or_

from opsdesk.core.exceptions import NotFoundError, ValidationError
from opsdesk.models import db
from opsdesk.models.audit import write_audit
from opsdesk.models.auth import Profile
from opsdesk.models.client import Client
from opsdesk.models.project import PROJECT_STATUSES, Project, ProjectDocument, ProjectMember
from opsdesk.models.proposal import Proposal
from opsdesk.services.permission_service import is_client
from opsdesk.utils.helpers import text_arg

logger = logging.getLogger(__name__)

LIVE_PROPOSAL_STATUSES = ("active", "sent")
FIELDS = ("name", "description", "status", "client_id", "source_repo", "deployment_repo")


def get_project(project_id) -> Project:
    project = db.session.get(Project, project_id)
    if project is None:
        raise NotFoundError(resource="Project", resource_id=project_id)
    return project


def client_owns(project: Project | None, user) -> bool:
    """True when ``project`` belongs to the Client row linked to ``user``."""
    return project is not None and project.client is not None and project.client.user_id == user.id


def get_visible_project(project_id, user) -> Project:
    """Like get_project, but a client login only finds projects of its own Client row."""
    project = get_project(project_id)
    if is_client(user) and not client_owns(project, user):
        raise NotFoundError(resource="Project", resource_id=project_id)
    return project


def _apply_fields(project: Project, data: dict) -> None:
    for key in FIELDS:
        if key in data:
            value = data[key]
            setattr(project, key, text_arg(value, key, default=None))
    if len((project.name or "").strip()) < 2:
        raise ValidationError("name must be at least 2 characters", details={"name": "min_length"})
    if project.status not in PROJECT_STATUSES:
        raise ValidationError(
            f"status must be one of: {', '.join(PROJECT_STATUSES)}", details={"status": "invalid"},
        )
    if project.client_id and db.session.get(Client, project.client_id) is None:
        raise ValidationError("client_id does not exist", details={"client_id": "not_found"})


def set_members(project: Project, member_ids) -> None:
    """Replace the membership set with ``member_ids``."""
    if member_ids is None:
        return
    if not isinstance(member_ids, list):
        raise ValidationError("member_ids must be a list", details={"member_ids": "list"})
    wanted = list(dict.fromkeys(str(m) for m in member_ids if m))
    known = {p.id for p in Profile.query.filter(Profile.id.in_(wanted)).all()} if wanted else set()
    missing = [m for m in wanted if m not in known]
    if missing:
        raise ValidationError("Unknown member ids", details={"member_ids": missing})

    for member in list(project.members):
        if member.user_id not in wanted:
            project.members.remove(member)
    current = {m.user_id for m in project.members}
    for user_id in wanted:
        if user_id not in current:
            project.members.append(ProjectMember(user_id=user_id))


def list_projects(client_id=None, status=None, q=None, member_of=None, client_user_id=None):
    query = Project.query
    if client_user_id:
        query = query.filter(Project.client_id.in_(
            db.session.query(Client.id).filter(Client.user_id == client_user_id)
        ))
    if client_id:
        query = query.filter(Project.client_id == client_id)
    if status:
        query = query.filter(Project.status == status)
    if q:
        like = f"%{q.strip()}%"
        query = query.filter(or_(Project.name.ilike(like), Project.description.ilike(like)))
    if member_of:
        query = query.filter(or_(
            Project.user_id == member_of,
            Project.members.any(ProjectMember.user_id == member_of),
        ))
    return query.order_by(Project.created_at.desc()).all()


def create_project(data: dict, actor_id=None) -> Project:
    if not data.get("client_id"):
        raise ValidationError("client_id is required", details={"client_id": "required"})
    project = Project(user_id=actor_id, status="active")
    _apply_fields(project, data)
    db.session.add(project)
    set_members(project, data.get("member_ids"))
    db.session.flush()
    write_audit(table_name="projects", record_id=project.id, action="INSERT", new_data=project.to_dict())
    db.session.commit()
    logger.info("Project %s created for client %s", project.id, project.client_id)
    return project


def update_project(project_id, data: dict) -> Project:
    project = get_project(project_id)
    old = project.to_dict()
    _apply_fields(project, data)
    set_members(project, data.get("member_ids"))
    db.session.flush()
    write_audit(table_name="projects", record_id=project.id, action="UPDATE", old_data=old, new_data=project.to_dict())
    db.session.commit()
    return project


def delete_project(project_id) -> None:
    """Delete a project; proposals, tasks, channels, documents and credentials go with it."""
    project = get_project(project_id)
    old = project.to_dict()
    db.session.delete(project)
    write_audit(table_name="projects", record_id=project_id, action="DELETE", old_data=old)
    db.session.commit()
    logger.info("Project %s deleted", project_id)


def update_project_status(project_id) -> str | None:
    """
    Recompute a project's status from its proposals (flush only).

    Returns the new status, or None when the project no longer exists.
    """
    project = db.session.get(Project, project_id)
    if project is None:
        return None
    live = (
        db.session.query(Proposal.id)
        .filter(Proposal.project_id == project_id, Proposal.status.in_(LIVE_PROPOSAL_STATUSES))
        .first()
    )
    new_status = "active" if live else "completed"
    if project.status != new_status:
        logger.info("Project %s status %s -> %s", project_id, project.status, new_status)
        project.status = new_status
        db.session.flush()
    return new_status


# ── Documents ────────────────────────────────────────────────────────────────

def list_documents(project_id):
    get_project(project_id)
    return (
        ProjectDocument.query.filter_by(project_id=project_id)
        .order_by(ProjectDocument.created_at.desc())
        .all()
    )


def add_document(project_id, data: dict, actor_id=None) -> ProjectDocument:
    get_project(project_id)
    title = text_arg(data.get("title"), "title")
    if not title:
        raise ValidationError("title is required", details={"title": "required"})
    doc = ProjectDocument(
        project_id=project_id,
        title=title,
        url=text_arg(data.get("url"), "url") or None,
        doc_type=data.get("doc_type") or "other",
        notes=text_arg(data.get("notes"), "notes"),
        user_id=actor_id,
    )
    db.session.add(doc)
    db.session.flush()
    write_audit(table_name="documents", record_id=doc.id, action="INSERT", new_data=doc.to_dict())
    db.session.commit()
    return doc


def delete_document(project_id, document_id) -> None:
    doc = db.session.get(ProjectDocument, document_id)
    if doc is None or doc.project_id != project_id:
        raise NotFoundError(resource="Document", resource_id=document_id)
    old = doc.to_dict()
    db.session.delete(doc)
    write_audit(table_name="documents", record_id=document_id, action="DELETE", old_data=old)
    db.session.commit()
