"""
Client Service — customer records, optional client logins, overview.
"""

import functools
import logging
from datetime import datetime
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError, available_timezones

from sqlalchemy import func, or_

from opsdesk.core.exceptions import NotFoundError, ValidationError
from opsdesk.models import db, utcnow
from opsdesk.models.audit import write_audit
from opsdesk.models.client import Client
from opsdesk.models.project import Project
from opsdesk.models.proposal import Proposal
from opsdesk.services import user_service
from opsdesk.utils.helpers import flag, text_arg

logger = logging.getLogger(__name__)

FIELDS = (
    "first_name", "last_name", "email", "phone", "address",
    "city", "state", "country", "timezone", "notes",
)
SORTABLE = {
    "first_name": Client.first_name,
    "last_name": Client.last_name,
    "email": Client.email,
    "created_at": Client.created_at,
}


def _apply_fields(client: Client, data: dict) -> None:
    for key in FIELDS:
        if key in data:
            value = data[key]
            setattr(client, key, text_arg(value, key, default=None))
    if len((client.first_name or "").strip()) < 2:
        raise ValidationError("first_name must be at least 2 characters", details={"first_name": "min_length"})
    if client.email:
        client.email = user_service.normalize_email(client.email)
    if client.timezone and client.timezone not in _known_timezones():
        raise ValidationError("timezone is not a known IANA zone", details={"timezone": "invalid"})


@functools.lru_cache(maxsize=1)
def _known_timezones() -> frozenset[str]:
    return frozenset(available_timezones())


def _enable_login(client: Client, data: dict) -> None:
    email = data.get("login_email") or data.get("email") or client.email
    if not email or not data.get("password"):
        raise ValidationError(
            "email and password are required to enable login",
            details={"password": "required"},
        )
    profile = user_service.create_profile(
        {
            "email": email,
            "password": data["password"],
            "full_name": client.full_name,
            "role": "client",
        },
        commit=False,
    )
    client.user_id = profile.id


def list_clients(q=None, sort="created_at", order="desc"):
    query = Client.query
    if q:
        like = f"%{q.strip()}%"
        query = query.filter(or_(
            Client.first_name.ilike(like),
            Client.last_name.ilike(like),
            Client.email.ilike(like),
        ))
    column = SORTABLE.get(sort, Client.created_at)
    query = query.order_by(column.asc() if order == "asc" else column.desc())
    return query.all()


def get_client(client_id) -> Client:
    client = db.session.get(Client, client_id)
    if client is None:
        raise NotFoundError(resource="Client", resource_id=client_id)
    return client


def create_client(data: dict) -> Client:
    client = Client()
    _apply_fields(client, data)
    db.session.add(client)
    if flag(data.get("enable_login")):
        _enable_login(client, data)
    db.session.flush()
    write_audit(table_name="clients", record_id=client.id, action="INSERT", new_data=client.to_dict())
    db.session.commit()
    logger.info("Client %s created", client.id)
    return client


def update_client(client_id, data: dict) -> Client:
    client = get_client(client_id)
    old = client.to_dict()
    _apply_fields(client, data)
    if "enable_login" in data:
        if flag(data["enable_login"]) and not client.user_id:
            _enable_login(client, data)
        elif not flag(data["enable_login"]) and client.user_id:
            logger.info("Client %s login unlinked from profile %s", client.id, client.user_id)
            client.user_id = None
    client.updated_at = utcnow()
    db.session.flush()
    write_audit(table_name="clients", record_id=client.id, action="UPDATE", old_data=old, new_data=client.to_dict())
    db.session.commit()
    return client


def delete_client(client_id) -> None:
    client = get_client(client_id)
    old = client.to_dict()
    db.session.delete(client)
    write_audit(table_name="clients", record_id=client_id, action="DELETE", old_data=old)
    db.session.commit()


def local_time(tz_name: str | None):
    """Current wall-clock time in ``tz_name`` (ISO string), or None if unknown."""
    if not tz_name:
        return None
    try:
        return datetime.now(ZoneInfo(tz_name)).isoformat()
    except (ZoneInfoNotFoundError, ValueError, OSError):
        return None


def client_overview(client_id) -> dict:
    client = get_client(client_id)
    counts = dict(
        db.session.query(Proposal.project_id, func.count(Proposal.id))
        .join(Project, Project.id == Proposal.project_id)
        .filter(Project.client_id == client.id)
        .group_by(Proposal.project_id)
        .all()
    )
    projects = []
    for project in client.projects.order_by(Project.created_at.desc()).all():
        item = project.to_dict()
        item["proposal_count"] = counts.get(project.id, 0)
        projects.append(item)
    return {
        "client": client.to_dict(),
        "projects": projects,
        "local_time": local_time(client.timezone),
    }
