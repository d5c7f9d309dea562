"""
Realtime Service — polling change feed.

Clients keep a cursor (the last ``ChangeEvent.id`` they saw) and call
``changes(since=cursor)``; for each event they re-fetch the row, or let the
feed do it with ``hydrate=True``. Events on ``notifications`` are only
visible to the notification's owner.
"""

import logging

from opsdesk.core.exceptions import ValidationError
from opsdesk.models import db
from opsdesk.models.chat import Channel, Message
from opsdesk.models.notification import Notification
from opsdesk.models.project import Project
from opsdesk.models.proposal import Proposal
from opsdesk.models.realtime import TRACKED_TABLES, ChangeEvent
from opsdesk.models.task import Task, TaskMember
from opsdesk.models.ticket import Ticket
from opsdesk.services.permission_service import is_admin, is_client
from opsdesk.services.project_service import client_owns

logger = logging.getLogger(__name__)

MAX_EVENTS = 200

MODEL_FOR_TABLE = {
    "notifications": Notification,
    "messages": Message,
    "channels": Channel,
    "tasks": Task,
    "task_members": TaskMember,
    "proposals": Proposal,
    "projects": Project,
    "tickets": Ticket,
}


def merge_rows(rows, row, event="UPDATE"):
    """Splice ``row`` into ``rows`` by id; drop it on DELETE.

    Returns a new list. Replaying the same event leaves the list unchanged.
    """
    row_id = row.get("id") if isinstance(row, dict) else row
    merged = [r for r in rows if r.get("id") != row_id]
    if event == "DELETE":
        return merged
    for idx, existing in enumerate(rows):
        if existing.get("id") == row_id:
            merged.insert(idx, row)
            return merged
    merged.append(row)
    return merged


def _parse_cursor(since) -> int:
    if since in (None, ""):
        return 0
    try:
        cursor = int(since)
    except (TypeError, ValueError) as e:
        raise ValidationError("since must be an integer cursor", details={"since": "invalid"}) from e
    return max(cursor, 0)


def _client_may_see(obj, user) -> bool:
    """Client logins see their own projects, phases and project chat; tasks stay internal."""
    if isinstance(obj, (Task, TaskMember)):
        return False
    if isinstance(obj, Message):
        obj = obj.channel
    if isinstance(obj, Channel):
        return obj.project_id is None or client_owns(obj.project, user)
    project = obj if isinstance(obj, Project) else obj.project if isinstance(obj, Proposal) else None
    if project is None:
        return True
    return client_owns(project, user)


def _visible(obj, user) -> bool:
    if isinstance(obj, Notification):
        return obj.user_id == user.id
    if isinstance(obj, Ticket):
        return obj.user_id == user.id or is_admin(user)
    if is_client(user) and not _client_may_see(obj, user):
        return False
    channel = obj if isinstance(obj, Channel) else obj.channel if isinstance(obj, Message) else None
    if channel is not None and channel.is_dm:
        return user.id in channel.dm_participants or is_admin(user)
    return True


def _snapshot(obj, user) -> dict:
    if isinstance(obj, Proposal):
        return obj.to_dict(include_money=is_admin(user))
    return obj.to_dict()


def changes(user, since=None, table=None, record_id=None, limit=MAX_EVENTS, hydrate=False) -> dict:
    cursor = _parse_cursor(since)
    if table and table not in TRACKED_TABLES:
        raise ValidationError(
            f"table must be one of: {', '.join(TRACKED_TABLES)}", details={"table": "invalid"},
        )
    limit = max(1, min(int(limit or MAX_EVENTS), MAX_EVENTS))

    query = ChangeEvent.query.filter(ChangeEvent.id > cursor)
    if table:
        query = query.filter(ChangeEvent.table_name == table)
    if record_id:
        query = query.filter(ChangeEvent.record_id == record_id)
    raw = query.order_by(ChangeEvent.id.asc()).limit(limit).all()

    # Cursor advances past filtered-out events too
    next_cursor = raw[-1].id if raw else cursor
    events = [
        e for e in raw
        if e.table_name != "notifications" or e.user_id == user.id
    ]

    result = {
        "events": [e.to_dict() for e in events],
        "cursor": next_cursor,
        "has_more": len(raw) == limit,
    }
    if hydrate:
        result["rows"] = _hydrate(events, user)
    return result


def _hydrate(events, user) -> dict:
    """Current snapshot per distinct record, grouped by table."""
    rows = {}
    last_event = {}
    for ev in events:
        last_event[(ev.table_name, ev.record_id)] = ev.event

    for (table_name, record_id), event_name in last_event.items():
        bucket = rows.setdefault(table_name, [])
        model = MODEL_FOR_TABLE.get(table_name)
        obj = db.session.get(model, record_id) if model is not None else None
        if obj is None or event_name == "DELETE":
            rows[table_name] = merge_rows(bucket, {"id": record_id, "deleted": True})
            continue
        if not _visible(obj, user):
            rows[table_name] = merge_rows(bucket, {"id": record_id}, event="DELETE")
            continue
        rows[table_name] = merge_rows(bucket, _snapshot(obj, user))
    return rows


def latest_cursor() -> int:
    """Id of the newest event; new clients start polling from here."""
    newest = ChangeEvent.query.order_by(ChangeEvent.id.desc()).first()
    return newest.id if newest else 0
