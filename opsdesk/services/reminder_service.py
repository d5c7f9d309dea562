"""
Reminder Service — personal reminders and their delivery.

``remind_at`` is built from a ``date`` (YYYY-MM-DD) and a ``time`` (HH:MM)
and stored in UTC. ``dispatch_due_reminders`` turns every due, unsent
reminder into a ``reminder`` notification; it runs from
``flask dispatch-reminders`` (cron) or ``POST /api/v1/reminders/dispatch``.
"""

import logging
import re
from datetime import datetime, timezone

from opsdesk.core.exceptions import NotFoundError, ValidationError
from opsdesk.models import db, utcnow
from opsdesk.models.audit import write_audit
from opsdesk.models.reminder import Reminder
from opsdesk.services.notification_service import NotificationService
from opsdesk.utils.helpers import text_arg

logger = logging.getLogger(__name__)

TIME_RE = re.compile(r"^([0-1]?[0-9]|2[0-3]):[0-5][0-9]$")
DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def parse_remind_at(date_value, time_value) -> datetime:
    date_value = text_arg(date_value, "date")
    time_value = text_arg(time_value, "time")
    if not date_value or not DATE_RE.match(date_value):
        raise ValidationError("date must be YYYY-MM-DD", details={"date": "invalid"})
    if not TIME_RE.match(time_value):
        raise ValidationError("time must be HH:MM", details={"time": "invalid"})
    hour, minute = (int(part) for part in time_value.split(":"))
    try:
        day = datetime.strptime(date_value, "%Y-%m-%d")
    except ValueError as e:
        raise ValidationError("date must be a real calendar date", details={"date": "invalid"}) from e
    return day.replace(hour=hour, minute=minute, tzinfo=timezone.utc)


def _own(reminder_id, user_id) -> Reminder:
    reminder = db.session.get(Reminder, reminder_id)
    if reminder is None or reminder.user_id != user_id:
        raise NotFoundError(resource="Reminder", resource_id=reminder_id)
    return reminder


def list_reminders(user_id) -> dict:
    """Owner's reminders by ``remind_at``, split into upcoming and past."""
    rows = Reminder.query.filter_by(user_id=user_id).order_by(Reminder.remind_at.asc()).all()
    return {
        "upcoming": [r.to_dict() for r in rows if not r.is_sent],
        "past": [r.to_dict() for r in rows if r.is_sent],
    }


def create_reminder(user_id, data: dict) -> Reminder:
    title = text_arg(data.get("title"), "title")
    if not title:
        raise ValidationError("title is required", details={"title": "required"})
    reminder = Reminder(
        user_id=user_id,
        title=title,
        description=text_arg(data.get("description"), "description"),
        link=text_arg(data.get("link"), "link") or None,
        remind_at=parse_remind_at(data.get("date"), data.get("time")),
        is_sent=False,
    )
    db.session.add(reminder)
    db.session.flush()
    write_audit(table_name="reminders", record_id=reminder.id, action="INSERT", new_data=reminder.to_dict())
    db.session.commit()
    return reminder


def update_reminder(reminder_id, user_id, data: dict) -> Reminder:
    reminder = _own(reminder_id, user_id)
    old = reminder.to_dict()
    if "title" in data:
        title = text_arg(data.get("title"), "title")
        if not title:
            raise ValidationError("title cannot be empty", details={"title": "required"})
        reminder.title = title
    if "description" in data:
        reminder.description = text_arg(data.get("description"), "description")
    if "link" in data:
        reminder.link = text_arg(data.get("link"), "link") or None
    if "date" in data or "time" in data:
        current = reminder.remind_at
        reminder.remind_at = parse_remind_at(
            data["date"] if "date" in data else current.strftime("%Y-%m-%d"),
            data["time"] if "time" in data else current.strftime("%H:%M"),
        )
        reminder.is_sent = False
        reminder.sent_at = None
    write_audit(table_name="reminders", record_id=reminder.id, action="UPDATE", old_data=old, new_data=reminder.to_dict())
    db.session.commit()
    return reminder


def delete_reminder(reminder_id, user_id) -> None:
    reminder = _own(reminder_id, user_id)
    old = reminder.to_dict()
    db.session.delete(reminder)
    write_audit(table_name="reminders", record_id=reminder_id, action="DELETE", old_data=old)
    db.session.commit()


def dispatch_due_reminders(now=None) -> int:
    """Notify and mark sent every unsent reminder due at or before ``now``."""
    now = now or utcnow()
    due = (
        Reminder.query.filter(Reminder.is_sent.is_(False), Reminder.remind_at <= now)
        .order_by(Reminder.remind_at.asc())
        .all()
    )
    for reminder in due:
        NotificationService.notify(
            user_id=reminder.user_id,
            type="reminder",
            title=reminder.title,
            content=reminder.description or "",
            link=reminder.link or "/reminders",
            metadata={"reminder_id": reminder.id},
        )
        reminder.is_sent = True
        reminder.sent_at = now
    if due:
        db.session.commit()
        logger.info("Dispatched %d due reminder(s)", len(due))
    return len(due)
