"""
OpsDesk
Change-feed model.

Models:
    - ChangeEvent: append-only log of row changes on tracked tables.

Rows are written by mapper-level ``after_insert`` / ``after_update`` /
``after_delete`` listeners on the flush connection, so a change event
commits (or rolls back) together with the change it describes.
Clients poll ``/api/v1/realtime/changes?since=<id>`` and re-fetch.
"""

import logging

from sqlalchemy import event

from opsdesk.models import db, iso, utcnow

logger = logging.getLogger(__name__)

CHANGE_EVENTS = ("INSERT", "UPDATE", "DELETE")


class ChangeEvent(db.Model):
    __tablename__ = "change_events"
    __table_args__ = (
        db.Index("idx_change_events_table", "table_name", "id"),
    )

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    table_name = db.Column(db.String(60), nullable=False)
    record_id = db.Column(db.String(36), nullable=False)
    event = db.Column(db.String(10), nullable=False, comment="INSERT | UPDATE | DELETE")
    user_id = db.Column(db.String(36), nullable=True, index=True, comment="Owning profile, when the row has one")
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow)

    def to_dict(self):
        return {
            "id": self.id,
            "table_name": self.table_name,
            "record_id": self.record_id,
            "event": self.event,
            "user_id": self.user_id,
            "created_at": iso(self.created_at),
        }


# ── Listener registration ────────────────────────────────────────────────────

def _tracked_models():
    from opsdesk.models.chat import Channel, Message
    from opsdesk.models.notification import Notification
    from opsdesk.models.project import Project
    from opsdesk.models.proposal import Proposal
    from opsdesk.models.task import Task, TaskMember
    from opsdesk.models.ticket import Ticket

    return (Notification, Message, Channel, Task, TaskMember, Proposal, Project, Ticket)


def _make_listener(event_name):
    def _listener(mapper, connection, target):
        connection.execute(
            ChangeEvent.__table__.insert().values(
                table_name=mapper.local_table.name,
                record_id=str(target.id),
                event=event_name,
                user_id=getattr(target, "user_id", None),
                created_at=utcnow(),
            )
        )
    return _listener


_registered = False


def register_change_listeners():
    """Attach change-feed listeners to every tracked model (idempotent)."""
    global _registered
    if _registered:
        return
    for model in _tracked_models():
        event.listen(model, "after_insert", _make_listener("INSERT"))
        event.listen(model, "after_update", _make_listener("UPDATE"))
        event.listen(model, "after_delete", _make_listener("DELETE"))
    _registered = True
    logger.debug("Change-feed listeners registered")


TRACKED_TABLES = (
    "notifications", "messages", "channels", "tasks",
    "task_members", "proposals", "projects", "tickets",
)
