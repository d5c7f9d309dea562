"""
OpsDesk
Notification domain models.

Models:
    - Notification: in-app notification record with read tracking
    - NotificationSettings: per-user opt-outs (created lazily)
    - PushSubscription: Web Push subscription blob per browser endpoint
"""

from opsdesk.models import db, iso, new_id, utcnow

# ── Constants ────────────────────────────────────────────────────────────────

NOTIFICATION_TYPES = {"mention", "dm", "task", "reminder", "system", "ticket"}

# Notification type -> settings flag that gates it
SETTING_FOR_TYPE = {
    "mention": "mention_enabled",
    "dm": "dm_enabled",
    "task": "task_enabled",
}


class Notification(db.Model):
    """
    In-app notification entity.

    One record per recipient per event.
    """

    __tablename__ = "notifications"
    __table_args__ = (
        db.Index("idx_notifications_user_created", "user_id", "created_at"),
    )

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    user_id = db.Column(db.String(36), db.ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False)
    type = db.Column(db.String(20), nullable=False, default="system")
    title = db.Column(db.String(300), nullable=False)
    content = db.Column(db.Text, default="")
    link = db.Column(db.String(500))
    # "metadata" is reserved on declarative classes
    meta = db.Column("metadata", db.JSON, default=dict)

    is_read = db.Column(db.Boolean, default=False, nullable=False)
    read_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow)

    def mark_read(self):
        self.is_read = True
        self.read_at = utcnow()

    def to_dict(self):
        return {
            "id": self.id,
            "user_id": self.user_id,
            "type": self.type,
            "title": self.title,
            "content": self.content,
            "link": self.link,
            "metadata": dict(self.meta or {}),
            "is_read": self.is_read,
            "read_at": iso(self.read_at),
            "created_at": iso(self.created_at),
        }

    def __repr__(self):
        return f"<Notification {self.id}: {self.title[:40]}>"


class NotificationSettings(db.Model):
    __tablename__ = "notification_settings"

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    user_id = db.Column(
        db.String(36), db.ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, unique=True,
    )
    dm_enabled = db.Column(db.Boolean, default=True, nullable=False)
    mention_enabled = db.Column(db.Boolean, default=True, nullable=False)
    task_enabled = db.Column(db.Boolean, default=True, nullable=False)
    updated_at = db.Column(db.DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    def to_dict(self):
        return {
            "user_id": self.user_id,
            "dm_enabled": self.dm_enabled,
            "mention_enabled": self.mention_enabled,
            "task_enabled": self.task_enabled,
            "updated_at": iso(self.updated_at),
        }


class PushSubscription(db.Model):
    __tablename__ = "push_subscriptions"
    __table_args__ = (
        db.UniqueConstraint("user_id", "endpoint", name="uq_push_user_endpoint"),
    )

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    user_id = db.Column(db.String(36), db.ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, index=True)
    endpoint = db.Column(db.String(1000), nullable=False)
    subscription = db.Column(db.JSON, nullable=False, comment="Browser PushSubscription.toJSON()")
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow)

    def to_dict(self):
        return {
            "id": self.id,
            "user_id": self.user_id,
            "endpoint": self.endpoint,
            "created_at": iso(self.created_at),
        }
