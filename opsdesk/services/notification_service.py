"""
OpsDesk
Notification Service.

Central service for creating and querying in-app notifications, per-user
notification settings and push subscriptions.

``notify`` flushes instead of committing so the notification lands in the
same transaction as the event that caused it (message, assignment, ...).
Its web push is queued on the session and only sent once that commits.
"""

import logging

from sqlalchemy.exc import IntegrityError

from opsdesk.core.exceptions import NotFoundError, ValidationError
from opsdesk.models import db
from opsdesk.models.notification import (
    NOTIFICATION_TYPES,
    SETTING_FOR_TYPE,
    Notification,
    NotificationSettings,
    PushSubscription,
)
from opsdesk.services import push_service

logger = logging.getLogger(__name__)

LIST_LIMIT = 50


class NotificationService:
    """Stateless service class for notification operations."""

    # ── Create ────────────────────────────────────────────────────────────

    @staticmethod
    def notify(*, user_id, type="system", title, content="", link=None,
               metadata=None, actor_id=None):
        """
        Create one notification for ``user_id`` unless muted.

        Skipped (returns None) when the recipient is the actor, or when the
        recipient's settings disable this notification type.
        """
        if not user_id or (actor_id and user_id == actor_id):
            return None
        if type not in NOTIFICATION_TYPES:
            raise ValidationError(f"Invalid notification type: {type}")

        flag = SETTING_FOR_TYPE.get(type)
        if flag is not None:
            settings = NotificationService.get_settings(user_id)
            if not getattr(settings, flag):
                logger.debug("Notification muted: user=%s type=%s", user_id, type)
                return None

        notif = Notification(
            user_id=user_id,
            type=type,
            title=title,
            content=content or "",
            link=link,
            meta=metadata or {},
        )
        db.session.add(notif)
        db.session.flush()

        push_service.queue_push(user_id, title, content, link)
        return notif

    # ── Query ─────────────────────────────────────────────────────────────

    @staticmethod
    def list_for_user(user_id, limit=LIST_LIMIT):
        """Latest notifications for a user, newest first."""
        return (
            Notification.query.filter_by(user_id=user_id)
            .order_by(Notification.created_at.desc())
            .limit(limit)
            .all()
        )

    @staticmethod
    def unread_count(user_id):
        return Notification.query.filter_by(user_id=user_id, is_read=False).count()

    @staticmethod
    def _own(notification_id, user_id):
        notif = db.session.get(Notification, notification_id)
        if notif is None or notif.user_id != user_id:
            raise NotFoundError(resource="Notification", resource_id=notification_id)
        return notif

    # ── Actions ───────────────────────────────────────────────────────────

    @staticmethod
    def mark_read(notification_id, user_id):
        notif = NotificationService._own(notification_id, user_id)
        if not notif.is_read:
            notif.mark_read()
            db.session.commit()
        return notif

    @staticmethod
    def mark_all_read(user_id):
        """Mark every unread notification of the user as read. Returns the count."""
        unread = Notification.query.filter_by(user_id=user_id, is_read=False).all()
        for notif in unread:
            notif.mark_read()
        db.session.commit()
        return len(unread)

    @staticmethod
    def delete(notification_id, user_id):
        notif = NotificationService._own(notification_id, user_id)
        db.session.delete(notif)
        db.session.commit()

    # ── Settings ──────────────────────────────────────────────────────────

    @staticmethod
    def get_settings(user_id):
        """Return the user's settings row, creating the all-enabled default."""
        settings = NotificationSettings.query.filter_by(user_id=user_id).first()
        if settings is None:
            settings = NotificationSettings(user_id=user_id)
            db.session.add(settings)
            db.session.flush()
        return settings

    @staticmethod
    def update_settings(user_id, data):
        settings = NotificationService.get_settings(user_id)
        for key in ("dm_enabled", "mention_enabled", "task_enabled"):
            if key in data:
                if not isinstance(data[key], bool):
                    raise ValidationError(f"{key} must be a boolean", details={key: "boolean"})
                setattr(settings, key, data[key])
        db.session.commit()
        return settings

    # ── Push subscriptions ────────────────────────────────────────────────

    @staticmethod
    def register_push(user_id, subscription):
        """Store a browser subscription; re-registering the same endpoint updates it."""
        endpoint = (subscription or {}).get("endpoint") if isinstance(subscription, dict) else None
        if not endpoint:
            raise ValidationError("subscription.endpoint is required", details={"subscription": "endpoint"})

        existing = PushSubscription.query.filter_by(user_id=user_id, endpoint=endpoint).first()
        if existing is not None:
            existing.subscription = subscription
            db.session.commit()
            return existing, False

        sub = PushSubscription(user_id=user_id, endpoint=endpoint, subscription=subscription)
        db.session.add(sub)
        try:
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            existing = PushSubscription.query.filter_by(user_id=user_id, endpoint=endpoint).first()
            return existing, False
        return sub, True

    @staticmethod
    def unregister_push(user_id, endpoint):
        """Remove the subscription for ``endpoint``. Returns number of rows removed."""
        if not endpoint:
            raise ValidationError("endpoint is required", details={"endpoint": "required"})
        removed = PushSubscription.query.filter_by(user_id=user_id, endpoint=endpoint).delete()
        db.session.commit()
        return removed
