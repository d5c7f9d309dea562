"""
Push delivery — forwards a notification to the Web Push sender function.

The sender is an external HTTP function (PUSH_FUNCTION_URL) that owns the
VAPID keys and fans out to the user's browser subscriptions. This module
only decides whether to call it and never lets a delivery failure reach
the caller.

``queue_push`` parks the request on the SQLAlchemy session; it is sent once
that session commits and dropped if it rolls back, so a push never
announces a notification that was not stored.
"""

import logging

import requests
from flask import current_app
from sqlalchemy import event
from sqlalchemy.orm import Session

from opsdesk.models import db
from opsdesk.models.notification import PushSubscription

logger = logging.getLogger(__name__)

PUSH_TIMEOUT_SECONDS = 5
PENDING_KEY = "opsdesk_pending_pushes"


def _build(user_id, title, content, link):
    """(url, payload) for the push function, or None when nothing should be sent."""
    url = current_app.config.get("PUSH_FUNCTION_URL")
    if not url:
        return None

    if not PushSubscription.query.filter_by(user_id=user_id).first():
        logger.debug("Push skipped: user=%s has no subscriptions", user_id)
        return None

    return url, {
        "user_id": user_id,
        "title": title,
        "content": content or "",
        "link": link,
        "secret": current_app.config.get("INTERNAL_PUSH_SECRET", ""),
    }


def _post(url: str, payload: dict) -> bool:
    try:
        resp = requests.post(url, json=payload, timeout=PUSH_TIMEOUT_SECONDS)
        resp.raise_for_status()
    except requests.RequestException as exc:
        logger.warning("Push delivery failed for user=%s: %s", payload["user_id"], exc)
        return False

    logger.debug("Push delivered: user=%s title=%r", payload["user_id"], payload["title"])
    return True


def send_push(user_id: str, title: str, content: str = "", link: str | None = None) -> bool:
    """POST the notification to the push function now.

    Returns True when the function accepted it, False when skipped or failed.
    """
    target = _build(user_id, title, content, link)
    if target is None:
        return False
    return _post(*target)


def queue_push(user_id: str, title: str, content: str = "", link: str | None = None) -> bool:
    """Send after the current transaction commits. Returns True when queued."""
    target = _build(user_id, title, content, link)
    if target is None:
        return False
    db.session().info.setdefault(PENDING_KEY, []).append(target)
    return True


@event.listens_for(Session, "after_commit")
def _send_pending(session):
    for url, payload in session.info.pop(PENDING_KEY, []):
        _post(url, payload)


@event.listens_for(Session, "after_rollback")
def _drop_pending(session):
    dropped = session.info.pop(PENDING_KEY, [])
    if dropped:
        logger.debug("Dropped %d push(es) after rollback", len(dropped))
