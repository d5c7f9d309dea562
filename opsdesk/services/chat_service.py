"""
Chat Service — channels, direct messages, messages and @mentions.

Channel names are slugs and globally unique. A DM is a channel named
``dm--<idA>--<idB>`` (ids sorted), so the pair maps to exactly one row.
"""

import logging
import re

from sqlalchemy.exc import IntegrityError

from opsdesk.core.exceptions import ConflictError, NotFoundError, PermissionDeniedError, ValidationError
from opsdesk.models import db
from opsdesk.models.audit import write_audit
from opsdesk.models.auth import Profile
from opsdesk.models.chat import DM_PREFIX, Channel, Message, dm_channel_name
from opsdesk.models.notification import Notification
from opsdesk.models.project import Project
from opsdesk.models.proposal import Proposal
from opsdesk.services.notification_service import NotificationService
from opsdesk.services.permission_service import has_permission, is_admin, is_client
from opsdesk.services.project_service import client_owns, get_visible_project
from opsdesk.utils.helpers import slugify, text_arg

logger = logging.getLogger(__name__)

MESSAGE_LIMIT = 100
MENTION_RE = re.compile(r"@([\w.-]+)")
_WS_RE = re.compile(r"\s+")


def channel_link(channel: Channel) -> str:
    return f"/chat?channel={channel.id}"


# ── Channels ─────────────────────────────────────────────────────────────────

def can_see_channel(channel: Channel, user) -> bool:
    """DMs: participants and admins. Project channels: client logins only their own projects."""
    if channel.is_dm:
        return user.id in channel.dm_participants or is_admin(user)
    if is_client(user) and channel.project_id:
        return client_owns(channel.project, user)
    return True


def get_channel(channel_id, user=None) -> Channel:
    channel = db.session.get(Channel, channel_id)
    if channel is None:
        raise NotFoundError(resource="Channel", resource_id=channel_id)
    if user is not None and not can_see_channel(channel, user):
        raise NotFoundError(resource="Channel", resource_id=channel_id)
    return channel


def list_channels(user, project_id=None, include_dms=False):
    query = Channel.query
    if project_id:
        get_visible_project(project_id, user)
        query = query.filter(Channel.project_id == project_id)
    else:
        query = query.filter(Channel.project_id.is_(None))
    channels = query.order_by(Channel.name.asc()).all()

    result = [c for c in channels if not c.is_dm and can_see_channel(c, user)]
    if include_dms:
        result += [c for c in channels if c.is_dm and user.id in c.dm_participants]
    return result


def create_channel(data: dict, actor) -> Channel:
    name = slugify(data.get("name"))
    if not name:
        raise ValidationError("Channel name must contain letters or digits", details={"name": "invalid"})
    if name.startswith(DM_PREFIX):
        raise ValidationError("Channel names cannot start with 'dm--'", details={"name": "reserved"})
    if Channel.query.filter_by(name=name).first():
        raise ConflictError("Channel", "name", name)

    project_id = data.get("project_id") or None
    if project_id and is_client(actor):
        get_visible_project(project_id, actor)
    elif project_id and db.session.get(Project, project_id) is None:
        raise ValidationError("project_id does not exist", details={"project_id": "not_found"})

    channel = Channel(
        name=name,
        description=text_arg(data.get("description"), "description"),
        project_id=project_id,
        created_by=actor.id,
    )
    db.session.add(channel)
    db.session.flush()
    write_audit(table_name="channels", record_id=channel.id, action="INSERT", new_data=channel.to_dict())
    db.session.commit()
    return channel


def _check_manage(channel: Channel, actor) -> None:
    if channel.is_dm:
        raise ValidationError("Direct messages cannot be edited or deleted", details={"channel": "dm"})
    if channel.created_by != actor.id and not has_permission(actor.role, "update", "chat"):
        raise PermissionDeniedError("Only the channel creator can change it", required="chat:update")


def update_channel(channel_id, data: dict, actor) -> Channel:
    channel = get_channel(channel_id, actor)
    _check_manage(channel, actor)
    old = channel.to_dict()
    if "name" in data:
        name = slugify(data.get("name"))
        if not name:
            raise ValidationError("Channel name must contain letters or digits", details={"name": "invalid"})
        if name != channel.name and Channel.query.filter_by(name=name).first():
            raise ConflictError("Channel", "name", name)
        channel.name = name
    if "description" in data:
        channel.description = text_arg(data.get("description"), "description")
    write_audit(table_name="channels", record_id=channel.id, action="UPDATE", old_data=old, new_data=channel.to_dict())
    db.session.commit()
    return channel


def delete_channel(channel_id, actor) -> None:
    channel = get_channel(channel_id, actor)
    _check_manage(channel, actor)
    old = channel.to_dict()
    db.session.delete(channel)
    write_audit(table_name="channels", record_id=channel_id, action="DELETE", old_data=old)
    db.session.commit()


def get_or_create_dm(actor, other_user_id) -> tuple[Channel, bool]:
    """Return (channel, created). Idempotent for the same pair of users."""
    if not other_user_id:
        raise ValidationError("user_id is required", details={"user_id": "required"})
    if other_user_id == actor.id:
        raise ValidationError("You cannot start a direct message with yourself", details={"user_id": "self"})
    if db.session.get(Profile, other_user_id) is None:
        raise NotFoundError(resource="Profile", resource_id=other_user_id)

    name = dm_channel_name(actor.id, other_user_id)
    channel = Channel.query.filter_by(name=name).first()
    if channel is not None:
        return channel, False

    channel = Channel(name=name, description="", created_by=actor.id)
    db.session.add(channel)
    try:
        db.session.commit()
    except IntegrityError:
        # Both users opened the DM at the same time; the other insert won
        db.session.rollback()
        channel = Channel.query.filter_by(name=name).first()
        if channel is None:
            raise
        return channel, False
    logger.info("DM channel %s created", channel.id)
    return channel, True


def get_or_create_proposal_channel(proposal_id, actor) -> tuple[Channel, bool]:
    proposal = db.session.get(Proposal, proposal_id)
    if proposal is None:
        raise NotFoundError(resource="Proposal", resource_id=proposal_id)
    if is_client(actor) and not client_owns(proposal.project, actor):
        raise NotFoundError(resource="Proposal", resource_id=proposal_id)
    if proposal.channel is not None:
        return proposal.channel, False

    base = slugify(proposal.title) or "phase"
    channel = Channel(
        name=f"{base}-{proposal.id[:8]}",
        description=f"Discussion for {proposal.title}",
        project_id=proposal.project_id,
        proposal_id=proposal.id,
        created_by=actor.id,
    )
    db.session.add(channel)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        channel = Channel.query.filter_by(proposal_id=proposal.id).first()
        if channel is None:
            raise
        return channel, False
    return channel, True


# ── Messages ─────────────────────────────────────────────────────────────────

def list_messages(channel_id, user, before=None, limit=MESSAGE_LIMIT):
    """Messages oldest → newest; ``before`` is a message id cursor."""
    channel = get_channel(channel_id, user)
    query = Message.query.filter(Message.channel_id == channel.id)
    if before:
        anchor = db.session.get(Message, before)
        if anchor is None or anchor.channel_id != channel.id:
            raise ValidationError("before must be a message in this channel", details={"before": "invalid"})
        query = query.filter(Message.created_at < anchor.created_at)
    limit = max(1, min(int(limit or MESSAGE_LIMIT), MESSAGE_LIMIT))
    newest_first = query.order_by(Message.created_at.desc()).limit(limit).all()
    return list(reversed(newest_first))


def extract_mentions(content: str) -> list[str]:
    """Lower-cased, de-duplicated ``@token`` values in order of appearance."""
    return list(dict.fromkeys(m.lower() for m in MENTION_RE.findall(content or "")))


def resolve_mentions(tokens) -> list[Profile]:
    """Profiles whose username, or full name without whitespace, matches a token."""
    if not tokens:
        return []
    wanted = set(tokens)
    matched = []
    for profile in Profile.query.filter(Profile.is_active.is_(True)).all():
        handles = set()
        if profile.username:
            handles.add(profile.username.lower())
        if profile.full_name:
            handles.add(_WS_RE.sub("", profile.full_name).lower())
        if handles & wanted:
            matched.append(profile)
    return matched


def post_message(channel_id, content, actor) -> Message:
    channel = get_channel(channel_id, actor)
    content = text_arg(content, "content")
    if not content:
        raise ValidationError("content cannot be empty", details={"content": "required"})

    message = Message(channel_id=channel.id, user_id=actor.id, content=content)
    db.session.add(message)
    db.session.flush()

    meta = {"channel_id": channel.id, "message_id": message.id}
    author = actor.full_name or actor.username or actor.email
    preview = content[:200]

    mentioned = set()
    for profile in resolve_mentions(extract_mentions(content)):
        notif = NotificationService.notify(
            user_id=profile.id,
            type="mention",
            title=f"{author} mentioned you",
            content=preview,
            link=channel_link(channel),
            metadata=meta,
            actor_id=actor.id,
        )
        if notif is not None:
            mentioned.add(profile.id)

    if channel.is_dm:
        for participant in channel.dm_participants:
            if participant in mentioned:
                continue
            NotificationService.notify(
                user_id=participant,
                type="dm",
                title=f"New message from {author}",
                content=preview,
                link=channel_link(channel),
                metadata=meta,
                actor_id=actor.id,
            )

    db.session.commit()
    return message


def mark_channel_read(channel_id, user) -> int:
    """Mark the user's unread notifications pointing at this channel as read."""
    channel = get_channel(channel_id, user)
    count = 0
    for notif in Notification.query.filter_by(user_id=user.id, is_read=False).all():
        if (notif.meta or {}).get("channel_id") == channel.id:
            notif.mark_read()
            count += 1
    if count:
        db.session.commit()
    return count
