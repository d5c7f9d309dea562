"""
Ticket Service — in-app support tickets.

Anyone can file a ticket. Admins see every ticket and move its status;
the reporter is notified on each status change.
"""

import logging

from opsdesk.core.exceptions import NotFoundError, PermissionDeniedError, ValidationError
from opsdesk.models import db
from opsdesk.models.audit import write_audit
from opsdesk.models.ticket import TICKET_PRIORITIES, TICKET_STATUSES, TICKET_TYPES, Ticket
from opsdesk.services.notification_service import NotificationService
from opsdesk.services.permission_service import is_admin
from opsdesk.utils.helpers import text_arg

logger = logging.getLogger(__name__)

STATUS_LABELS = {"open": "Open", "in_progress": "In progress", "closed": "Closed"}


def _choice(data, key, choices, default):
    value = data.get(key) or default
    if value not in choices:
        raise ValidationError(f"{key} must be one of: {', '.join(choices)}", details={key: "invalid"})
    return value


def list_tickets(user, status=None, type=None):
    query = Ticket.query
    if not is_admin(user):
        query = query.filter(Ticket.user_id == user.id)
    if status:
        query = query.filter(Ticket.status == status)
    if type:
        query = query.filter(Ticket.type == type)
    return query.order_by(Ticket.created_at.desc()).all()


def get_ticket(ticket_id, user) -> Ticket:
    ticket = db.session.get(Ticket, ticket_id)
    if ticket is None or (not is_admin(user) and ticket.user_id != user.id):
        raise NotFoundError(resource="Ticket", resource_id=ticket_id)
    return ticket


def create_ticket(data: dict, user) -> Ticket:
    title = text_arg(data.get("title"), "title")
    if not title:
        raise ValidationError("title is required", details={"title": "required"})
    ticket = Ticket(
        title=title,
        description=text_arg(data.get("description"), "description"),
        type=_choice(data, "type", TICKET_TYPES, "bug"),
        priority=_choice(data, "priority", TICKET_PRIORITIES, "medium"),
        status="open",
        user_id=user.id,
    )
    db.session.add(ticket)
    db.session.flush()
    write_audit(table_name="tickets", record_id=ticket.id, action="INSERT", new_data=ticket.to_dict())
    db.session.commit()
    logger.info("Ticket %s filed by %s (%s/%s)", ticket.id, user.id, ticket.type, ticket.priority)
    return ticket


def update_ticket(ticket_id, data: dict, user) -> Ticket:
    """Reporters may edit text fields; only admins may change status."""
    ticket = get_ticket(ticket_id, user)
    old = ticket.to_dict()
    admin = is_admin(user)

    if "title" in data:
        title = text_arg(data.get("title"), "title")
        if not title:
            raise ValidationError("title cannot be empty", details={"title": "required"})
        ticket.title = title
    if "description" in data:
        ticket.description = text_arg(data.get("description"), "description")
    if "type" in data:
        ticket.type = _choice(data, "type", TICKET_TYPES, ticket.type)
    if "priority" in data:
        ticket.priority = _choice(data, "priority", TICKET_PRIORITIES, ticket.priority)

    if "status" in data and data["status"] != ticket.status:
        if not admin:
            raise PermissionDeniedError("Only admins can change ticket status", required="tickets:update")
        ticket.status = _choice(data, "status", TICKET_STATUSES, ticket.status)
        NotificationService.notify(
            user_id=ticket.user_id,
            type="ticket",
            title=f"Ticket {STATUS_LABELS.get(ticket.status, ticket.status).lower()}",
            content=f'Your ticket "{ticket.title}" is now {STATUS_LABELS.get(ticket.status, ticket.status)}.',
            link="/tickets",
            metadata={"ticket_id": ticket.id, "status": ticket.status},
            actor_id=user.id,
        )

    write_audit(table_name="tickets", record_id=ticket.id, action="UPDATE", old_data=old, new_data=ticket.to_dict())
    db.session.commit()
    return ticket


def delete_ticket(ticket_id, user) -> None:
    ticket = get_ticket(ticket_id, user)
    old = ticket.to_dict()
    db.session.delete(ticket)
    write_audit(table_name="tickets", record_id=ticket_id, action="DELETE", old_data=old)
    db.session.commit()
