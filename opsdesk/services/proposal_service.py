"""
Proposal Service — phases of a project: pricing, commission, markdown
templates, deliverables, ordering and client revisions.

Rules:
  - Money fields (amount, order_source, line_items) are written only for
    admins; for everyone else they are silently dropped.
  - commission_rate = FIVERR_COMMISSION_RATE for fiverr orders, else 0;
    commission_amount = amount * rate; net_amount = amount - commission.
  - Every create / update / delete re-derives the project status.
"""

import logging
import re

from flask import current_app
from sqlalchemy import func

from opsdesk.core.exceptions import NotFoundError, PermissionDeniedError, ValidationError
from opsdesk.models import db
from opsdesk.models.audit import write_audit
from opsdesk.models.client import Client
from opsdesk.models.project import Project
from opsdesk.models.proposal import (
    ORDER_SOURCES,
    PROPOSAL_STATUSES,
    REVISION_STATUSES,
    Deliverable,
    Proposal,
    Revision,
)
from opsdesk.services.permission_service import is_admin, is_client
from opsdesk.services.project_service import update_project_status
from opsdesk.utils.helpers import text_arg

logger = logging.getLogger(__name__)

DEFAULT_COMMISSION_RATE = 0.20

# ── Markdown templates ───────────────────────────────────────────────────────

DEFAULT_TECH_STACK = [
    {"key": "Frontend", "value": "Next.js, React, Tailwind"},
    {"key": "Backend", "value": "Node.js, Supabase"},
]
DEFAULT_TIMELINE = [
    {"key": "Phase 1: Planning", "value": "1 week"},
    {"key": "Phase 2: Development", "value": "3 weeks"},
]
DEFAULT_PAYMENT_SPLITS = [
    {"label": "Initial Deposit", "percentage": 50},
    {"label": "Final Delivery", "percentage": 50},
]

_KV_LINE_RE = re.compile(r"• \*\*(.*?)\*\*: (.*)")
_SPLIT_LINE_RE = re.compile(r"• \*\*(.*?)\*\*: (.*?) \((.*?)\)")


def _fmt_number(value) -> str:
    return f"{float(value):g}"


def render_key_values(items) -> str:
    """``[{key, value}]`` → ``• **Key**: Value`` lines; blank keys/values skipped."""
    lines = []
    for item in items or []:
        key = str(item.get("key") or "").strip()
        value = str(item.get("value") or "").strip()
        if key and value:
            lines.append(f"• **{key}**: {value}")
    return "\n".join(lines)


def render_payment_schedule(splits, amount) -> str:
    """``[{label, percentage}]`` → ``• **Label**: P% ($X.XX)`` lines; empty or 0% skipped."""
    amount = float(amount or 0)
    lines = []
    for split in splits or []:
        label = str(split.get("label") or "").strip()
        try:
            pct = float(split.get("percentage") or 0)
        except (TypeError, ValueError):
            pct = 0.0
        if not label or pct <= 0:
            continue
        share = pct / 100 * amount
        lines.append(f"• **{label}**: {_fmt_number(pct)}% (${share:.2f})")
    return "\n".join(lines)


def parse_key_values(text) -> list[dict]:
    return [{"key": m.group(1), "value": m.group(2)} for m in _KV_LINE_RE.finditer(text or "")]


def parse_payment_schedule(text) -> list[dict]:
    splits = []
    for m in _SPLIT_LINE_RE.finditer(text or ""):
        try:
            pct = float(m.group(2).replace("%", ""))
        except ValueError:
            pct = 0.0
        splits.append({"label": m.group(1), "percentage": pct})
    return splits


def template_items(proposal: Proposal) -> dict:
    """Structured form of the markdown sections (for editing in a form)."""
    return {
        "tech_stack": parse_key_values(proposal.tech_stack),
        "timeline": parse_key_values(proposal.timeline),
        "payment_schedule": parse_payment_schedule(proposal.payment_schedule),
    }


# ── Money ────────────────────────────────────────────────────────────────────

def commission_rate_for(order_source: str | None) -> float:
    if order_source == "fiverr":
        return float(current_app.config.get("FIVERR_COMMISSION_RATE", DEFAULT_COMMISSION_RATE))
    return 0.0


def apply_commission(proposal: Proposal) -> None:
    amount = float(proposal.amount or 0)
    rate = commission_rate_for(proposal.order_source)
    proposal.commission_rate = rate
    proposal.commission_amount = round(amount * rate, 2)
    proposal.net_amount = round(amount - proposal.commission_amount, 2)


def clean_line_items(items) -> list[dict]:
    if items is None:
        return []
    if not isinstance(items, list):
        raise ValidationError("line_items must be a list", details={"line_items": "list"})
    cleaned = []
    for idx, item in enumerate(items):
        if not isinstance(item, dict):
            raise ValidationError("line_items entries must be objects", details={"line_items": idx})
        description = str(item.get("description") or "").strip()
        try:
            quantity = float(item.get("quantity", 1) or 0)
            price = float(item.get("price", 0) or 0)
        except (TypeError, ValueError) as e:
            raise ValidationError(
                "line_items quantity and price must be numbers", details={"line_items": idx},
            ) from e
        if quantity < 0 or price < 0:
            raise ValidationError("line_items cannot be negative", details={"line_items": idx})
        cleaned.append({"description": description, "quantity": quantity, "price": price})
    return cleaned


def line_items_total(items) -> float:
    return round(sum(float(i.get("price") or 0) * float(i.get("quantity") or 0) for i in items or []), 2)


def _parse_amount(value) -> float:
    try:
        amount = float(value if value not in (None, "") else 0)
    except (TypeError, ValueError) as e:
        raise ValidationError("amount must be a number", details={"amount": "number"}) from e
    if amount < 0:
        raise ValidationError("amount cannot be negative", details={"amount": "min"})
    return amount


# ── CRUD ─────────────────────────────────────────────────────────────────────

def get_proposal(proposal_id) -> Proposal:
    proposal = db.session.get(Proposal, proposal_id)
    if proposal is None:
        raise NotFoundError(resource="Proposal", resource_id=proposal_id)
    return proposal


def get_visible_proposal(proposal_id, user) -> Proposal:
    """A client login only finds phases of projects linked to its own Client row."""
    proposal = get_proposal(proposal_id)
    if is_client(user):
        client = proposal.project.client if proposal.project else None
        if client is None or client.user_id != user.id:
            raise NotFoundError(resource="Proposal", resource_id=proposal_id)
    return proposal


def list_proposals(project_id=None, status=None, client_user_id=None):
    query = Proposal.query
    if client_user_id:
        query = query.join(Project, Proposal.project_id == Project.id).join(
            Client, Project.client_id == Client.id,
        ).filter(Client.user_id == client_user_id)
    if project_id:
        query = query.filter(Proposal.project_id == project_id)
    if status:
        query = query.filter(Proposal.status == status)
    return query.order_by(Proposal.order_index.asc(), Proposal.created_at.asc()).all()


def _apply_fields(proposal: Proposal, data: dict, actor, creating: bool) -> None:
    if "title" in data or creating:
        title = text_arg(data.get("title"), "title")
        if not title:
            raise ValidationError("title is required", details={"title": "required"})
        proposal.title = title
    if "description" in data:
        proposal.description = text_arg(data.get("description"), "description")
    if "status" in data:
        status = data.get("status") or "draft"
        if status not in PROPOSAL_STATUSES:
            raise ValidationError(
                f"status must be one of: {', '.join(PROPOSAL_STATUSES)}", details={"status": "invalid"},
            )
        proposal.status = status

    if is_admin(actor):
        if "amount" in data:
            proposal.amount = _parse_amount(data.get("amount"))
        if "order_source" in data:
            source = data.get("order_source") or "direct"
            if source not in ORDER_SOURCES:
                raise ValidationError(
                    f"order_source must be one of: {', '.join(ORDER_SOURCES)}", details={"order_source": "invalid"},
                )
            proposal.order_source = source
        if "line_items" in data:
            proposal.line_items = clean_line_items(data.get("line_items"))
        apply_commission(proposal)
    elif any(k in data for k in ("amount", "order_source", "line_items", "commission_rate", "net_amount")):
        logger.debug("Dropped money fields from non-admin %s on proposal", actor.id if actor else None)

    # Markdown sections: structured items win over raw text; defaults on create
    if "tech_stack_items" in data:
        proposal.tech_stack = render_key_values(data["tech_stack_items"])
    elif "tech_stack" in data:
        proposal.tech_stack = text_arg(data.get("tech_stack"), "tech_stack")
    elif creating:
        proposal.tech_stack = render_key_values(DEFAULT_TECH_STACK)

    if "timeline_items" in data:
        proposal.timeline = render_key_values(data["timeline_items"])
    elif "timeline" in data:
        proposal.timeline = text_arg(data.get("timeline"), "timeline")
    elif creating:
        proposal.timeline = render_key_values(DEFAULT_TIMELINE)

    if "payment_splits" in data:
        proposal.payment_schedule = render_payment_schedule(data["payment_splits"], proposal.amount)
    elif "payment_schedule" in data:
        proposal.payment_schedule = text_arg(data.get("payment_schedule"), "payment_schedule")
    elif creating:
        proposal.payment_schedule = render_payment_schedule(DEFAULT_PAYMENT_SPLITS, proposal.amount)


def replace_deliverables(proposal: Proposal, deliverables) -> None:
    """Replace the deliverable list wholesale, keeping the given order."""
    if deliverables is None:
        return
    if not isinstance(deliverables, list):
        raise ValidationError("deliverables must be a list", details={"deliverables": "list"})
    proposal.deliverables.clear()
    for idx, item in enumerate(deliverables):
        if isinstance(item, str):
            item = {"title": item}
        title = str(item.get("title") or "").strip()
        if not title:
            continue
        proposal.deliverables.append(Deliverable(
            title=title,
            description=item.get("description") or "",
            order_index=idx,
        ))


def create_proposal(data: dict, actor) -> Proposal:
    project_id = data.get("project_id")
    if not project_id or db.session.get(Project, project_id) is None:
        raise ValidationError("project_id is required and must exist", details={"project_id": "required"})

    next_index = (
        db.session.query(func.max(Proposal.order_index)).filter(Proposal.project_id == project_id).scalar()
    )
    proposal = Proposal(
        project_id=project_id,
        status="draft",
        amount=0.0,
        order_source="direct",
        line_items=[],
        order_index=0 if next_index is None else next_index + 1,
        user_id=actor.id if actor else None,
    )
    _apply_fields(proposal, data, actor, creating=True)
    apply_commission(proposal)
    db.session.add(proposal)
    replace_deliverables(proposal, data.get("deliverables"))
    db.session.flush()
    write_audit(table_name="proposals", record_id=proposal.id, action="INSERT", new_data=proposal.to_dict())
    update_project_status(project_id)
    db.session.commit()
    logger.info("Proposal %s created on project %s", proposal.id, project_id)
    return proposal


def update_proposal(proposal_id, data: dict, actor) -> Proposal:
    proposal = get_proposal(proposal_id)
    old = proposal.to_dict()
    _apply_fields(proposal, data, actor, creating=False)
    replace_deliverables(proposal, data.get("deliverables"))
    db.session.flush()
    write_audit(table_name="proposals", record_id=proposal.id, action="UPDATE", old_data=old, new_data=proposal.to_dict())
    update_project_status(proposal.project_id)
    db.session.commit()
    return proposal


def delete_proposal(proposal_id) -> None:
    proposal = get_proposal(proposal_id)
    project_id = proposal.project_id
    old = proposal.to_dict()
    db.session.delete(proposal)
    db.session.flush()
    write_audit(table_name="proposals", record_id=proposal_id, action="DELETE", old_data=old)
    update_project_status(project_id)
    db.session.commit()


def reorder_proposals(project_id, ordered_ids) -> list[Proposal]:
    """Assign contiguous order_index values following ``ordered_ids``.

    Proposals of the project missing from ``ordered_ids`` keep their
    relative order after the listed ones.
    """
    if not isinstance(ordered_ids, list) or not ordered_ids:
        raise ValidationError("ids must be a non-empty list", details={"ids": "required"})
    proposals = list_proposals(project_id=project_id)
    by_id = {p.id: p for p in proposals}
    unknown = [pid for pid in ordered_ids if pid not in by_id]
    if unknown:
        raise ValidationError("ids contain proposals from another project", details={"ids": unknown})

    listed = list(dict.fromkeys(ordered_ids))
    rest = [p.id for p in proposals if p.id not in listed]
    for idx, pid in enumerate(listed + rest):
        if by_id[pid].order_index != idx:
            by_id[pid].order_index = idx
    db.session.commit()
    return list_proposals(project_id=project_id)


# ── Revisions ────────────────────────────────────────────────────────────────

def _client_for(user) -> Client | None:
    return Client.query.filter_by(user_id=user.id).first() if user is not None else None


def list_revisions(proposal_id=None, status=None, actor=None):
    query = Revision.query
    if proposal_id:
        query = query.filter(Revision.proposal_id == proposal_id)
    if status:
        query = query.filter(Revision.status == status)
    if is_client(actor):
        client = _client_for(actor)
        query = query.filter(Revision.client_id == (client.id if client else None))
    return query.order_by(Revision.created_at.desc()).all()


def get_revision(revision_id) -> Revision:
    revision = db.session.get(Revision, revision_id)
    if revision is None:
        raise NotFoundError(resource="Revision", resource_id=revision_id)
    return revision


def create_revision(proposal_id, data: dict, actor) -> Revision:
    proposal = get_proposal(proposal_id)
    title = text_arg(data.get("title"), "title")
    if not title:
        raise ValidationError("title is required", details={"title": "required"})

    client_id = data.get("client_id")
    if is_client(actor):
        client = _client_for(actor)
        if client is None or proposal.project.client_id != client.id:
            raise PermissionDeniedError("You can only request revisions on your own projects")
        client_id = client.id
    elif not client_id:
        client_id = proposal.project.client_id

    revision = Revision(
        proposal_id=proposal.id,
        client_id=client_id,
        title=title,
        description=text_arg(data.get("description"), "description"),
        status="pending",
        user_id=actor.id,
    )
    db.session.add(revision)
    db.session.flush()
    write_audit(table_name="revisions", record_id=revision.id, action="INSERT", new_data=revision.to_dict())
    db.session.commit()
    return revision


def _check_client_owns_pending(revision: Revision, actor) -> None:
    """Clients may only touch their own revisions, and only while still pending."""
    if not is_client(actor):
        return
    client = _client_for(actor)
    if client is None or revision.client_id != client.id or revision.status != "pending":
        raise PermissionDeniedError("You can only change your own pending revisions")


def update_revision(revision_id, data: dict, actor) -> Revision:
    revision = get_revision(revision_id)
    _check_client_owns_pending(revision, actor)
    if is_client(actor) and "status" in data:
        raise PermissionDeniedError("Clients cannot change revision status", required="proposals:update")
    old = revision.to_dict()
    if "title" in data:
        title = text_arg(data.get("title"), "title")
        if not title:
            raise ValidationError("title cannot be empty", details={"title": "required"})
        revision.title = title
    if "description" in data:
        revision.description = text_arg(data.get("description"), "description")
    if "status" in data:
        if data["status"] not in REVISION_STATUSES:
            raise ValidationError(
                f"status must be one of: {', '.join(REVISION_STATUSES)}", details={"status": "invalid"},
            )
        revision.status = data["status"]
    write_audit(table_name="revisions", record_id=revision.id, action="UPDATE", old_data=old, new_data=revision.to_dict())
    db.session.commit()
    return revision


def delete_revision(revision_id, actor) -> None:
    revision = get_revision(revision_id)
    _check_client_owns_pending(revision, actor)
    old = revision.to_dict()
    db.session.delete(revision)
    write_audit(table_name="revisions", record_id=revision_id, action="DELETE", old_data=old)
    db.session.commit()
    logger.info("Revision %s deleted by %s", revision_id, actor.id)


def delegate_revision(revision_id, data: dict, actor) -> tuple[Revision, object]:
    """Turn a revision into a task on its proposal and mark it delegated."""
    from opsdesk.services import task_service

    if is_client(actor):
        raise PermissionDeniedError("Clients cannot delegate revisions", required="tasks:create")
    revision = get_revision(revision_id)
    if revision.status == "delegated" and revision.task_id:
        raise ValidationError("Revision is already delegated", details={"status": "delegated"})

    task = task_service.create_task(
        {
            "title": data.get("title") or f"Revision: {revision.title}",
            "description": revision.description,
            "proposal_id": revision.proposal_id,
            "status": data.get("status") or "todo",
            "user_id": data.get("user_id"),
            "member_ids": data.get("member_ids"),
        },
        actor,
        commit=False,
    )
    old = revision.to_dict()
    revision.task_id = task.id
    revision.status = "delegated"
    write_audit(table_name="revisions", record_id=revision.id, action="UPDATE", old_data=old, new_data=revision.to_dict())
    db.session.commit()
    logger.info("Revision %s delegated as task %s", revision.id, task.id)
    return revision, task
