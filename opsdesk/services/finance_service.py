"""
Finance Service — invoices, expenses and the revenue summary.

Invoice numbers are sequential ``INV-0001``, ``INV-0002``... derived from the
highest existing number. Totals are always recomputed server-side from the
line items and the organization's VAT settings.

An invoice linked to a proposal keeps the proposal in sync: saving the
invoice writes its line items and amount back to the proposal and recomputes
the proposal's commission.
"""

import logging
import re

from sqlalchemy import func

from opsdesk.core.exceptions import ConflictError, NotFoundError, ValidationError
from opsdesk.models import db
from opsdesk.models.audit import write_audit
from opsdesk.models.finance import INVOICE_STATUSES, Expense, Invoice
from opsdesk.models.project import Project
from opsdesk.models.proposal import Proposal
from opsdesk.services import organization_service
from opsdesk.services.proposal_service import apply_commission, clean_line_items, line_items_total
from opsdesk.utils.helpers import parse_date, text_arg

logger = logging.getLogger(__name__)

INVOICE_PREFIX = "INV-"
_INVOICE_NUMBER_RE = re.compile(r"^INV-(\d+)$")


# ── Numbering & totals ───────────────────────────────────────────────────────

def next_invoice_number() -> str:
    """``INV-`` + zero-padded (last number + 1); ``INV-0001`` when none parse."""
    last = (
        Invoice.query.filter(Invoice.invoice_number.like(f"{INVOICE_PREFIX}%"))
        .order_by(func.length(Invoice.invoice_number).desc(), Invoice.invoice_number.desc())
        .first()
    )
    match = _INVOICE_NUMBER_RE.match(last.invoice_number) if last else None
    number = int(match.group(1)) + 1 if match else 1
    return f"{INVOICE_PREFIX}{number:04d}"


def compute_totals(line_items, user=None) -> dict:
    vat_enabled, vat_rate = organization_service.vat_settings(user)
    amount = line_items_total(line_items)
    rate = vat_rate if vat_enabled else 0.0
    vat_amount = round(amount * rate / 100, 2)
    return {
        "amount": amount,
        "vat_rate": rate,
        "vat_amount": vat_amount,
        "total": round(amount + vat_amount, 2),
    }


def _apply_totals(invoice: Invoice, user=None) -> None:
    for key, value in compute_totals(invoice.line_items, user).items():
        setattr(invoice, key, value)


def _sync_proposal(invoice: Invoice) -> None:
    if not invoice.proposal_id:
        return
    proposal = db.session.get(Proposal, invoice.proposal_id)
    if proposal is None:
        return
    proposal.line_items = list(invoice.line_items or [])
    proposal.amount = invoice.amount
    apply_commission(proposal)
    logger.debug("Proposal %s synced from invoice %s", proposal.id, invoice.invoice_number)


# ── Invoices ─────────────────────────────────────────────────────────────────

def get_invoice(invoice_id) -> Invoice:
    invoice = db.session.get(Invoice, invoice_id)
    if invoice is None:
        raise NotFoundError(resource="Invoice", resource_id=invoice_id)
    return invoice


def list_invoices(status=None, client_id=None, project_id=None):
    query = Invoice.query
    if status:
        query = query.filter(Invoice.status == status)
    if client_id:
        query = query.filter(Invoice.client_id == client_id)
    if project_id:
        query = query.filter(Invoice.project_id == project_id)
    return query.order_by(Invoice.created_at.desc()).all()


def _check_status(status):
    if status not in INVOICE_STATUSES:
        raise ValidationError(
            f"status must be one of: {', '.join(INVOICE_STATUSES)}", details={"status": "invalid"},
        )
    return status


def _check_number(number, invoice_id=None) -> str:
    number = text_arg(number, "invoice_number")
    if not number:
        raise ValidationError("invoice_number cannot be empty", details={"invoice_number": "required"})
    clash = Invoice.query.filter(Invoice.invoice_number == number).first()
    if clash is not None and clash.id != invoice_id:
        raise ConflictError("Invoice", "invoice_number", number)
    return number


def generate_from_proposal(proposal_id, data: dict, user=None) -> Invoice:
    """Create a draft invoice from a proposal's line items (or its amount)."""
    proposal = db.session.get(Proposal, proposal_id)
    if proposal is None:
        raise NotFoundError(resource="Proposal", resource_id=proposal_id)

    items = list(proposal.line_items or [])
    if not items:
        items = [{"description": proposal.title, "quantity": 1, "price": float(proposal.amount or 0)}]

    project = proposal.project
    invoice = Invoice(
        invoice_number=_check_number(data.get("invoice_number") or next_invoice_number()),
        proposal_id=proposal.id,
        project_id=proposal.project_id,
        client_id=project.client_id if project else None,
        status=_check_status(data.get("status") or "draft"),
        due_date=parse_date(data.get("due_date")),
        notes=text_arg(data.get("notes"), "notes"),
        line_items=clean_line_items(items),
        hide_line_item_prices=bool(data.get("hide_line_item_prices", False)),
    )
    _apply_totals(invoice, user)
    db.session.add(invoice)
    db.session.flush()
    write_audit(table_name="invoices", record_id=invoice.id, action="INSERT", new_data=invoice.to_dict())
    db.session.commit()
    logger.info("Invoice %s generated from proposal %s (total=%.2f)", invoice.invoice_number, proposal.id, invoice.total)
    return invoice


def create_invoice(data: dict, user=None) -> Invoice:
    if data.get("proposal_id"):
        return generate_from_proposal(data["proposal_id"], data, user)

    project_id = data.get("project_id") or None
    client_id = data.get("client_id") or None
    if project_id:
        project = db.session.get(Project, project_id)
        if project is None:
            raise ValidationError("project_id does not exist", details={"project_id": "not_found"})
        client_id = client_id or project.client_id

    invoice = Invoice(
        invoice_number=_check_number(data.get("invoice_number") or next_invoice_number()),
        project_id=project_id,
        client_id=client_id,
        status=_check_status(data.get("status") or "draft"),
        due_date=parse_date(data.get("due_date")),
        notes=text_arg(data.get("notes"), "notes"),
        line_items=clean_line_items(data.get("line_items") or []),
        hide_line_item_prices=bool(data.get("hide_line_item_prices", False)),
    )
    _apply_totals(invoice, user)
    db.session.add(invoice)
    db.session.flush()
    write_audit(table_name="invoices", record_id=invoice.id, action="INSERT", new_data=invoice.to_dict())
    db.session.commit()
    return invoice


def update_invoice(invoice_id, data: dict, user=None) -> Invoice:
    invoice = get_invoice(invoice_id)
    old = invoice.to_dict()

    if "invoice_number" in data:
        invoice.invoice_number = _check_number(data.get("invoice_number"), invoice.id)
    if "status" in data:
        invoice.status = _check_status(data.get("status"))
    if "due_date" in data:
        invoice.due_date = parse_date(data.get("due_date"))
    if "notes" in data:
        invoice.notes = text_arg(data.get("notes"), "notes")
    if "hide_line_item_prices" in data:
        invoice.hide_line_item_prices = bool(data.get("hide_line_item_prices"))
    if "line_items" in data:
        invoice.line_items = clean_line_items(data.get("line_items"))

    _apply_totals(invoice, user)
    _sync_proposal(invoice)
    db.session.flush()
    write_audit(table_name="invoices", record_id=invoice.id, action="UPDATE", old_data=old, new_data=invoice.to_dict())
    db.session.commit()
    return invoice


def delete_invoice(invoice_id) -> None:
    invoice = get_invoice(invoice_id)
    old = invoice.to_dict()
    db.session.delete(invoice)
    write_audit(table_name="invoices", record_id=invoice_id, action="DELETE", old_data=old)
    db.session.commit()


# ── Expenses ─────────────────────────────────────────────────────────────────

def _apply_expense(expense: Expense, data: dict, creating: bool) -> None:
    if "description" in data or creating:
        description = text_arg(data.get("description"), "description")
        if not description:
            raise ValidationError("description is required", details={"description": "required"})
        expense.description = description
    if "amount" in data or creating:
        try:
            amount = float(data.get("amount"))
        except (TypeError, ValueError) as e:
            raise ValidationError("amount must be a number", details={"amount": "number"}) from e
        if amount <= 0:
            raise ValidationError("amount must be greater than 0", details={"amount": "min"})
        expense.amount = amount
    if "category" in data:
        expense.category = text_arg(data.get("category"), "category") or "general"
    if "date" in data:
        expense.date = parse_date(data.get("date"))
    if "project_id" in data:
        project_id = data.get("project_id") or None
        if project_id and db.session.get(Project, project_id) is None:
            raise ValidationError("project_id does not exist", details={"project_id": "not_found"})
        expense.project_id = project_id


def get_expense(expense_id) -> Expense:
    expense = db.session.get(Expense, expense_id)
    if expense is None:
        raise NotFoundError(resource="Expense", resource_id=expense_id)
    return expense


def list_expenses(project_id=None, category=None):
    query = Expense.query
    if project_id:
        query = query.filter(Expense.project_id == project_id)
    if category:
        query = query.filter(Expense.category == category)
    return query.order_by(Expense.date.desc(), Expense.created_at.desc()).all()


def create_expense(data: dict, actor) -> Expense:
    expense = Expense(category="general", user_id=actor.id if actor else None)
    _apply_expense(expense, data, creating=True)
    db.session.add(expense)
    db.session.flush()
    write_audit(table_name="expenses", record_id=expense.id, action="INSERT", new_data=expense.to_dict())
    db.session.commit()
    return expense


def update_expense(expense_id, data: dict) -> Expense:
    expense = get_expense(expense_id)
    old = expense.to_dict()
    _apply_expense(expense, data, creating=False)
    db.session.flush()
    write_audit(table_name="expenses", record_id=expense.id, action="UPDATE", old_data=old, new_data=expense.to_dict())
    db.session.commit()
    return expense


def delete_expense(expense_id) -> None:
    expense = get_expense(expense_id)
    old = expense.to_dict()
    db.session.delete(expense)
    write_audit(table_name="expenses", record_id=expense_id, action="DELETE", old_data=old)
    db.session.commit()


# ── Summary ──────────────────────────────────────────────────────────────────

def summary() -> dict:
    """Revenue is net of commission where a net amount is known."""
    total_revenue = sum(
        float(p.net_amount if p.net_amount is not None else (p.amount or 0))
        for p in Proposal.query.all()
    )
    total_expenses = float(db.session.query(func.coalesce(func.sum(Expense.amount), 0)).scalar() or 0)
    pending = Proposal.query.filter(Proposal.status == "sent").count()
    return {
        "total_revenue": round(total_revenue, 2),
        "total_expenses": round(total_expenses, 2),
        "net_profit": round(total_revenue - total_expenses, 2),
        "pending_invoices": pending,
    }
