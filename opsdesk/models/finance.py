"""
OpsDesk
Finance domain models.

Models:
    - Invoice: billable document generated from (and synced with) a proposal
    - Expense: outgoing cost, optionally booked against a project
"""

from opsdesk.models import db, iso, new_id, utcnow

INVOICE_STATUSES = ("draft", "sent", "paid", "cancelled")


class Invoice(db.Model):
    __tablename__ = "invoices"

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    invoice_number = db.Column(db.String(30), unique=True, nullable=False, index=True)
    proposal_id = db.Column(db.String(36), db.ForeignKey("proposals.id", ondelete="SET NULL"), nullable=True, index=True)
    project_id = db.Column(db.String(36), db.ForeignKey("projects.id", ondelete="SET NULL"), nullable=True, index=True)
    client_id = db.Column(db.String(36), db.ForeignKey("clients.id", ondelete="SET NULL"), nullable=True, index=True)
    status = db.Column(db.String(20), nullable=False, default="draft")
    due_date = db.Column(db.Date, nullable=True)
    notes = db.Column(db.Text, default="")
    line_items = db.Column(db.JSON, default=list, comment="[{description, quantity, price}]")
    amount = db.Column(db.Float, default=0.0)
    vat_rate = db.Column(db.Float, default=0.0)
    vat_amount = db.Column(db.Float, default=0.0)
    total = db.Column(db.Float, default=0.0)
    hide_line_item_prices = db.Column(db.Boolean, default=False, nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    proposal = db.relationship("Proposal")
    project = db.relationship("Project")
    client = db.relationship("Client")

    def to_dict(self):
        return {
            "id": self.id,
            "invoice_number": self.invoice_number,
            "proposal_id": self.proposal_id,
            "project_id": self.project_id,
            "client_id": self.client_id,
            "client_name": self.client.full_name if self.client else None,
            "project_name": self.project.name if self.project else None,
            "status": self.status,
            "due_date": iso(self.due_date),
            "notes": self.notes,
            "line_items": list(self.line_items or []),
            "amount": self.amount,
            "vat_rate": self.vat_rate,
            "vat_amount": self.vat_amount,
            "total": self.total,
            "hide_line_item_prices": self.hide_line_item_prices,
            "created_at": iso(self.created_at),
            "updated_at": iso(self.updated_at),
        }

    def __repr__(self):
        return f"<Invoice {self.invoice_number}: {self.total}>"


class Expense(db.Model):
    __tablename__ = "expenses"

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    description = db.Column(db.String(500), nullable=False)
    amount = db.Column(db.Float, nullable=False)
    category = db.Column(db.String(100), default="general")
    date = db.Column(db.Date, nullable=True)
    project_id = db.Column(db.String(36), db.ForeignKey("projects.id", ondelete="SET NULL"), nullable=True, index=True)
    user_id = db.Column(db.String(36), db.ForeignKey("profiles.id", ondelete="SET NULL"), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    def to_dict(self):
        return {
            "id": self.id,
            "description": self.description,
            "amount": self.amount,
            "category": self.category,
            "date": iso(self.date),
            "project_id": self.project_id,
            "user_id": self.user_id,
            "created_at": iso(self.created_at),
            "updated_at": iso(self.updated_at),
        }
