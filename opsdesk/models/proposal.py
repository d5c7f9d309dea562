"""
OpsDesk
Proposal (phase) domain models.

Models:
    - Proposal: a priced, scoped phase of a project
    - Deliverable: ordered deliverable list of a proposal
    - Revision: client change request against a proposal
"""

from opsdesk.models import db, iso, new_id, utcnow

PROPOSAL_STATUSES = ("draft", "sent", "active", "on_hold", "complete", "rejected")
ORDER_SOURCES = ("direct", "fiverr")
REVISION_STATUSES = ("pending", "delegated", "completed")

# Money fields only admins may write
MONEY_FIELDS = ("amount", "order_source", "line_items")


class Proposal(db.Model):
    __tablename__ = "proposals"

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    project_id = db.Column(db.String(36), db.ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True)
    title = db.Column(db.String(300), nullable=False)
    description = db.Column(db.Text, default="")
    status = db.Column(db.String(20), nullable=False, default="draft", index=True)

    # Money
    amount = db.Column(db.Float, default=0.0)
    order_source = db.Column(db.String(20), default="direct", comment="direct | fiverr")
    commission_rate = db.Column(db.Float, default=0.0)
    commission_amount = db.Column(db.Float, default=0.0)
    net_amount = db.Column(db.Float, nullable=True)
    line_items = db.Column(db.JSON, default=list, comment="[{description, quantity, price}]")

    # Rendered markdown sections
    tech_stack = db.Column(db.Text, default="")
    timeline = db.Column(db.Text, default="")
    payment_schedule = db.Column(db.Text, default="")

    order_index = db.Column(db.Integer, default=0)
    user_id = db.Column(db.String(36), db.ForeignKey("profiles.id", ondelete="SET NULL"), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    project = db.relationship("Project", back_populates="proposals")
    deliverables = db.relationship(
        "Deliverable", cascade="all, delete-orphan", back_populates="proposal",
        order_by="Deliverable.order_index",
    )
    revisions = db.relationship("Revision", cascade="all, delete-orphan", back_populates="proposal")
    tasks = db.relationship("Task", cascade="all, delete-orphan", back_populates="proposal")
    channel = db.relationship("Channel", uselist=False, cascade="all, delete-orphan", back_populates="proposal")

    def to_dict(self, include_money=True):
        d = {
            "id": self.id,
            "project_id": self.project_id,
            "title": self.title,
            "description": self.description,
            "status": self.status,
            "tech_stack": self.tech_stack,
            "timeline": self.timeline,
            "payment_schedule": self.payment_schedule,
            "order_index": self.order_index,
            "user_id": self.user_id,
            "deliverables": [dl.to_dict() for dl in self.deliverables],
            "channel_id": self.channel.id if self.channel else None,
            "created_at": iso(self.created_at),
            "updated_at": iso(self.updated_at),
        }
        if include_money:
            d.update({
                "amount": self.amount,
                "order_source": self.order_source,
                "commission_rate": self.commission_rate,
                "commission_amount": self.commission_amount,
                "net_amount": self.net_amount,
                "line_items": list(self.line_items or []),
            })
        return d

    def __repr__(self):
        return f"<Proposal {self.id}: {self.title} [{self.status}]>"


class Deliverable(db.Model):
    __tablename__ = "deliverables"

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    proposal_id = db.Column(db.String(36), db.ForeignKey("proposals.id", ondelete="CASCADE"), nullable=False, index=True)
    title = db.Column(db.String(300), nullable=False)
    description = db.Column(db.Text, default="")
    order_index = db.Column(db.Integer, default=0)

    proposal = db.relationship("Proposal", back_populates="deliverables")

    def to_dict(self):
        return {
            "id": self.id,
            "proposal_id": self.proposal_id,
            "title": self.title,
            "description": self.description,
            "order_index": self.order_index,
        }


class Revision(db.Model):
    __tablename__ = "revisions"

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    proposal_id = db.Column(db.String(36), db.ForeignKey("proposals.id", ondelete="CASCADE"), nullable=False, index=True)
    client_id = db.Column(db.String(36), db.ForeignKey("clients.id", ondelete="SET NULL"), nullable=True)
    title = db.Column(db.String(300), nullable=False)
    description = db.Column(db.Text, default="")
    status = db.Column(db.String(20), nullable=False, default="pending")
    task_id = db.Column(db.String(36), db.ForeignKey("tasks.id", ondelete="SET NULL"), nullable=True)
    user_id = db.Column(db.String(36), db.ForeignKey("profiles.id", ondelete="SET NULL"), nullable=True,
                        comment="Submitting profile")

    created_at = db.Column(db.DateTime(timezone=True), default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    proposal = db.relationship("Proposal", back_populates="revisions")

    def to_dict(self):
        return {
            "id": self.id,
            "proposal_id": self.proposal_id,
            "client_id": self.client_id,
            "title": self.title,
            "description": self.description,
            "status": self.status,
            "task_id": self.task_id,
            "user_id": self.user_id,
            "created_at": iso(self.created_at),
            "updated_at": iso(self.updated_at),
        }
