"""
OpsDesk
Support ticket model.

Models:
    - Ticket: bug report / feature request / question raised by any user
"""

from opsdesk.models import db, iso, new_id, utcnow

TICKET_TYPES = ("bug", "feature", "question")
TICKET_PRIORITIES = ("low", "medium", "high")
TICKET_STATUSES = ("open", "in_progress", "closed")


class Ticket(db.Model):
    __tablename__ = "tickets"

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    title = db.Column(db.String(300), nullable=False)
    description = db.Column(db.Text, default="")
    type = db.Column(db.String(20), nullable=False, default="bug")
    priority = db.Column(db.String(20), nullable=False, default="medium")
    status = db.Column(db.String(20), nullable=False, default="open", index=True)
    user_id = db.Column(db.String(36), db.ForeignKey("profiles.id", ondelete="SET NULL"), nullable=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    reporter = db.relationship("Profile", lazy="joined")

    def to_dict(self):
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "type": self.type,
            "priority": self.priority,
            "status": self.status,
            "user_id": self.user_id,
            "reporter": self.reporter.brief() if self.reporter else None,
            "created_at": iso(self.created_at),
            "updated_at": iso(self.updated_at),
        }

    def __repr__(self):
        return f"<Ticket {self.id}: {self.title[:40]} [{self.status}]>"
