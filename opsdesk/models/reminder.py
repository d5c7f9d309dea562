"""
OpsDesk
Reminder model.

Models:
    - Reminder: personal reminder delivered as a notification at ``remind_at``
"""

from opsdesk.models import db, iso, new_id, utcnow


class Reminder(db.Model):
    __tablename__ = "reminders"
    __table_args__ = (
        db.Index("idx_reminders_due", "is_sent", "remind_at"),
    )

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    user_id = db.Column(db.String(36), db.ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, index=True)
    title = db.Column(db.String(300), nullable=False)
    description = db.Column(db.Text, default="")
    link = db.Column(db.String(500))
    remind_at = db.Column(db.DateTime(timezone=True), nullable=False)
    is_sent = db.Column(db.Boolean, default=False, nullable=False)
    sent_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow)

    def to_dict(self):
        return {
            "id": self.id,
            "user_id": self.user_id,
            "title": self.title,
            "description": self.description,
            "link": self.link,
            "remind_at": iso(self.remind_at),
            "is_sent": self.is_sent,
            "sent_at": iso(self.sent_at),
            "created_at": iso(self.created_at),
        }
