"""
OpsDesk
Audit domain model.

Models:
    - AuditLog: append-only row-level change trail (INSERT / UPDATE / DELETE).
"""

import json

from opsdesk.models import db, iso, new_id, utcnow

AUDIT_ACTIONS = ("INSERT", "UPDATE", "DELETE")


class AuditLog(db.Model):
    """
    One row per mutation. ``old_data`` / ``new_data`` are ``to_dict``
    snapshots of the record before and after the change.
    """

    __tablename__ = "audit_logs"
    __table_args__ = (
        db.Index("idx_audit_record", "table_name", "record_id"),
        db.Index("idx_audit_created", "created_at"),
    )

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    table_name = db.Column(db.String(60), nullable=False)
    record_id = db.Column(db.String(36), nullable=False)
    action = db.Column(db.String(10), nullable=False, comment="INSERT | UPDATE | DELETE")
    old_data = db.Column(db.JSON, nullable=True)
    new_data = db.Column(db.JSON, nullable=True)
    user_id = db.Column(db.String(36), db.ForeignKey("profiles.id", ondelete="SET NULL"), nullable=True, index=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    actor = db.relationship("Profile", lazy="joined")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "table_name": self.table_name,
            "record_id": self.record_id,
            "action": self.action,
            "old_data": self.old_data,
            "new_data": self.new_data,
            "user_id": self.user_id,
            "user_name": self.actor.full_name if self.actor else None,
            "created_at": iso(self.created_at),
        }

    def __repr__(self):
        return f"<AuditLog {self.id}: {self.action} on {self.table_name}/{self.record_id}>"


# ── Convenience writer ───────────────────────────────────────────────────────

def _json_safe(data):
    if data is None:
        return None
    return json.loads(json.dumps(data, default=str))


def write_audit(
    *,
    table_name: str,
    record_id: str,
    action: str,
    old_data: dict | None = None,
    new_data: dict | None = None,
    user_id: str | None = None,
) -> AuditLog:
    """
    Append a single audit row.  Uses ``flush`` so callers keep
    transaction control.

    ``user_id`` defaults to the authenticated profile of the current request.
    """
    if user_id is None:
        from flask import g, has_request_context
        if has_request_context():
            current = getattr(g, "current_user", None)
            user_id = current.id if current is not None else None

    log = AuditLog(
        table_name=table_name,
        record_id=str(record_id),
        action=action,
        old_data=_json_safe(old_data),
        new_data=_json_safe(new_data),
        user_id=user_id,
    )
    db.session.add(log)
    db.session.flush()
    return log
