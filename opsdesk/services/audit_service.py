"""Audit Service — filtered, paginated reads of the audit trail."""

from opsdesk.core.exceptions import ValidationError
from opsdesk.models.audit import AUDIT_ACTIONS, AuditLog

DEFAULT_LIMIT = 50
MAX_LIMIT = 200


def list_audit_logs(table_name=None, action=None, user_id=None, record_id=None,
                    limit=DEFAULT_LIMIT, offset=0) -> dict:
    query = AuditLog.query
    if table_name:
        query = query.filter(AuditLog.table_name == table_name)
    if action:
        action = action.upper()
        if action not in AUDIT_ACTIONS:
            raise ValidationError(
                f"action must be one of: {', '.join(AUDIT_ACTIONS)}", details={"action": "invalid"},
            )
        query = query.filter(AuditLog.action == action)
    if user_id:
        query = query.filter(AuditLog.user_id == user_id)
    if record_id:
        query = query.filter(AuditLog.record_id == record_id)

    limit = max(1, min(int(limit or DEFAULT_LIMIT), MAX_LIMIT))
    total = query.count()
    items = query.order_by(AuditLog.created_at.desc()).offset(offset).limit(limit).all()
    return {
        "items": [log.to_dict() for log in items],
        "total": total,
        "limit": limit,
        "offset": offset,
    }
