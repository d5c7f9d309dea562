"""
OpsDesk
Model package — shared SQLAlchemy handle and column helpers.

Every model module imports ``db`` from here; ``opsdesk.create_app`` imports
the model modules so metadata is complete before ``db.create_all()``.
"""

import uuid
from datetime import datetime, timezone

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()


def new_id() -> str:
    """Primary-key factory: UUID4 as a 36-char string."""
    return str(uuid.uuid4())


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def iso(value):
    """ISO-8601 string for a date/datetime, or None."""
    return value.isoformat() if value else None
