"""Shared request/DB helpers used across blueprints and services.

parse_date:          returns None on bad input
text_arg:            stripped JSON string field, 422 on non-strings
slugify:             channel / role slugs
db_commit_or_error:  commit with rollback + JSON error on failure
"""
import logging
import re
from datetime import date, datetime

from flask import jsonify, request

from opsdesk.core.exceptions import ValidationError
from opsdesk.models import db

logger = logging.getLogger(__name__)


def parse_date(value):
    """Parse a date string (ISO or DD.MM.YYYY) to a date object.

    Returns None for empty/invalid input.
    """
    if not value:
        return None
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value))
    except (ValueError, TypeError):
        pass
    try:
        return datetime.fromisoformat(str(value)).date()
    except (ValueError, TypeError):
        pass
    try:
        return datetime.strptime(str(value), "%d.%m.%Y").date()
    except (ValueError, TypeError):
        return None


def text_arg(value, field: str, default=""):
    """Strip a JSON text field. None gives ``default``; numbers, lists etc. raise 422."""
    if value is None:
        return default
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be a string", details={field: "type"})
    return value.strip()


def pagination_args(default_limit=50, max_limit=200):
    """Parse limit/offset query params from the current request."""
    try:
        limit = min(max(int(request.args.get("limit", default_limit)), 1), max_limit)
    except (ValueError, TypeError):
        limit = default_limit
    try:
        offset = max(int(request.args.get("offset", 0)), 0)
    except (ValueError, TypeError):
        offset = 0
    return limit, offset


def flag(value) -> bool:
    """Interpret query-string / JSON truthiness ("1", "true", True)."""
    if isinstance(value, bool):
        return value
    return str(value or "").strip().lower() in ("1", "true", "yes", "on")


# ── Slugs ────────────────────────────────────────────────────────────────────

_WS_RE = re.compile(r"\s+")
_NON_WORD_RE = re.compile(r"[^\w-]+")
_MULTI_DASH_RE = re.compile(r"-{2,}")


def slugify(text):
    """Lowercase, whitespace → '-', drop non-word chars, collapse dashes, trim.

    >>> slugify("  General Chat!! ")
    'general-chat'
    """
    text = str(text or "").lower()
    text = _WS_RE.sub("-", text)
    text = _NON_WORD_RE.sub("", text)
    text = _MULTI_DASH_RE.sub("-", text)
    return text.strip("-")


# ── Database commit helper ───────────────────────────────────────────────────

def db_commit_or_error():
    """Commit the current SQLAlchemy session, returning an error response on failure.

    Returns:
        None on success.
        (response, status_code) tuple on failure — ready for ``return``.

    IntegrityError → 409 (duplicate / constraint violation)
    OperationalError → 500 (connection / lock issues)
    Other → 500 (unexpected)
    """
    from sqlalchemy.exc import IntegrityError, OperationalError

    try:
        db.session.commit()
        return None
    except IntegrityError as exc:
        db.session.rollback()
        logger.warning("Integrity error on commit: %s", exc.orig)
        return jsonify({"error": "Duplicate or constraint violation", "code": "ERR_CONFLICT_DUPLICATE"}), 409
    except OperationalError:
        db.session.rollback()
        logger.exception("Database operational error on commit")
        return jsonify({"error": "Database error", "code": "ERR_DATABASE"}), 500
    except Exception:
        db.session.rollback()
        logger.exception("Unexpected database error on commit")
        return jsonify({"error": "Database error", "code": "ERR_DATABASE"}), 500
