"""
PIN Service — the 4-digit screen-lock PIN ("PIN wall").

Every attempt is written to ``pin_logs``:
    setup / update                   → PIN stored
    setup_blocked / update_blocked   → rejected as a commonly used PIN
    verification                     → unlock attempt (success or failure)
    reset_failed / reset_success     → password-confirmed PIN removal
"""

import logging
import re

from opsdesk.core.exceptions import AuthenticationError, ValidationError
from opsdesk.models import db
from opsdesk.models.auth import PIN_ATTEMPT_TYPES, PinLog, Profile
from opsdesk.utils.crypto import hash_password, verify_password

logger = logging.getLogger(__name__)

PIN_RE = re.compile(r"^\d{4}$")

# Commonly used PINs, never accepted
BLACKLISTED_PINS = frozenset({
    "1970", "2819", "2008", "0609", "9575", "1234", "0000", "5755", "0908", "1111",
    "0317", "2021", "6767", "2807", "6969", "2022", "2023", "2020", "2024", "2025",
})

COMMON_PIN_MESSAGE = "You've entered a commonly used passcode, please try another one."

PIN_MASK = "****"


def is_blacklisted(pin: str) -> bool:
    return pin in BLACKLISTED_PINS


def _log(user_id: str, attempt_type: str, is_success: bool, pin_entered: str = PIN_MASK) -> PinLog:
    entry = PinLog(
        user_id=user_id,
        attempt_type=attempt_type,
        is_success=is_success,
        pin_entered=pin_entered,
    )
    db.session.add(entry)
    return entry


def set_pin(user: Profile, pin) -> str:
    """
    Store a new PIN. Returns the logged attempt type ("setup" or "update").

    Raises ValidationError for malformed or blacklisted PINs; blacklisted
    attempts are still logged (and committed) before raising.
    """
    pin = str(pin or "").strip()
    if not PIN_RE.match(pin):
        raise ValidationError("PIN must be exactly 4 digits", details={"pin": "format"})

    attempt = "update" if user.has_pin else "setup"
    if is_blacklisted(pin):
        _log(user.id, f"{attempt}_blocked", False, pin_entered=pin)
        db.session.commit()
        logger.info("Blocked common PIN for user %s", user.id)
        raise ValidationError(COMMON_PIN_MESSAGE, details={"pin": "common"})

    user.pin_hash = hash_password(pin)
    _log(user.id, attempt, True)
    db.session.commit()
    return attempt


def verify_pin(user: Profile, pin) -> bool:
    pin = str(pin or "").strip()
    ok = bool(user.pin_hash) and verify_password(pin, user.pin_hash)
    _log(user.id, "verification", ok)
    db.session.commit()
    if not ok:
        logger.info("PIN verification failed for user %s", user.id)
    return ok


def reset_pin(user: Profile, password: str) -> None:
    """Clear the PIN after re-checking the account password."""
    if not verify_password(password or "", user.password_hash):
        _log(user.id, "reset_failed", False)
        db.session.commit()
        raise AuthenticationError("Incorrect password")
    user.pin_hash = None
    _log(user.id, "reset_success", True)
    db.session.commit()


def list_pin_logs(user_id=None, attempt_type=None, is_success=None, limit=200):
    if attempt_type and attempt_type not in PIN_ATTEMPT_TYPES:
        raise ValidationError(f"Unknown attempt_type: {attempt_type}", details={"attempt_type": "invalid"})
    q = PinLog.query
    if user_id:
        q = q.filter_by(user_id=user_id)
    if attempt_type:
        q = q.filter_by(attempt_type=attempt_type)
    if is_success is not None:
        q = q.filter_by(is_success=is_success)
    return q.order_by(PinLog.created_at.desc()).limit(limit).all()
