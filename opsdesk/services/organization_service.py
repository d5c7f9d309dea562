"""
Organization Service — the company profile and its VAT settings.

A deployment normally hosts a single organization; profiles point at it via
``organization_id``. Callers without a link fall back to the first one.
"""

import logging

from email_validator import EmailNotValidError, validate_email

from opsdesk.core.exceptions import ValidationError
from opsdesk.models import db
from opsdesk.models.audit import write_audit
from opsdesk.models.organization import Organization
from opsdesk.utils.helpers import text_arg

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = ("name", "email", "billing_email", "website", "logo", "vat_enabled", "vat_rate")


def get_current(user=None) -> Organization | None:
    if user is not None and user.organization_id:
        org = db.session.get(Organization, user.organization_id)
        if org is not None:
            return org
    return Organization.query.order_by(Organization.created_at.asc()).first()


def _validate(data: dict) -> dict:
    clean = {}
    for key in EDITABLE_FIELDS:
        if key not in data:
            continue
        value = data[key]
        if key in ("email", "billing_email") and value:
            try:
                value = validate_email(str(value).strip(), check_deliverability=False).normalized
            except EmailNotValidError as e:
                raise ValidationError(f"Invalid {key}: {e}", details={key: "invalid"}) from e
        elif key == "vat_rate":
            try:
                value = float(value if value not in (None, "") else 0)
            except (TypeError, ValueError) as e:
                raise ValidationError("vat_rate must be a number", details={"vat_rate": "number"}) from e
            if not 0 <= value <= 100:
                raise ValidationError("vat_rate must be between 0 and 100", details={"vat_rate": "range"})
        elif key == "vat_enabled":
            value = bool(value)
        elif key == "name":
            value = text_arg(value, "name")
            if not value:
                raise ValidationError("name is required", details={"name": "required"})
        clean[key] = value
    return clean


def update_current(user, data: dict) -> Organization:
    """Update (or create, on first save) the caller's organization."""
    clean = _validate(data)
    org = get_current(user)
    if org is None:
        if not clean.get("name"):
            raise ValidationError("name is required", details={"name": "required"})
        org = Organization(**clean)
        db.session.add(org)
        db.session.flush()
        write_audit(table_name="organizations", record_id=org.id, action="INSERT", new_data=org.to_dict())
        logger.info("Organization %s created", org.id)
    else:
        old = org.to_dict()
        for key, value in clean.items():
            setattr(org, key, value)
        db.session.flush()
        write_audit(table_name="organizations", record_id=org.id, action="UPDATE",
                    old_data=old, new_data=org.to_dict())
    if user is not None and not user.organization_id:
        user.organization_id = org.id
    db.session.commit()
    return org


def vat_settings(user=None) -> tuple[bool, float]:
    org = get_current(user)
    if org is None:
        return False, 0.0
    return bool(org.vat_enabled), float(org.vat_rate or 0)
