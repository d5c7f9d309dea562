"""
Credential Service — project secret vault.

Values are sealed with Fernet (``opsdesk.utils.crypto.seal``) when an
ENCRYPTION_KEY is configured. ``Email Password`` credentials keep a JSON
``{"email", "password"}`` document in ``value``.

Reading the plaintext goes through ``reveal_credential`` only, which writes
an audit row for every access.
"""

import json
import logging

from email_validator import EmailNotValidError, validate_email

from opsdesk.core.exceptions import NotFoundError, ValidationError
from opsdesk.models import db
from opsdesk.models.audit import write_audit
from opsdesk.models.credential import CREDENTIAL_TYPES, Credential
from opsdesk.models.project import Project
from opsdesk.utils.crypto import InvalidToken, seal, unseal
from opsdesk.utils.helpers import text_arg

logger = logging.getLogger(__name__)

EMAIL_PASSWORD = "Email Password"


def _safe(credential: Credential) -> dict:
    """Audit snapshot without the secret."""
    data = credential.to_dict()
    data.pop("value", None)
    return data


def _build_value(cred_type: str, data: dict) -> str:
    if cred_type == EMAIL_PASSWORD:
        email = text_arg(data.get("email"), "email")
        password = data.get("password") or ""
        if not email or not password:
            raise ValidationError(
                "email and password are required for Email Password credentials",
                details={"email": "required", "password": "required"},
            )
        try:
            email = validate_email(email, check_deliverability=False).normalized
        except EmailNotValidError as e:
            raise ValidationError(f"Invalid email: {e}", details={"email": "invalid"}) from e
        return json.dumps({"email": email, "password": password})

    value = data.get("value")
    if value is None or not str(value).strip():
        raise ValidationError("value is required", details={"value": "required"})
    return str(value)


def _validate_common(name, cred_type, project_id):
    if len(text_arg(name, "name")) < 2:
        raise ValidationError("name must be at least 2 characters", details={"name": "min_length"})
    if cred_type not in CREDENTIAL_TYPES:
        raise ValidationError(
            f"type must be one of: {', '.join(CREDENTIAL_TYPES)}", details={"type": "invalid"},
        )
    if not project_id:
        raise ValidationError("project_id is required", details={"project_id": "required"})
    if db.session.get(Project, project_id) is None:
        raise ValidationError("project_id does not exist", details={"project_id": "not_found"})


def get_credential(credential_id) -> Credential:
    credential = db.session.get(Credential, credential_id)
    if credential is None:
        raise NotFoundError(resource="Credential", resource_id=credential_id)
    return credential


def list_credentials(project_id=None, type=None):
    query = Credential.query
    if project_id:
        query = query.filter(Credential.project_id == project_id)
    if type:
        query = query.filter(Credential.type == type)
    return query.order_by(Credential.name.asc()).all()


def create_credential(data: dict, actor) -> Credential:
    name = text_arg(data.get("name"), "name")
    cred_type = data.get("type") or "Other"
    project_id = data.get("project_id")
    _validate_common(name, cred_type, project_id)

    credential = Credential(
        name=name,
        type=cred_type,
        value=seal(_build_value(cred_type, data)),
        notes=text_arg(data.get("notes"), "notes"),
        project_id=project_id,
        user_id=actor.id,
    )
    db.session.add(credential)
    db.session.flush()
    write_audit(table_name="credentials", record_id=credential.id, action="INSERT", new_data=_safe(credential))
    db.session.commit()
    logger.info("Credential %s (%s) stored for project %s", credential.id, cred_type, project_id)
    return credential


def update_credential(credential_id, data: dict) -> Credential:
    """Metadata edits are partial; the secret is replaced only when supplied."""
    credential = get_credential(credential_id)
    old = _safe(credential)

    name = (data.get("name") if "name" in data else credential.name) or ""
    cred_type = data.get("type") or credential.type
    project_id = data.get("project_id") or credential.project_id
    _validate_common(name, cred_type, project_id)

    secret_supplied = any(k in data for k in ("value", "email", "password"))
    if secret_supplied or cred_type != credential.type:
        credential.value = seal(_build_value(cred_type, data))

    credential.name = name.strip()
    credential.type = cred_type
    credential.project_id = project_id
    if "notes" in data:
        credential.notes = text_arg(data.get("notes"), "notes")

    db.session.flush()
    write_audit(table_name="credentials", record_id=credential.id, action="UPDATE",
                old_data=old, new_data=_safe(credential))
    db.session.commit()
    return credential


def delete_credential(credential_id) -> None:
    credential = get_credential(credential_id)
    old = _safe(credential)
    db.session.delete(credential)
    write_audit(table_name="credentials", record_id=credential_id, action="DELETE", old_data=old)
    db.session.commit()


def reveal_credential(credential_id, actor) -> dict:
    """Decrypt a credential for display and record the access."""
    credential = get_credential(credential_id)
    try:
        plaintext = unseal(credential.value)
    except InvalidToken as e:
        logger.error("Credential %s could not be decrypted with the configured key", credential.id)
        raise ValidationError(
            "Stored value cannot be decrypted with the current key", details={"value": "undecryptable"},
        ) from e
    except RuntimeError as e:
        logger.error("Credential %s is sealed but ENCRYPTION_KEY is not set", credential.id)
        raise ValidationError(
            "Stored value is encrypted and no key is configured", details={"value": "no_key"},
        ) from e

    result = credential.to_dict()
    if credential.type == EMAIL_PASSWORD:
        try:
            pair = json.loads(plaintext)
        except ValueError:
            pair = {"email": None, "password": plaintext}
        result.update(value=plaintext, email=pair.get("email"), password=pair.get("password"))
    else:
        result["value"] = plaintext

    write_audit(
        table_name="credentials",
        record_id=credential.id,
        action="UPDATE",
        new_data={"event": "reveal", "name": credential.name},
        user_id=actor.id,
    )
    db.session.commit()
    logger.info("Credential %s revealed by %s", credential.id, actor.id)
    return result
