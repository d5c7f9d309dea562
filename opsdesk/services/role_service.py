"""
Custom Role Service — admin-managed permission bundles.

System roles (admin, employee) are seeded by ``flask seed-roles`` and can be
edited but never deleted.
"""

import logging

from opsdesk.core.exceptions import ConflictError, NotFoundError, ValidationError
from opsdesk.models import db
from opsdesk.models.audit import write_audit
from opsdesk.models.auth import CustomRole
from opsdesk.services.permission_service import ROLE_PERMISSIONS
from opsdesk.utils.helpers import slugify, text_arg

logger = logging.getLogger(__name__)

SYSTEM_ROLES = {
    "admin": ("Admin", "Full access to every resource"),
    "employee": ("Employee", "Day-to-day project work"),
}


def _clean_permissions(perms) -> list[str]:
    if perms is None:
        return []
    if not isinstance(perms, list) or not all(isinstance(p, str) for p in perms):
        raise ValidationError("permissions must be a list of strings", details={"permissions": "list"})
    cleaned = []
    for p in perms:
        p = p.strip()
        if p != "*" and (":" not in p or p.startswith(":") or p.endswith(":")):
            raise ValidationError(
                f"Invalid permission '{p}' (expected '<resource>:<action>' or '*')",
                details={"permissions": p},
            )
        if p not in cleaned:
            cleaned.append(p)
    return cleaned


def list_roles():
    return CustomRole.query.order_by(CustomRole.is_system.desc(), CustomRole.name.asc()).all()


def get_role(role_id):
    role = db.session.get(CustomRole, role_id)
    if role is None:
        raise NotFoundError(resource="CustomRole", resource_id=role_id)
    return role


def create_role(data: dict) -> CustomRole:
    name = text_arg(data.get("name"), "name")
    if not name:
        raise ValidationError("name is required", details={"name": "required"})
    slug = slugify(data.get("slug") or name)
    if not slug:
        raise ValidationError("name must contain letters or digits", details={"name": "invalid"})
    if CustomRole.query.filter_by(slug=slug).first():
        raise ConflictError("CustomRole", "slug", slug)

    role = CustomRole(
        name=name,
        slug=slug,
        description=text_arg(data.get("description"), "description"),
        permissions=_clean_permissions(data.get("permissions")),
        is_system=False,
    )
    db.session.add(role)
    db.session.flush()
    write_audit(table_name="custom_roles", record_id=role.id, action="INSERT", new_data=role.to_dict())
    db.session.commit()
    return role


def update_role(role_id, data: dict) -> CustomRole:
    role = get_role(role_id)
    old = role.to_dict()
    if "name" in data:
        name = text_arg(data.get("name"), "name")
        if not name:
            raise ValidationError("name cannot be empty", details={"name": "required"})
        role.name = name
    if "description" in data:
        role.description = text_arg(data.get("description"), "description")
    if "permissions" in data:
        role.permissions = _clean_permissions(data.get("permissions"))
    write_audit(table_name="custom_roles", record_id=role.id, action="UPDATE", old_data=old, new_data=role.to_dict())
    db.session.commit()
    return role


def delete_role(role_id) -> None:
    role = get_role(role_id)
    if role.is_system:
        raise ValidationError("System roles cannot be deleted", details={"is_system": True})
    old = role.to_dict()
    db.session.delete(role)
    write_audit(table_name="custom_roles", record_id=role_id, action="DELETE", old_data=old)
    db.session.commit()


def seed_system_roles() -> int:
    """Upsert the built-in roles. Returns the number of roles created."""
    created = 0
    for slug, (name, description) in SYSTEM_ROLES.items():
        role = CustomRole.query.filter_by(slug=slug).first()
        if role is None:
            role = CustomRole(slug=slug)
            db.session.add(role)
            created += 1
        role.name = name
        role.description = description
        role.permissions = list(ROLE_PERMISSIONS[slug])
        role.is_system = True
    db.session.commit()
    logger.info("System roles seeded (%d new)", created)
    return created
