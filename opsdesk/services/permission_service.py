"""
Permission Service — role → permission resolution.

Permission strings are ``<resource>:<action>``; ``*`` grants everything and
``<resource>:*`` grants every action on one resource.

Role model:
    admin     → ["*"]
    employee  → fixed list below
    any other → treated as employee (client logins included)

``is_client`` lets routes and services add the row-level limits client
logins get on top of the employee matrix.

Usage:
    from opsdesk.services.permission_service import has_permission
    if has_permission(user.role, "update", "chat"):
        ...
"""

import logging

logger = logging.getLogger(__name__)

ROLE_PERMISSIONS: dict[str, list[str]] = {
    "admin": ["*"],
    "employee": [
        "dashboard:read",
        "projects:*",
        "tasks:*",
        "deliverables:*",
        "proposals:*",
        "clients:*",
        "team:read",
        "chat:*",
        "credentials:*",
        "organizations:read",
    ],
}


def normalize_role(role: str | None) -> str | None:
    if not role:
        return None
    role = str(role).strip().lower()
    return "admin" if role == "admin" else "employee"


def permissions_for(role: str | None) -> list[str]:
    normalized = normalize_role(role)
    if normalized is None:
        return []
    return list(ROLE_PERMISSIONS[normalized])


def has_permission(role: str | None, action: str, resource: str) -> bool:
    """
    Check whether ``role`` may perform ``action`` on ``resource``.

    A missing role denies. Every decision is logged at DEBUG.
    """
    normalized = normalize_role(role)
    if normalized is None:
        logger.debug("Permission denied: no role (%s:%s)", resource, action)
        return False

    granted = ROLE_PERMISSIONS[normalized]
    allowed = (
        "*" in granted
        or f"{resource}:*" in granted
        or f"{resource}:{action}" in granted
    )
    logger.debug(
        "Permission %s: role=%s (as %s) %s:%s",
        "granted" if allowed else "denied", role, normalized, resource, action,
    )
    return allowed


def can_manage_users(role: str | None) -> bool:
    return normalize_role(role) == "admin"


def is_admin(user) -> bool:
    return user is not None and normalize_role(user.role) == "admin"


def is_client(user) -> bool:
    """Client logins share the employee matrix but only see their own projects."""
    return user is not None and str(user.role or "").strip().lower() == "client"
