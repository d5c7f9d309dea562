"""
Permission Decorators — RBAC decorators for route protection.

The JWT middleware has already rejected unauthenticated requests, so these
decorators only decide *authorisation* for ``g.current_user``.

Usage:
    @bp.route("/clients", methods=["POST"])
    @require_permission("create", "clients")
    def create_client():
        ...

    @bp.route("/audit-logs", methods=["GET"])
    @require_admin
    def list_audit_logs():
        ...

    @bp.route("/credentials", methods=["GET"])
    @require_permission("read", "credentials")
    @deny_clients
    def list_credentials():
        ...
"""

import functools
import logging

from flask import g

from opsdesk.services.permission_service import has_permission, is_admin, is_client
from opsdesk.utils.errors import E, api_error

logger = logging.getLogger(__name__)


def current_user():
    """The authenticated Profile for this request (None outside /api/v1)."""
    return getattr(g, "current_user", None)


def require_permission(action: str, resource: str):
    """
    Decorator: require ``<resource>:<action>`` for the current user's role.

    Responds 403 with ``{"error": "Permission denied", "required": "<resource>:<action>"}``.
    """
    required = f"{resource}:{action}"

    def decorator(f):
        @functools.wraps(f)
        def decorated(*args, **kwargs):
            user = current_user()
            role = user.role if user is not None else None
            if not has_permission(role, action, resource):
                logger.warning(
                    "User %s denied: missing permission '%s' on %s",
                    user.id if user is not None else None, required, f.__name__,
                )
                return api_error(E.FORBIDDEN, "Permission denied", required=required)
            return f(*args, **kwargs)
        return decorated
    return decorator


def require_admin(f):
    """Decorator: admin role only."""

    @functools.wraps(f)
    def decorated(*args, **kwargs):
        user = current_user()
        if not is_admin(user):
            logger.warning(
                "User %s denied: admin required on %s",
                user.id if user is not None else None, f.__name__,
            )
            return api_error(E.FORBIDDEN, "Permission denied", required="admin")
        return f(*args, **kwargs)
    return decorated


def deny_clients(f):
    """Decorator: staff only. Client-role logins get 403 even where the matrix allows."""

    @functools.wraps(f)
    def decorated(*args, **kwargs):
        user = current_user()
        if is_client(user):
            logger.warning("Client %s denied on staff-only %s", user.id, f.__name__)
            return api_error(E.FORBIDDEN, "Permission denied", required="staff")
        return f(*args, **kwargs)
    return decorated
