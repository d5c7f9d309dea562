"""
User Service — sign-in, profile CRUD, team listing, account deletion.
"""

import logging

import jwt as pyjwt
from email_validator import EmailNotValidError, validate_email
from sqlalchemy import or_

from opsdesk.core.exceptions import (
    AuthenticationError,
    ConflictError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from opsdesk.models import db, utcnow
from opsdesk.models.audit import write_audit
from opsdesk.models.auth import ROLES, Profile
from opsdesk.models.project import ProjectMember
from opsdesk.models.task import TaskMember
from opsdesk.services.jwt_service import decode_refresh_token, generate_access_token, generate_token_pair
from opsdesk.services.permission_service import can_manage_users, permissions_for
from opsdesk.utils.crypto import hash_password, verify_password
from opsdesk.utils.helpers import text_arg

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 8


def normalize_email(email: str) -> str:
    try:
        return validate_email(text_arg(email, "email"), check_deliverability=False).normalized
    except EmailNotValidError as e:
        raise ValidationError(f"Invalid email: {e}", details={"email": "invalid"}) from e


def _normalize_role(role) -> str:
    role = str(role or "").strip().lower()
    if role not in ROLES:
        raise ValidationError(f"role must be one of: {', '.join(ROLES)}", details={"role": "invalid"})
    return role


# ═══════════════════════════════════════════════════════════════
# Sign-in
# ═══════════════════════════════════════════════════════════════
def authenticate(email: str, password: str) -> Profile:
    """Return the active profile for the credentials or raise."""
    email = text_arg(email, "email").lower()
    user = Profile.query.filter(db.func.lower(Profile.email) == email).first() if email else None
    if user is None or not verify_password(password or "", user.password_hash):
        logger.info("Failed login for %s", email or "<empty>")
        raise AuthenticationError("Invalid email or password")
    if not user.is_active:
        raise PermissionDeniedError("Account is inactive")
    return user


def login(email: str, password: str) -> dict:
    user = authenticate(email, password)
    user.last_login_at = utcnow()
    db.session.commit()
    logger.info("User %s signed in", user.id)
    tokens = generate_token_pair(user.id, user.role, user.organization_id)
    return {**tokens, "user": user.to_dict()}


def refresh(refresh_token: str) -> dict:
    """Issue a new access token for a valid refresh token."""
    if not refresh_token:
        raise ValidationError("refresh_token is required", details={"refresh_token": "required"})
    try:
        payload = decode_refresh_token(refresh_token)
    except pyjwt.ExpiredSignatureError as e:
        raise AuthenticationError("Refresh token expired") from e
    except pyjwt.InvalidTokenError as e:
        raise AuthenticationError("Invalid refresh token") from e

    user = db.session.get(Profile, payload.get("sub"))
    if user is None or not user.is_active:
        raise AuthenticationError("Account not found or inactive")
    return {
        "access_token": generate_access_token(user.id, user.role, user.organization_id),
        "token_type": "Bearer",
    }


def session_context(user: Profile) -> dict:
    """Payload for ``/auth/me``: profile, role, permissions, organization."""
    return {
        "user": user.to_dict(),
        "role": user.role,
        "permissions": permissions_for(user.role),
        "organization": user.organization.to_dict() if user.organization else None,
        "has_pin": user.has_pin,
    }


# ═══════════════════════════════════════════════════════════════
# Profile CRUD
# ═══════════════════════════════════════════════════════════════
def create_profile(data: dict, organization_id: str | None = None, commit: bool = True) -> Profile:
    """Create a login profile. ``data``: email, password, full_name, username, role."""
    email = normalize_email(data.get("email"))
    password = data.get("password") or ""
    if len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(
            f"password must be at least {MIN_PASSWORD_LENGTH} characters",
            details={"password": "too_short"},
        )
    if Profile.query.filter(db.func.lower(Profile.email) == email.lower()).first():
        raise ConflictError("Profile", "email", email)

    user = Profile(
        email=email,
        password_hash=hash_password(password),
        full_name=text_arg(data.get("full_name"), "full_name"),
        username=text_arg(data.get("username"), "username") or None,
        avatar_url=data.get("avatar_url"),
        role=_normalize_role(data.get("role") or "employee"),
        organization_id=data.get("organization_id") or organization_id,
    )
    db.session.add(user)
    db.session.flush()
    write_audit(table_name="profiles", record_id=user.id, action="INSERT", new_data=user.to_dict())
    if commit:
        db.session.commit()
    return user


def get_profile(user_id: str) -> Profile:
    user = db.session.get(Profile, user_id)
    if user is None:
        raise NotFoundError(resource="Profile", resource_id=user_id)
    return user


def update_profile(user_id: str, data: dict, actor: Profile) -> Profile:
    """
    Admins may change anything (role, active flag, email); users may edit
    their own name, username and avatar.
    """
    user = get_profile(user_id)
    is_admin = can_manage_users(actor.role)
    if not is_admin and actor.id != user.id:
        raise PermissionDeniedError("You can only edit your own profile", required="team:update")

    old = user.to_dict()
    for key in ("full_name", "username", "avatar_url"):
        if key in data:
            value = data[key]
            setattr(user, key, text_arg(value, key, default=None))

    if is_admin:
        if "role" in data:
            user.role = _normalize_role(data["role"])
        if "is_active" in data:
            user.is_active = bool(data["is_active"])
        if data.get("email"):
            email = normalize_email(data["email"])
            clash = Profile.query.filter(db.func.lower(Profile.email) == email.lower(), Profile.id != user.id).first()
            if clash:
                raise ConflictError("Profile", "email", email)
            user.email = email
    if data.get("password"):
        if len(data["password"]) < MIN_PASSWORD_LENGTH:
            raise ValidationError(
                f"password must be at least {MIN_PASSWORD_LENGTH} characters",
                details={"password": "too_short"},
            )
        user.password_hash = hash_password(data["password"])

    write_audit(table_name="profiles", record_id=user.id, action="UPDATE", old_data=old, new_data=user.to_dict())
    db.session.commit()
    return user


def list_profiles(role: str | None = None, q: str | None = None, include_clients: bool = False) -> list[Profile]:
    """Team listing; client logins are excluded unless asked for."""
    query = Profile.query
    if role:
        query = query.filter(Profile.role == role.lower())
    elif not include_clients:
        query = query.filter(Profile.role != "client")
    if q:
        like = f"%{q.strip()}%"
        query = query.filter(or_(Profile.full_name.ilike(like), Profile.email.ilike(like)))
    return query.order_by(Profile.full_name.asc(), Profile.email.asc()).all()


def delete_account(user_id: str, actor: Profile | None = None) -> None:
    """
    Remove a profile: project and task memberships first, then the row.
    Rows that merely reference the user (tasks, messages, tickets...) keep
    their data with the reference nulled by the FK.
    """
    user = get_profile(user_id)
    if actor is not None and actor.id == user.id:
        raise ValidationError("You cannot delete your own account", details={"user_id": "self"})

    old = user.to_dict()
    project_links = ProjectMember.query.filter_by(user_id=user.id).all()
    task_links = TaskMember.query.filter_by(user_id=user.id).all()
    for link in project_links + task_links:
        db.session.delete(link)
    db.session.flush()
    db.session.delete(user)
    write_audit(table_name="profiles", record_id=user_id, action="DELETE", old_data=old,
                user_id=actor.id if actor is not None else None)
    db.session.commit()
    logger.info(
        "Deleted account %s (project memberships=%d, task memberships=%d)",
        user_id, len(project_links), len(task_links),
    )
