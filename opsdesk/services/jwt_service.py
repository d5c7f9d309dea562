"""
JWT Service — access/refresh tokens for OpsDesk sessions.

Both tokens are HS256, signed with JWT_SECRET_KEY (falls back to SECRET_KEY)
and carry ``iss = APP_NAME``. Lifetimes come from JWT_ACCESS_EXPIRES
(default 15 min) and JWT_REFRESH_EXPIRES (default 7 days).

Access claims:  sub (profile id), role, org (organization id, optional), type, iat, exp, jti
Refresh claims: sub, type, iat, exp, jti

There is no server-side session table; logout just drops the tokens.
"""

import uuid
from datetime import datetime, timedelta, timezone

import jwt
from flask import current_app

ALGORITHM = "HS256"
DEFAULT_ACCESS_EXPIRES = 15 * 60
DEFAULT_REFRESH_EXPIRES = 7 * 24 * 3600

ACCESS = "access"
REFRESH = "refresh"


def _secret():
    return current_app.config.get("JWT_SECRET_KEY") or current_app.config["SECRET_KEY"]


def _issuer():
    return current_app.config.get("APP_NAME", "OpsDesk")


def _lifetime(kind):
    if kind == ACCESS:
        return int(current_app.config.get("JWT_ACCESS_EXPIRES", DEFAULT_ACCESS_EXPIRES))
    return int(current_app.config.get("JWT_REFRESH_EXPIRES", DEFAULT_REFRESH_EXPIRES))


def _encode(user_id, kind, **claims) -> str:
    issued = datetime.now(timezone.utc)
    payload = {
        "sub": user_id,
        "type": kind,
        "iss": _issuer(),
        "iat": issued,
        "exp": issued + timedelta(seconds=_lifetime(kind)),
        "jti": uuid.uuid4().hex,
    }
    payload.update({k: v for k, v in claims.items() if v is not None})
    return jwt.encode(payload, _secret(), algorithm=ALGORITHM)


def generate_access_token(user_id: str, role: str | None, organization_id: str | None = None) -> str:
    return _encode(user_id, ACCESS, role=role, org=organization_id)


def generate_refresh_token(user_id: str) -> str:
    return _encode(user_id, REFRESH)


def generate_token_pair(user_id: str, role: str | None, organization_id: str | None = None) -> dict:
    """Login / refresh response body fragment."""
    return {
        "access_token": generate_access_token(user_id, role, organization_id),
        "refresh_token": generate_refresh_token(user_id),
        "token_type": "Bearer",
        "expires_in": _lifetime(ACCESS),
    }


def decode_token(token: str, expected_type: str = ACCESS) -> dict:
    """
    Verify signature, expiry and issuer, then the token type.

    Raises ``jwt.ExpiredSignatureError`` / ``jwt.InvalidTokenError``.
    """
    payload = jwt.decode(token, _secret(), algorithms=[ALGORITHM], issuer=_issuer())
    if payload.get("type") != expected_type:
        raise jwt.InvalidTokenError(f"Expected {expected_type} token, got {payload.get('type')}")
    return payload


def decode_access_token(token: str) -> dict:
    return decode_token(token, ACCESS)


def decode_refresh_token(token: str) -> dict:
    return decode_token(token, REFRESH)
