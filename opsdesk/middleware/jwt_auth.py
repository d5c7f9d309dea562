"""
JWT Auth Middleware — parses the Bearer token and loads ``g.current_user``.

Every ``/api/v1/*`` request except the public prefixes below must carry
``Authorization: Bearer <access token>`` for an active profile; anything
else is answered with 401 before the view runs.

Sets:
    g.current_user  → Profile | None
    g.jwt_payload   → decoded claims | None
"""

import logging

import jwt as pyjwt
from flask import g, request

from opsdesk.models import db
from opsdesk.models.auth import Profile
from opsdesk.services.jwt_service import decode_access_token
from opsdesk.utils.errors import E, api_error

logger = logging.getLogger(__name__)

# Paths that skip JWT auth entirely
JWT_SKIP_PREFIXES = (
    "/api/v1/auth/login",
    "/api/v1/auth/refresh",
    "/api/v1/health",
)


def _unauthorized(message):
    return api_error(E.UNAUTHORIZED, message)


def init_jwt_middleware(app):
    """Register JWT middleware as a before_request hook."""

    @app.before_request
    def _jwt_auth():
        g.current_user = None
        g.jwt_payload = None

        path = request.path
        if not path.startswith("/api/v1/") or request.method == "OPTIONS":
            return None
        for prefix in JWT_SKIP_PREFIXES:
            if path.startswith(prefix):
                return None

        auth_header = request.headers.get("Authorization", "")
        if not auth_header.startswith("Bearer "):
            return _unauthorized("Authentication required")

        token = auth_header[7:]  # Strip "Bearer "

        try:
            payload = decode_access_token(token)
        except pyjwt.ExpiredSignatureError:
            return _unauthorized("Token expired")
        except pyjwt.InvalidTokenError as exc:
            logger.info("Rejected JWT on %s: %s", path, exc)
            return _unauthorized("Invalid token")

        user = db.session.get(Profile, payload.get("sub"))
        if user is None or not user.is_active:
            return _unauthorized("Account not found or inactive")

        g.current_user = user
        g.jwt_payload = payload
        return None
