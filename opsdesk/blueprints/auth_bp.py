"""
Auth Blueprint — JWT sign-in and the PIN wall.

Endpoints:
  POST /api/v1/auth/login        — Email + password → JWT pair + profile
  POST /api/v1/auth/refresh      — Refresh token → new access token
  POST /api/v1/auth/logout       — Stateless; client discards its tokens
  GET  /api/v1/auth/me           — Session context (profile, role, org, has_pin)
  POST /api/v1/auth/pin          — Set / change the 4-digit PIN
  POST /api/v1/auth/pin/verify   — Check a PIN → {verified}
  POST /api/v1/auth/pin/reset    — Clear the PIN after a password re-check
"""

import logging

from flask import Blueprint, jsonify

from opsdesk.blueprints import json_body
from opsdesk.middleware.permission_required import current_user
from opsdesk.services import pin_service, user_service
from opsdesk.utils.helpers import text_arg

logger = logging.getLogger(__name__)

auth_bp = Blueprint("auth", __name__, url_prefix="/api/v1/auth")


# ═══════════════════════════════════════════════════════════════
# Session
# ═══════════════════════════════════════════════════════════════
@auth_bp.route("/login", methods=["POST"])
def login():
    """
    Body: { "email": "...", "password": "..." }
    """
    data = json_body()
    email = text_arg(data.get("email"), "email")
    password = data.get("password") or ""
    if not email or not password:
        return jsonify({"error": "Email and password are required", "code": "ERR_VALIDATION_REQUIRED"}), 400
    return jsonify(user_service.login(email, password)), 200


@auth_bp.route("/refresh", methods=["POST"])
def refresh():
    data = json_body()
    return jsonify(user_service.refresh(data.get("refresh_token"))), 200


@auth_bp.route("/logout", methods=["POST"])
def logout():
    user = current_user()
    logger.info("User %s signed out", user.id if user else None)
    return jsonify({"message": "Logged out"}), 200


@auth_bp.route("/me", methods=["GET"])
def me():
    return jsonify(user_service.session_context(current_user())), 200


# ═══════════════════════════════════════════════════════════════
# PIN wall
# ═══════════════════════════════════════════════════════════════
@auth_bp.route("/pin", methods=["POST"])
def set_pin():
    """Body: { "pin": "4821" }"""
    attempt = pin_service.set_pin(current_user(), json_body().get("pin"))
    return jsonify({"message": "PIN saved", "attempt_type": attempt, "has_pin": True}), 200


@auth_bp.route("/pin/verify", methods=["POST"])
def verify_pin():
    verified = pin_service.verify_pin(current_user(), json_body().get("pin"))
    return jsonify({"verified": verified}), 200


@auth_bp.route("/pin/reset", methods=["POST"])
def reset_pin():
    """Body: { "password": "..." }"""
    pin_service.reset_pin(current_user(), json_body().get("password"))
    return jsonify({"message": "PIN reset", "has_pin": False}), 200
