"""
Auth tests — password hashing, JWT tokens, sign-in API and the PIN wall.

Tests cover:
  - Password hashing (bcrypt) and werkzeug fallback
  - JWT token generation / verification / type checks
  - Auth API: login, refresh, me, logout
  - PIN: format, blacklist, setup/update, verify, reset, pin_logs trail
"""

import jwt as pyjwt
import pytest
from werkzeug.security import generate_password_hash

from opsdesk.models import db
from opsdesk.models.auth import PinLog
from opsdesk.services import pin_service
from opsdesk.services.jwt_service import (
    decode_access_token,
    decode_refresh_token,
    generate_access_token,
    generate_refresh_token,
    generate_token_pair,
)
from opsdesk.utils.crypto import hash_password, verify_password

TEST_PASSWORD = "Passw0rd!123"


# ═══════════════════════════════════════════════════════════════
# Crypto
# ═══════════════════════════════════════════════════════════════
class TestCrypto:
    def test_hash_and_verify(self):
        hashed = hash_password("s3cret-value")
        assert hashed.startswith("$2b$")
        assert verify_password("s3cret-value", hashed)
        assert not verify_password("wrong", hashed)

    def test_werkzeug_hash_accepted(self):
        hashed = generate_password_hash("imported-pass")
        assert verify_password("imported-pass", hashed)

    def test_empty_hash_never_verifies(self):
        assert not verify_password("anything", None)
        assert not verify_password("anything", "")


# ═══════════════════════════════════════════════════════════════
# JWT
# ═══════════════════════════════════════════════════════════════
class TestJWTService:
    def test_access_token_roundtrip(self):
        token = generate_access_token("user-1", "admin", "org-1")
        payload = decode_access_token(token)
        assert payload["sub"] == "user-1"
        assert payload["role"] == "admin"
        assert payload["org"] == "org-1"
        assert payload["type"] == "access"

    def test_refresh_token_is_not_an_access_token(self):
        token = generate_refresh_token("user-1")
        assert decode_refresh_token(token)["sub"] == "user-1"
        with pytest.raises(pyjwt.InvalidTokenError):
            decode_access_token(token)

    def test_token_pair_shape(self):
        pair = generate_token_pair("user-1", "employee")
        assert set(pair) == {"access_token", "refresh_token", "token_type", "expires_in"}
        assert pair["token_type"] == "Bearer"

    def test_foreign_issuer_rejected(self, app):
        token = pyjwt.encode(
            {"sub": "user-1", "type": "access", "iss": "someone-else"},
            app.config["JWT_SECRET_KEY"], algorithm="HS256",
        )
        with pytest.raises(pyjwt.InvalidIssuerError):
            decode_access_token(token)

    def test_tampered_token_rejected(self):
        token = generate_access_token("user-1", "admin")
        with pytest.raises(pyjwt.InvalidTokenError):
            decode_access_token(token[:-2] + ("aa" if not token.endswith("aa") else "bb"))


# ═══════════════════════════════════════════════════════════════
# Auth API
# ═══════════════════════════════════════════════════════════════
class TestAuthAPI:
    def test_login_success(self, client, employee_user):
        res = client.post("/api/v1/auth/login", json={"email": "emp@studio.io", "password": TEST_PASSWORD})
        assert res.status_code == 200
        data = res.get_json()
        assert data["access_token"]
        assert data["refresh_token"]
        assert data["user"]["id"] == employee_user.id
        assert "password_hash" not in data["user"]

    def test_login_is_case_insensitive_on_email(self, client, employee_user):
        res = client.post("/api/v1/auth/login", json={"email": "EMP@Studio.io", "password": TEST_PASSWORD})
        assert res.status_code == 200

    def test_login_wrong_password(self, client, employee_user):
        res = client.post("/api/v1/auth/login", json={"email": "emp@studio.io", "password": "nope-nope"})
        assert res.status_code == 401
        assert res.get_json()["code"] == "ERR_UNAUTHORIZED"

    def test_login_missing_fields(self, client):
        res = client.post("/api/v1/auth/login", json={"email": "emp@studio.io"})
        assert res.status_code == 400

    def test_login_inactive_account(self, client, employee_user):
        employee_user.is_active = False
        db.session.commit()
        res = client.post("/api/v1/auth/login", json={"email": "emp@studio.io", "password": TEST_PASSWORD})
        assert res.status_code == 403

    def test_refresh_returns_new_access_token(self, client, employee_user):
        refresh_token = generate_refresh_token(employee_user.id)
        res = client.post("/api/v1/auth/refresh", json={"refresh_token": refresh_token})
        assert res.status_code == 200
        payload = decode_access_token(res.get_json()["access_token"])
        assert payload["sub"] == employee_user.id

    def test_refresh_rejects_access_token(self, client, employee_user):
        access = generate_access_token(employee_user.id, employee_user.role)
        res = client.post("/api/v1/auth/refresh", json={"refresh_token": access})
        assert res.status_code == 401

    def test_me_returns_session_context(self, client, admin_user, admin_headers):
        res = client.get("/api/v1/auth/me", headers=admin_headers)
        assert res.status_code == 200
        data = res.get_json()
        assert data["user"]["email"] == "admin@studio.io"
        assert data["permissions"] == ["*"]
        assert data["organization"]["name"] == "Test Studio"
        assert data["has_pin"] is False

    def test_me_requires_token(self, client):
        res = client.get("/api/v1/auth/me")
        assert res.status_code == 401

    def test_invalid_bearer_rejected(self, client):
        res = client.get("/api/v1/auth/me", headers={"Authorization": "Bearer not-a-jwt"})
        assert res.status_code == 401
        assert res.get_json()["error"] == "Invalid token"

    def test_deleted_user_token_rejected(self, client, make_profile, auth_headers):
        user = make_profile("gone@studio.io")
        headers = auth_headers(user)
        db.session.delete(user)
        db.session.commit()
        res = client.get("/api/v1/auth/me", headers=headers)
        assert res.status_code == 401

    def test_logout(self, client, employee_headers):
        res = client.post("/api/v1/auth/logout", headers=employee_headers)
        assert res.status_code == 200


# ═══════════════════════════════════════════════════════════════
# PIN wall
# ═══════════════════════════════════════════════════════════════
class TestPinService:
    def test_blacklist_contents(self):
        for pin in ("1234", "0000", "1111", "2024", "6969"):
            assert pin_service.is_blacklisted(pin)
        assert not pin_service.is_blacklisted("4821")

    def test_setup_then_update(self, employee_user):
        assert pin_service.set_pin(employee_user, "4821") == "setup"
        assert employee_user.has_pin
        assert pin_service.set_pin(employee_user, "7395") == "update"
        types = [log.attempt_type for log in PinLog.query.filter_by(user_id=employee_user.id).all()]
        assert sorted(types) == ["setup", "update"]

    def test_pin_stored_hashed(self, employee_user):
        pin_service.set_pin(employee_user, "4821")
        assert employee_user.pin_hash != "4821"
        assert verify_password("4821", employee_user.pin_hash)

    @pytest.mark.parametrize("pin", ["123", "12345", "abcd", "", None, "12 4"])
    def test_malformed_pin_rejected(self, employee_user, pin):
        from opsdesk.core.exceptions import ValidationError
        with pytest.raises(ValidationError):
            pin_service.set_pin(employee_user, pin)
        assert PinLog.query.count() == 0

    def test_blacklisted_pin_logged_with_literal_value(self, employee_user):
        from opsdesk.core.exceptions import ValidationError
        with pytest.raises(ValidationError) as exc:
            pin_service.set_pin(employee_user, "1234")
        assert str(exc.value) == pin_service.COMMON_PIN_MESSAGE
        log = PinLog.query.filter_by(user_id=employee_user.id).one()
        assert log.attempt_type == "setup_blocked"
        assert log.pin_entered == "1234"
        assert log.is_success is False
        assert not employee_user.has_pin

    def test_successful_attempts_are_masked(self, employee_user):
        pin_service.set_pin(employee_user, "4821")
        pin_service.verify_pin(employee_user, "4821")
        for log in PinLog.query.filter_by(user_id=employee_user.id).all():
            assert log.pin_entered == pin_service.PIN_MASK

    def test_verify(self, employee_user):
        pin_service.set_pin(employee_user, "4821")
        assert pin_service.verify_pin(employee_user, "4821") is True
        assert pin_service.verify_pin(employee_user, "4822") is False
        results = [
            log.is_success
            for log in PinLog.query.filter_by(user_id=employee_user.id, attempt_type="verification").all()
        ]
        assert sorted(results) == [False, True]

    def test_verify_without_pin_fails(self, employee_user):
        assert pin_service.verify_pin(employee_user, "4821") is False


class TestPinAPI:
    def test_set_pin(self, client, employee_headers):
        res = client.post("/api/v1/auth/pin", json={"pin": "4821"}, headers=employee_headers)
        assert res.status_code == 200
        data = res.get_json()
        assert data["attempt_type"] == "setup"
        assert data["has_pin"] is True

    def test_blacklisted_pin_422(self, client, employee_user, employee_headers):
        res = client.post("/api/v1/auth/pin", json={"pin": "0000"}, headers=employee_headers)
        assert res.status_code == 422
        assert res.get_json()["error"] == pin_service.COMMON_PIN_MESSAGE
        # The blocked attempt survives the error handler's rollback
        assert PinLog.query.filter_by(user_id=employee_user.id, attempt_type="setup_blocked").count() == 1

    def test_verify_pin(self, client, employee_user, employee_headers):
        pin_service.set_pin(employee_user, "4821")
        res = client.post("/api/v1/auth/pin/verify", json={"pin": "4821"}, headers=employee_headers)
        assert res.get_json() == {"verified": True}
        res = client.post("/api/v1/auth/pin/verify", json={"pin": "9999"}, headers=employee_headers)
        assert res.get_json() == {"verified": False}

    def test_reset_requires_password(self, client, employee_user, employee_headers):
        pin_service.set_pin(employee_user, "4821")
        res = client.post("/api/v1/auth/pin/reset", json={"password": "wrong-password"}, headers=employee_headers)
        assert res.status_code == 401
        assert PinLog.query.filter_by(user_id=employee_user.id, attempt_type="reset_failed").count() == 1
        assert employee_user.has_pin

    def test_reset_clears_pin(self, client, employee_user, employee_headers):
        pin_service.set_pin(employee_user, "4821")
        res = client.post("/api/v1/auth/pin/reset", json={"password": TEST_PASSWORD}, headers=employee_headers)
        assert res.status_code == 200
        assert res.get_json()["has_pin"] is False
        assert employee_user.pin_hash is None
        assert PinLog.query.filter_by(user_id=employee_user.id, attempt_type="reset_success").count() == 1

    def test_pin_logs_admin_only(self, client, employee_user, admin_headers, employee_headers):
        pin_service.set_pin(employee_user, "4821")
        assert client.get("/api/v1/pin-logs", headers=employee_headers).status_code == 403
        res = client.get("/api/v1/pin-logs", headers=admin_headers)
        assert res.status_code == 200
