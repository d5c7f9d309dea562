"""
Application shell — health checks, request guards, error envelope,
security headers and role → permission resolution.
"""

import pytest

from opsdesk.core.exceptions import ValidationError
from opsdesk.models import db
from opsdesk.models.auth import Profile
from opsdesk.services import permission_service
from opsdesk.utils.helpers import db_commit_or_error, text_arg


# ═══════════════════════════════════════════════════════════════
# Health
# ═══════════════════════════════════════════════════════════════
class TestHealth:
    def test_health_is_public(self, client):
        res = client.get("/api/v1/health")
        assert res.status_code == 200
        assert res.get_json()["status"] == "ok"
        assert "app" in res.get_json()

    def test_ready(self, client):
        assert client.get("/api/v1/health/ready").get_json() == {"status": "ok"}

    def test_live_checks_database(self, client):
        data = client.get("/api/v1/health/live").get_json()
        assert data["status"] == "healthy"
        assert data["checks"]["database"]["status"] == "ok"
        assert data["checks"]["app"]["testing"] is True
        assert data["checks"]["change_feed"]["cursor"] == 0
        assert data["checks"]["integrations"] == {"push": False, "credential_encryption": False}


# ═══════════════════════════════════════════════════════════════
# Request guards & error envelope
# ═══════════════════════════════════════════════════════════════
class TestGuards:
    def test_token_required(self, client):
        res = client.get("/api/v1/projects")
        assert res.status_code == 401
        assert res.get_json() == {"error": "Authentication required", "code": "ERR_UNAUTHORIZED"}

    def test_non_json_body_rejected(self, client, employee_headers):
        res = client.post("/api/v1/tickets", data="title=x", headers={
            **employee_headers, "Content-Type": "application/x-www-form-urlencoded",
        })
        assert res.status_code == 415
        assert res.get_json()["code"] == "ERR_UNSUPPORTED_MEDIA"

    def test_unknown_route_json_404(self, client, employee_headers):
        res = client.get("/api/v1/nowhere", headers=employee_headers)
        assert res.status_code == 404
        assert res.get_json()["code"] == "ERR_NOT_FOUND"
        assert res.get_json()["path"] == "/api/v1/nowhere"

    def test_method_not_allowed(self, client, employee_headers):
        res = client.delete("/api/v1/dashboard/overview", headers=employee_headers)
        assert res.status_code == 405

    def test_resource_not_found_message(self, client, employee_headers):
        res = client.get("/api/v1/tickets/missing", headers=employee_headers)
        assert res.status_code == 404
        assert res.get_json()["error"] == "Ticket not found"

    def test_security_and_timing_headers(self, client):
        res = client.get("/api/v1/health")
        assert res.headers["X-Content-Type-Options"] == "nosniff"
        assert res.headers["X-Frame-Options"] == "DENY"
        assert "default-src 'none'" in res.headers["Content-Security-Policy"]
        assert "X-Request-Duration-Ms" in res.headers
        assert res.headers["Cache-Control"] == "no-store"
        assert "Server" not in res.headers

    def test_commit_helper_maps_integrity_error(self, app, employee_user):
        with app.test_request_context():
            db.session.add(Profile(email=employee_user.email, role="employee"))
            response, status = db_commit_or_error()
        assert status == 409
        assert response.get_json()["code"] == "ERR_CONFLICT_DUPLICATE"
        assert Profile.query.count() == 1

    def test_commit_helper_success(self, app):
        with app.test_request_context():
            assert db_commit_or_error() is None


# ═══════════════════════════════════════════════════════════════
# JSON text fields
# ═══════════════════════════════════════════════════════════════
class TestTextFields:
    @pytest.mark.parametrize("value,expected", [
        ("  Launch  ", "Launch"),
        ("", ""),
        (None, ""),
    ])
    def test_text_arg_strips(self, value, expected):
        assert text_arg(value, "title") == expected

    def test_text_arg_default(self):
        assert text_arg(None, "title", default=None) is None

    @pytest.mark.parametrize("value", [123, 1.5, True, ["x"], {"a": 1}])
    def test_text_arg_rejects_non_strings(self, value):
        with pytest.raises(ValidationError) as exc:
            text_arg(value, "title")
        assert exc.value.details == {"title": "type"}

    @pytest.mark.parametrize("url,payload,field", [
        ("/api/v1/tickets", {"title": 123}, "title"),
        ("/api/v1/reminders", {"title": "Call Jane", "date": 20250101, "time": "09:00"}, "date"),
        ("/api/v1/reminders", {"title": "Call Jane", "date": "2025-01-01", "time": 900}, "time"),
        ("/api/v1/clients", {"first_name": ["Jane"]}, "first_name"),
        ("/api/v1/tasks", {"title": {"text": "Wireframes"}}, "title"),
        ("/api/v1/chat/channels", {"name": "ops", "description": 5}, "description"),
    ])
    def test_non_string_json_is_422(self, client, employee_headers, url, payload, field):
        res = client.post(url, json=payload, headers=employee_headers)
        assert res.status_code == 422
        assert res.get_json()["code"] == "ERR_VALIDATION_CONSTRAINT"
        assert res.get_json()["details"] == {field: "type"}


# ═══════════════════════════════════════════════════════════════
# RBAC
# ═══════════════════════════════════════════════════════════════
class TestPermissions:
    @pytest.mark.parametrize("role,expected", [
        ("admin", "admin"), ("ADMIN ", "admin"), ("employee", "employee"),
        ("client", "employee"), ("designer", "employee"), (None, None), ("", None),
    ])
    def test_normalize_role(self, role, expected):
        assert permission_service.normalize_role(role) == expected

    def test_admin_wildcard(self):
        assert permission_service.permissions_for("admin") == ["*"]
        assert permission_service.has_permission("admin", "delete", "anything")

    @pytest.mark.parametrize("action,resource,allowed", [
        ("update", "chat", True),
        ("delete", "projects", True),
        ("read", "team", True),
        ("create", "team", False),
        ("read", "finances", False),
        ("update", "organizations", False),
    ])
    def test_employee_grants(self, action, resource, allowed):
        assert permission_service.has_permission("employee", action, resource) is allowed

    def test_client_role_uses_employee_grants(self):
        assert permission_service.permissions_for("client") == permission_service.permissions_for("employee")

    def test_missing_role_denied(self):
        assert permission_service.has_permission(None, "read", "dashboard") is False
        assert permission_service.permissions_for(None) == []

    def test_is_admin(self, admin_user, employee_user):
        assert permission_service.is_admin(admin_user)
        assert not permission_service.is_admin(employee_user)
        assert not permission_service.is_admin(None)

    def test_is_client(self, client_user, employee_user):
        assert permission_service.is_client(client_user)
        assert not permission_service.is_client(employee_user)
        assert not permission_service.is_client(None)
