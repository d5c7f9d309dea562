"""
Support tickets and the credential vault.
"""

import json

import pytest
from cryptography.fernet import Fernet

from opsdesk.core.exceptions import NotFoundError, PermissionDeniedError, ValidationError
from opsdesk.models import db
from opsdesk.models.audit import AuditLog
from opsdesk.models.credential import MASK, Credential
from opsdesk.models.notification import Notification
from opsdesk.models.ticket import Ticket
from opsdesk.services import credential_service, ticket_service
from opsdesk.utils.crypto import PLAIN_PREFIX, SEALED_PREFIX


# ═══════════════════════════════════════════════════════════════
# Tickets
# ═══════════════════════════════════════════════════════════════
class TestTickets:
    def test_defaults(self, employee_user):
        ticket = ticket_service.create_ticket({"title": "Login broken"}, employee_user)
        assert (ticket.type, ticket.priority, ticket.status) == ("bug", "medium", "open")
        assert ticket.user_id == employee_user.id

    def test_invalid_choice(self, employee_user):
        with pytest.raises(ValidationError):
            ticket_service.create_ticket({"title": "X", "priority": "urgent"}, employee_user)

    def test_visibility(self, employee_user, admin_user, make_profile):
        other = make_profile("other@studio.io")
        ticket = ticket_service.create_ticket({"title": "Mine"}, employee_user)
        assert ticket_service.list_tickets(other) == []
        assert ticket_service.list_tickets(admin_user) == [ticket]
        with pytest.raises(NotFoundError):
            ticket_service.get_ticket(ticket.id, other)

    def test_reporter_cannot_change_status(self, employee_user):
        ticket = ticket_service.create_ticket({"title": "Mine"}, employee_user)
        with pytest.raises(PermissionDeniedError):
            ticket_service.update_ticket(ticket.id, {"status": "closed"}, employee_user)
        ticket_service.update_ticket(ticket.id, {"description": "More detail"}, employee_user)
        assert ticket.description == "More detail"

    def test_status_change_notifies_reporter(self, employee_user, admin_user):
        ticket = ticket_service.create_ticket({"title": "Export fails"}, employee_user)
        ticket_service.update_ticket(ticket.id, {"status": "in_progress"}, admin_user)
        notif = Notification.query.one()
        assert notif.user_id == employee_user.id
        assert notif.type == "ticket"
        assert notif.link == "/tickets"
        assert notif.meta == {"ticket_id": ticket.id, "status": "in_progress"}
        assert "In progress" in notif.content

    def test_unchanged_status_does_not_notify(self, employee_user, admin_user):
        ticket = ticket_service.create_ticket({"title": "Export fails"}, employee_user)
        ticket_service.update_ticket(ticket.id, {"status": "open", "priority": "high"}, admin_user)
        assert Notification.query.count() == 0
        assert ticket.priority == "high"

    def test_status_notification_uses_new_title(self, employee_user, admin_user):
        ticket = ticket_service.create_ticket({"title": "Export fails"}, employee_user)
        ticket_service.update_ticket(ticket.id, {"title": "CSV export fails", "status": "closed"}, admin_user)
        notif = Notification.query.one()
        assert notif.content == 'Your ticket "CSV export fails" is now Closed.'

    def test_invalid_field_rolls_back_status_change(self, employee_user, admin_user):
        ticket = ticket_service.create_ticket({"title": "Export fails"}, employee_user)
        with pytest.raises(ValidationError):
            ticket_service.update_ticket(ticket.id, {"status": "closed", "priority": "urgent"}, admin_user)
        db.session.rollback()
        assert Notification.query.count() == 0
        assert db.session.get(Ticket, ticket.id).status == "open"

    @pytest.mark.parametrize("payload,field", [
        ({"title": 123}, "title"),
        ({"title": ["Typo"]}, "title"),
        ({"title": "Typo", "description": {"text": "x"}}, "description"),
    ])
    def test_non_string_fields_rejected(self, client, employee_headers, payload, field):
        res = client.post("/api/v1/tickets", json=payload, headers=employee_headers)
        assert res.status_code == 422
        assert res.get_json()["details"] == {field: "type"}

    def test_api(self, client, employee_headers, admin_headers):
        res = client.post("/api/v1/tickets", json={"title": "Typo", "type": "question"}, headers=employee_headers)
        assert res.status_code == 201
        tid = res.get_json()["id"]
        res = client.put(f"/api/v1/tickets/{tid}", json={"status": "closed"}, headers=employee_headers)
        assert res.status_code == 403
        res = client.put(f"/api/v1/tickets/{tid}", json={"status": "closed"}, headers=admin_headers)
        assert res.get_json()["status"] == "closed"
        assert client.get("/api/v1/tickets", headers=employee_headers).get_json()["total"] == 1
        assert client.delete(f"/api/v1/tickets/{tid}", headers=employee_headers).status_code == 200


# ═══════════════════════════════════════════════════════════════
# Credentials
# ═══════════════════════════════════════════════════════════════
class TestCredentials:
    def test_masked_in_dict(self, project, employee_user):
        cred = credential_service.create_credential(
            {"name": "Stripe key", "type": "API Key", "value": "sk_live_123", "project_id": project.id},
            employee_user,
        )
        assert cred.to_dict()["value"] == MASK
        assert cred.to_dict()["project_name"] == "Website Relaunch"

    def test_audit_snapshot_has_no_secret(self, project, employee_user):
        cred = credential_service.create_credential(
            {"name": "Stripe key", "type": "API Key", "value": "sk_live_123", "project_id": project.id},
            employee_user,
        )
        log = AuditLog.query.filter_by(table_name="credentials", record_id=cred.id).one()
        assert "value" not in log.new_data
        assert "sk_live_123" not in json.dumps(log.new_data)

    @pytest.mark.parametrize("data", [
        {"name": "X", "type": "API Key", "value": "v"},
        {"name": "Key", "type": "Carrier Pigeon", "value": "v"},
        {"name": "Key", "type": "API Key", "value": "  "},
        {"name": "Mail", "type": "Email Password", "email": "not-mail", "password": "p"},
        {"name": "Mail", "type": "Email Password", "email": "a@b.com"},
    ])
    def test_validation(self, project, employee_user, data):
        with pytest.raises(ValidationError):
            credential_service.create_credential({**data, "project_id": project.id}, employee_user)

    def test_project_required(self, employee_user):
        with pytest.raises(ValidationError):
            credential_service.create_credential({"name": "Key", "type": "API Key", "value": "v"}, employee_user)

    def test_email_password_reveal(self, project, employee_user):
        cred = credential_service.create_credential(
            {"name": "Mailbox", "type": "Email Password", "email": "ops@acme.com", "password": "hunter22",
             "project_id": project.id},
            employee_user,
        )
        revealed = credential_service.reveal_credential(cred.id, employee_user)
        assert revealed["email"] == "ops@acme.com"
        assert revealed["password"] == "hunter22"

    def test_reveal_is_audited(self, project, employee_user):
        cred = credential_service.create_credential(
            {"name": "DB", "type": "Database URL", "value": "postgres://u:p@h/db", "project_id": project.id},
            employee_user,
        )
        revealed = credential_service.reveal_credential(cred.id, employee_user)
        assert revealed["value"] == "postgres://u:p@h/db"
        log = AuditLog.query.filter_by(table_name="credentials", record_id=cred.id, action="UPDATE").one()
        assert log.new_data == {"event": "reveal", "name": "DB"}
        assert log.user_id == employee_user.id

    def test_update_keeps_secret_unless_supplied(self, project, employee_user):
        cred = credential_service.create_credential(
            {"name": "Token", "type": "Token", "value": "abc", "project_id": project.id}, employee_user,
        )
        credential_service.update_credential(cred.id, {"notes": "rotates monthly"})
        assert credential_service.reveal_credential(cred.id, employee_user)["value"] == "abc"
        credential_service.update_credential(cred.id, {"value": "def"})
        assert credential_service.reveal_credential(cred.id, employee_user)["value"] == "def"

    def test_type_change_requires_new_secret(self, project, employee_user):
        cred = credential_service.create_credential(
            {"name": "Token", "type": "Token", "value": "abc", "project_id": project.id}, employee_user,
        )
        with pytest.raises(ValidationError):
            credential_service.update_credential(cred.id, {"type": "Email Password"})

    def test_sealed_at_rest_with_key(self, app, project, employee_user, monkeypatch):
        monkeypatch.setitem(app.config, "ENCRYPTION_KEY", Fernet.generate_key().decode())
        cred = credential_service.create_credential(
            {"name": "Token", "type": "Token", "value": "plain-secret", "project_id": project.id}, employee_user,
        )
        stored = db.session.get(Credential, cred.id).value
        assert stored.startswith(SEALED_PREFIX)
        assert "plain-secret" not in stored
        assert credential_service.reveal_credential(cred.id, employee_user)["value"] == "plain-secret"

    def test_wrong_key_cannot_reveal(self, app, project, employee_user, monkeypatch):
        monkeypatch.setitem(app.config, "ENCRYPTION_KEY", Fernet.generate_key().decode())
        cred = credential_service.create_credential(
            {"name": "Token", "type": "Token", "value": "plain-secret", "project_id": project.id}, employee_user,
        )
        monkeypatch.setitem(app.config, "ENCRYPTION_KEY", Fernet.generate_key().decode())
        with pytest.raises(ValidationError):
            credential_service.reveal_credential(cred.id, employee_user)

    @pytest.mark.parametrize("value", ["enc:abc123", "raw:abc123"])
    def test_prefixed_plaintext_without_key(self, app, project, employee_user, monkeypatch, value):
        monkeypatch.setitem(app.config, "ENCRYPTION_KEY", None)
        monkeypatch.delenv("ENCRYPTION_KEY", raising=False)
        cred = credential_service.create_credential(
            {"name": "Token", "type": "Token", "value": value, "project_id": project.id}, employee_user,
        )
        assert db.session.get(Credential, cred.id).value.startswith(PLAIN_PREFIX)
        assert credential_service.reveal_credential(cred.id, employee_user)["value"] == value

    def test_prefixed_plaintext_reveal_api(self, app, client, employee_headers, project, monkeypatch):
        monkeypatch.setitem(app.config, "ENCRYPTION_KEY", None)
        monkeypatch.delenv("ENCRYPTION_KEY", raising=False)
        res = client.post("/api/v1/credentials", json={
            "name": "Token", "type": "Token", "value": "enc:abc123", "project_id": project.id,
        }, headers=employee_headers)
        assert res.status_code == 201
        res = client.get(f"/api/v1/credentials/{res.get_json()['id']}/reveal", headers=employee_headers)
        assert res.status_code == 200
        assert res.get_json()["value"] == "enc:abc123"

    def test_sealed_value_after_key_removed(self, app, project, employee_user, monkeypatch):
        monkeypatch.setitem(app.config, "ENCRYPTION_KEY", Fernet.generate_key().decode())
        cred = credential_service.create_credential(
            {"name": "Token", "type": "Token", "value": "plain-secret", "project_id": project.id}, employee_user,
        )
        monkeypatch.setitem(app.config, "ENCRYPTION_KEY", None)
        monkeypatch.delenv("ENCRYPTION_KEY", raising=False)
        with pytest.raises(ValidationError) as exc:
            credential_service.reveal_credential(cred.id, employee_user)
        assert exc.value.details == {"value": "no_key"}

    def test_deleted_with_project(self, project, employee_user):
        from opsdesk.services import project_service
        credential_service.create_credential(
            {"name": "Token", "type": "Token", "value": "abc", "project_id": project.id}, employee_user,
        )
        project_service.delete_project(project.id)
        assert Credential.query.count() == 0

    def test_api(self, client, employee_headers, project):
        res = client.post("/api/v1/credentials", json={
            "name": "FTP", "type": "Password", "value": "s3cr3t", "project_id": project.id,
        }, headers=employee_headers)
        assert res.status_code == 201
        data = res.get_json()
        assert data["value"] == MASK
        res = client.get(f"/api/v1/credentials/{data['id']}/reveal", headers=employee_headers)
        assert res.get_json()["value"] == "s3cr3t"
        res = client.get(f"/api/v1/credentials?project_id={project.id}", headers=employee_headers)
        assert res.get_json()["total"] == 1

    def test_client_login_denied(self, client, auth_headers, client_user, project, employee_user):
        cred = credential_service.create_credential(
            {"name": "Stripe", "type": "API Key", "value": "sk_live_1", "project_id": project.id}, employee_user,
        )
        headers = auth_headers(client_user)
        assert client.get("/api/v1/credentials", headers=headers).status_code == 403
        res = client.get(f"/api/v1/credentials/{cred.id}/reveal", headers=headers)
        assert res.status_code == 403
        assert res.get_json()["required"] == "staff"
        res = client.post("/api/v1/credentials", json={
            "name": "Mine", "type": "Token", "value": "t", "project_id": project.id,
        }, headers=headers)
        assert res.status_code == 403
