"""
Change feed, breadcrumbs and the audit log reader.
"""

import pytest

from opsdesk.core.exceptions import ValidationError
from opsdesk.models import db
from opsdesk.models.realtime import ChangeEvent
from opsdesk.services import audit_service, realtime_service, task_service, ticket_service
from opsdesk.services.notification_service import NotificationService
from opsdesk.utils.navigation import build_breadcrumbs, is_id_segment

PROJECT_ID = "8c1d2e3f-0000-4a5b-9c6d-7e8f90a1b2c3"


# ═══════════════════════════════════════════════════════════════
# merge_rows (pure)
# ═══════════════════════════════════════════════════════════════
class TestMergeRows:
    def test_update_replaces_in_place(self):
        rows = [{"id": "a", "v": 1}, {"id": "b", "v": 1}]
        assert realtime_service.merge_rows(rows, {"id": "a", "v": 2}) == [{"id": "a", "v": 2}, {"id": "b", "v": 1}]

    def test_insert_appends(self):
        assert realtime_service.merge_rows([{"id": "a"}], {"id": "b"}, "INSERT") == [{"id": "a"}, {"id": "b"}]

    def test_delete_removes(self):
        assert realtime_service.merge_rows([{"id": "a"}, {"id": "b"}], {"id": "a"}, "DELETE") == [{"id": "b"}]

    def test_replay_is_stable(self):
        rows = [{"id": "a", "v": 1}]
        once = realtime_service.merge_rows(rows, {"id": "a", "v": 2})
        assert realtime_service.merge_rows(once, {"id": "a", "v": 2}) == once
        assert rows == [{"id": "a", "v": 1}]


# ═══════════════════════════════════════════════════════════════
# Change feed
# ═══════════════════════════════════════════════════════════════
class TestChangeFeed:
    def test_events_recorded_and_cursor_advances(self, proposal, admin_user):
        start = realtime_service.latest_cursor()
        task = task_service.create_task({"title": "Wire", "proposal_id": proposal.id}, admin_user)
        feed = realtime_service.changes(admin_user, since=start, table="tasks")
        assert [(e["record_id"], e["event"]) for e in feed["events"]] == [(task.id, "INSERT")]
        assert feed["cursor"] == realtime_service.latest_cursor()
        again = realtime_service.changes(admin_user, since=feed["cursor"])
        assert again["events"] == []
        assert again["cursor"] == feed["cursor"]

    def test_delete_event(self, proposal, admin_user):
        task = task_service.create_task({"title": "Wire", "proposal_id": proposal.id}, admin_user)
        start = realtime_service.latest_cursor()
        task_service.delete_task(task.id)
        feed = realtime_service.changes(admin_user, since=start, table="tasks", hydrate=True)
        assert [e["event"] for e in feed["events"]] == ["DELETE"]
        assert feed["rows"]["tasks"] == [{"id": task.id, "deleted": True}]

    def test_notifications_only_visible_to_owner(self, employee_user, admin_user):
        start = realtime_service.latest_cursor()
        NotificationService.notify(user_id=employee_user.id, type="system", title="Hi")
        from opsdesk.models import db
        db.session.commit()
        mine = realtime_service.changes(employee_user, since=start, table="notifications")
        theirs = realtime_service.changes(admin_user, since=start, table="notifications")
        assert len(mine["events"]) == 1
        assert theirs["events"] == []
        assert theirs["cursor"] == mine["cursor"]

    def test_hydrate_hides_money_from_employees(self, proposal, employee_user, admin_user):
        rows = realtime_service.changes(employee_user, table="proposals", hydrate=True)["rows"]["proposals"]
        assert "amount" not in rows[0]
        rows = realtime_service.changes(admin_user, table="proposals", hydrate=True)["rows"]["proposals"]
        assert rows[0]["amount"] == 1000.0

    def test_hydrate_hides_foreign_tickets(self, employee_user, make_profile):
        other = make_profile("other@studio.io")
        ticket_service.create_ticket({"title": "Private"}, other)
        rows = realtime_service.changes(employee_user, table="tickets", hydrate=True)["rows"]
        assert rows["tickets"] == []

    def test_hydrate_scopes_client_logins(self, proposal, client_user, client_record, admin_user):
        task_service.create_task({"title": "Internal", "proposal_id": proposal.id}, admin_user)
        rows = realtime_service.changes(client_user, hydrate=True)["rows"]
        assert rows["tasks"] == []
        assert rows["projects"] == []
        assert rows["proposals"] == []

        client_record.user_id = client_user.id
        db.session.commit()
        rows = realtime_service.changes(client_user, hydrate=True)["rows"]
        assert [p["id"] for p in rows["proposals"]] == [proposal.id]
        assert rows["tasks"] == []

    def test_hydrate_hides_foreign_project_chat(self, project, client_user, employee_user, admin_user):
        from opsdesk.services import chat_service, client_service, project_service
        record = client_service.create_client({"first_name": "Carl", "last_name": "Client", "email": "carl@acme.com"})
        record.user_id = client_user.id
        db.session.commit()
        own = project_service.create_project({"name": "Acme Portal", "client_id": record.id}, actor_id=admin_user.id)
        foreign = chat_service.create_channel({"name": "relaunch", "project_id": project.id}, employee_user)
        secret = chat_service.post_message(foreign.id, "budget is 40k", employee_user)
        mine = chat_service.create_channel({"name": "portal", "project_id": own.id}, employee_user)
        hello = chat_service.post_message(mine.id, "welcome aboard", employee_user)

        rows = realtime_service.changes(client_user, hydrate=True)["rows"]
        assert [c["id"] for c in rows["channels"]] == [mine.id]
        assert [m["id"] for m in rows["messages"]] == [hello.id]
        assert secret.id not in [m["id"] for m in rows["messages"]]

    def test_has_more(self, proposal, admin_user):
        for i in range(3):
            task_service.create_task({"title": f"T{i}", "proposal_id": proposal.id}, admin_user)
        feed = realtime_service.changes(admin_user, table="tasks", limit=2)
        assert len(feed["events"]) == 2
        assert feed["has_more"] is True

    @pytest.mark.parametrize("kwargs", [{"since": "abc"}, {"table": "profiles"}])
    def test_invalid_args(self, admin_user, kwargs):
        with pytest.raises(ValidationError):
            realtime_service.changes(admin_user, **kwargs)

    def test_api(self, client, employee_headers, proposal):
        res = client.get("/api/v1/realtime/cursor", headers=employee_headers)
        cursor = res.get_json()["cursor"]
        assert cursor == ChangeEvent.query.count()
        res = client.get("/api/v1/realtime/changes?since=0&table=projects&hydrate=1", headers=employee_headers)
        data = res.get_json()
        assert data["rows"]["projects"][0]["id"] == proposal.project_id
        res = client.get("/api/v1/realtime/changes?since=nope", headers=employee_headers)
        assert res.status_code == 422


# ═══════════════════════════════════════════════════════════════
# Breadcrumbs (pure)
# ═══════════════════════════════════════════════════════════════
class TestBreadcrumbs:
    def test_root(self):
        assert build_breadcrumbs("") == [{"label": "Projects"}]
        assert build_breadcrumbs("/") == [{"label": "Projects"}]

    def test_project_phases(self):
        assert build_breadcrumbs(f"/projects/{PROJECT_ID}/phases") == [
            {"label": "Projects", "href": "/projects"},
            {"label": "Details", "href": f"/projects/{PROJECT_ID}/phases"},
            {"label": "Phases", "href": f"/projects/{PROJECT_ID}/phases"},
        ]

    def test_overview_segment_after_id_skipped(self):
        assert build_breadcrumbs(f"/clients/{PROJECT_ID}/overview") == [
            {"label": "Clients", "href": "/clients"},
            {"label": "Details", "href": f"/clients/{PROJECT_ID}/overview"},
        ]

    def test_unknown_segment_capitalized(self):
        assert build_breadcrumbs("/reports") == [{"label": "Reports", "href": "/reports"}]

    @pytest.mark.parametrize("segment,expected", [
        (PROJECT_ID, True), ("1234567", True), ("12345", False), ("phases", False),
        ("\u00b2" * 6, False), ("\u0661\u0662\u0663\u0664\u0665\u0666", False),
    ])
    def test_id_segments(self, segment, expected):
        assert is_id_segment(segment) is expected

    def test_api(self, client, employee_headers):
        res = client.get("/api/v1/navigation/breadcrumbs?path=/team", headers=employee_headers)
        assert res.get_json() == {"items": [{"label": "Team", "href": "/team"}]}


# ═══════════════════════════════════════════════════════════════
# Audit log reader
# ═══════════════════════════════════════════════════════════════
class TestAuditLogs:
    def test_filters(self, employee_user):
        ticket = ticket_service.create_ticket({"title": "One"}, employee_user)
        ticket_service.update_ticket(ticket.id, {"title": "One!"}, employee_user)
        result = audit_service.list_audit_logs(table_name="tickets", action="update")
        assert result["total"] == 1
        assert result["items"][0]["record_id"] == ticket.id
        assert audit_service.list_audit_logs(record_id=ticket.id)["total"] == 2

    def test_invalid_action(self):
        with pytest.raises(ValidationError):
            audit_service.list_audit_logs(action="TRUNCATE")

    def test_limit_clamped(self):
        assert audit_service.list_audit_logs(limit=1000)["limit"] == audit_service.MAX_LIMIT

    def test_api_admin_only(self, client, employee_headers, admin_headers, employee_user):
        ticket_service.create_ticket({"title": "One"}, employee_user)
        assert client.get("/api/v1/audit-logs", headers=employee_headers).status_code == 403
        res = client.get("/api/v1/audit-logs?table_name=tickets&limit=1", headers=admin_headers)
        data = res.get_json()
        assert (data["total"], data["limit"], data["offset"]) == (1, 1, 0)
