"""
Proposal tests — commission math, money-field guard, markdown templates,
deliverables, ordering, revisions and delegation.
"""

import pytest

from opsdesk.core.exceptions import PermissionDeniedError, ValidationError
from opsdesk.models import db
from opsdesk.models.proposal import Revision
from opsdesk.models.task import Task
from opsdesk.services import proposal_service


# ═══════════════════════════════════════════════════════════════
# Templates (pure)
# ═══════════════════════════════════════════════════════════════
class TestTemplates:
    def test_render_key_values_skips_blanks(self):
        text = proposal_service.render_key_values([
            {"key": "Frontend", "value": "React"},
            {"key": "", "value": "orphan"},
            {"key": "Backend", "value": " "},
        ])
        assert text == "• **Frontend**: React"

    def test_render_payment_schedule(self):
        text = proposal_service.render_payment_schedule(
            [{"label": "Deposit", "percentage": 30}, {"label": "Final", "percentage": 70},
             {"label": "Zero", "percentage": 0}],
            2000,
        )
        assert text == "• **Deposit**: 30% ($600.00)\n• **Final**: 70% ($1400.00)"

    def test_parse_back(self):
        assert proposal_service.parse_key_values("• **Frontend**: React\nnoise") == [
            {"key": "Frontend", "value": "React"},
        ]
        assert proposal_service.parse_payment_schedule("• **Deposit**: 30% ($600.00)") == [
            {"label": "Deposit", "percentage": 30.0},
        ]

    def test_defaults_on_create(self, proposal):
        assert proposal.tech_stack.startswith("• **Frontend**: ")
        assert proposal.payment_schedule == (
            "• **Initial Deposit**: 50% ($500.00)\n• **Final Delivery**: 50% ($500.00)"
        )
        items = proposal_service.template_items(proposal)
        assert [s["percentage"] for s in items["payment_schedule"]] == [50.0, 50.0]

    def test_structured_items_win_over_text(self, proposal, admin_user):
        proposal_service.update_proposal(
            proposal.id,
            {"timeline_items": [{"key": "Week 1", "value": "Kickoff"}], "timeline": "ignored"},
            admin_user,
        )
        assert proposal.timeline == "• **Week 1**: Kickoff"


# ═══════════════════════════════════════════════════════════════
# Money
# ═══════════════════════════════════════════════════════════════
class TestMoney:
    def test_direct_order_has_no_commission(self, proposal):
        assert proposal.commission_rate == 0.0
        assert proposal.net_amount == 1000.0

    def test_fiverr_commission(self, proposal, admin_user):
        proposal_service.update_proposal(proposal.id, {"order_source": "fiverr"}, admin_user)
        assert proposal.commission_rate == pytest.approx(0.20)
        assert proposal.commission_amount == pytest.approx(200.0)
        assert proposal.net_amount == pytest.approx(800.0)

    def test_commission_rate_configurable(self, app, proposal, admin_user, monkeypatch):
        monkeypatch.setitem(app.config, "FIVERR_COMMISSION_RATE", 0.10)
        proposal_service.update_proposal(proposal.id, {"order_source": "fiverr", "amount": 500}, admin_user)
        assert proposal.net_amount == pytest.approx(450.0)

    def test_non_admin_money_fields_ignored(self, proposal, employee_user):
        proposal_service.update_proposal(
            proposal.id, {"amount": 1, "order_source": "fiverr", "title": "Renamed"}, employee_user,
        )
        assert proposal.title == "Renamed"
        assert proposal.amount == 1000.0
        assert proposal.order_source == "direct"

    @pytest.mark.parametrize("amount", [-5, "abc"])
    def test_invalid_amount(self, proposal, admin_user, amount):
        with pytest.raises(ValidationError):
            proposal_service.update_proposal(proposal.id, {"amount": amount}, admin_user)

    def test_line_items_cleaned(self, proposal, admin_user):
        proposal_service.update_proposal(
            proposal.id,
            {"line_items": [{"description": " Design ", "quantity": "2", "price": 150}]},
            admin_user,
        )
        assert proposal.line_items == [{"description": "Design", "quantity": 2.0, "price": 150.0}]
        assert proposal_service.line_items_total(proposal.line_items) == 300.0

    def test_negative_line_item_rejected(self):
        with pytest.raises(ValidationError):
            proposal_service.clean_line_items([{"description": "x", "quantity": 1, "price": -1}])


# ═══════════════════════════════════════════════════════════════
# Structure
# ═══════════════════════════════════════════════════════════════
class TestStructure:
    def test_project_required(self, admin_user):
        with pytest.raises(ValidationError):
            proposal_service.create_proposal({"title": "Orphan"}, admin_user)

    def test_order_index_appends(self, project, proposal, admin_user):
        second = proposal_service.create_proposal({"project_id": project.id, "title": "Phase 2"}, admin_user)
        assert (proposal.order_index, second.order_index) == (0, 1)

    def test_reorder(self, project, proposal, admin_user):
        b = proposal_service.create_proposal({"project_id": project.id, "title": "B"}, admin_user)
        c = proposal_service.create_proposal({"project_id": project.id, "title": "C"}, admin_user)
        ordered = proposal_service.reorder_proposals(project.id, [c.id, proposal.id])
        assert [p.title for p in ordered] == ["C", "Phase 1", "B"]
        assert [p.order_index for p in ordered] == [0, 1, 2]

    def test_reorder_rejects_foreign_ids(self, project, proposal):
        with pytest.raises(ValidationError):
            proposal_service.reorder_proposals(project.id, ["someone-else"])

    def test_deliverables_replaced(self, proposal, admin_user):
        proposal_service.update_proposal(proposal.id, {"deliverables": ["Logo", {"title": "Site"}, ""]},
                                         admin_user)
        assert [d.title for d in proposal.deliverables] == ["Logo", "Site"]
        proposal_service.update_proposal(proposal.id, {"deliverables": ["Only"]}, admin_user)
        assert [d.title for d in proposal.deliverables] == ["Only"]

    def test_invalid_status(self, proposal, admin_user):
        with pytest.raises(ValidationError):
            proposal_service.update_proposal(proposal.id, {"status": "archived"}, admin_user)


# ═══════════════════════════════════════════════════════════════
# Revisions
# ═══════════════════════════════════════════════════════════════
@pytest.fixture()
def linked_client(client_record, client_user):
    client_record.user_id = client_user.id
    db.session.commit()
    return client_record


class TestRevisions:
    def test_client_submits_revision_on_own_project(self, proposal, client_user, linked_client):
        revision = proposal_service.create_revision(proposal.id, {"title": "Bigger logo"}, client_user)
        assert revision.client_id == linked_client.id
        assert revision.status == "pending"

    def test_client_blocked_on_foreign_project(self, proposal, client_user):
        with pytest.raises(PermissionDeniedError):
            proposal_service.create_revision(proposal.id, {"title": "Bigger logo"}, client_user)

    def test_staff_revision_defaults_to_project_client(self, proposal, employee_user, client_record):
        revision = proposal_service.create_revision(proposal.id, {"title": "Fix footer"}, employee_user)
        assert revision.client_id == client_record.id

    def test_client_sees_only_own_revisions(self, proposal, client_user, employee_user, linked_client, make_profile):
        proposal_service.create_revision(proposal.id, {"title": "Mine"}, client_user)
        other = make_profile("other@client.com", role="client")
        assert [r.title for r in proposal_service.list_revisions(actor=client_user)] == ["Mine"]
        assert proposal_service.list_revisions(actor=other) == []
        assert len(proposal_service.list_revisions(actor=employee_user)) == 1

    def test_client_cannot_update(self, proposal, client_user, linked_client):
        revision = proposal_service.create_revision(proposal.id, {"title": "Mine"}, client_user)
        with pytest.raises(PermissionDeniedError):
            proposal_service.update_revision(revision.id, {"status": "completed"}, client_user)

    def test_delegate_creates_task(self, proposal, employee_user, admin_user):
        revision = proposal_service.create_revision(proposal.id, {"title": "Fix footer"}, admin_user)
        revision, task = proposal_service.delegate_revision(revision.id, {"user_id": employee_user.id}, admin_user)
        assert revision.status == "delegated"
        assert revision.task_id == task.id
        assert task.title == "Revision: Fix footer"
        assert task.proposal_id == proposal.id
        assert task.user_id == employee_user.id

    def test_delegate_twice_rejected(self, proposal, admin_user):
        revision = proposal_service.create_revision(proposal.id, {"title": "Fix footer"}, admin_user)
        proposal_service.delegate_revision(revision.id, {}, admin_user)
        with pytest.raises(ValidationError):
            proposal_service.delegate_revision(revision.id, {}, admin_user)
        assert Task.query.count() == 1


class TestRevisionOwnership:
    def test_client_edits_own_pending(self, proposal, client_user, linked_client):
        revision = proposal_service.create_revision(proposal.id, {"title": "Mine"}, client_user)
        revision = proposal_service.update_revision(revision.id, {"title": "Mine, bigger"}, client_user)
        assert revision.title == "Mine, bigger"

    def test_client_locked_out_after_delegation(self, proposal, client_user, linked_client, admin_user):
        revision = proposal_service.create_revision(proposal.id, {"title": "Mine"}, client_user)
        proposal_service.delegate_revision(revision.id, {}, admin_user)
        with pytest.raises(PermissionDeniedError):
            proposal_service.update_revision(revision.id, {"title": "Changed"}, client_user)
        with pytest.raises(PermissionDeniedError):
            proposal_service.delete_revision(revision.id, client_user)

    def test_client_cannot_touch_staff_revision(self, proposal, client_user, linked_client, employee_user):
        revision = proposal_service.create_revision(proposal.id, {"title": "Internal"}, employee_user)
        revision.client_id = None
        db.session.commit()
        with pytest.raises(PermissionDeniedError):
            proposal_service.delete_revision(revision.id, client_user)

    def test_client_deletes_own_pending(self, proposal, client_user, linked_client):
        revision = proposal_service.create_revision(proposal.id, {"title": "Mine"}, client_user)
        proposal_service.delete_revision(revision.id, client_user)
        assert Revision.query.count() == 0

    def test_staff_deletes_any(self, proposal, admin_user, employee_user):
        revision = proposal_service.create_revision(proposal.id, {"title": "Fix"}, admin_user)
        proposal_service.delegate_revision(revision.id, {}, admin_user)
        proposal_service.delete_revision(revision.id, employee_user)
        assert Revision.query.count() == 0
        assert Task.query.count() == 1

    def test_delete_endpoint(self, client, auth_headers, client_user, linked_client, proposal):
        revision = proposal_service.create_revision(proposal.id, {"title": "Mine"}, client_user)
        res = client.delete(f"/api/v1/revisions/{revision.id}", headers=auth_headers(client_user))
        assert res.status_code == 200
        assert client.delete(f"/api/v1/revisions/{revision.id}", headers=auth_headers(client_user)).status_code == 404


class TestClientPhaseAccess:
    def test_client_sees_only_own_phases(self, client, auth_headers, client_user, proposal):
        res = client.get("/api/v1/proposals", headers=auth_headers(client_user))
        assert res.get_json()["total"] == 0
        assert client.get(f"/api/v1/proposals/{proposal.id}", headers=auth_headers(client_user)).status_code == 404

    def test_linked_client_reads_phase(self, client, auth_headers, client_user, linked_client, proposal):
        res = client.get(f"/api/v1/proposals/{proposal.id}", headers=auth_headers(client_user))
        assert res.status_code == 200
        assert "amount" not in res.get_json()
        res = client.get("/api/v1/proposals", headers=auth_headers(client_user))
        assert [p["id"] for p in res.get_json()["items"]] == [proposal.id]

    def test_client_cannot_write_phases(self, client, auth_headers, client_user, linked_client, proposal):
        headers = auth_headers(client_user)
        res = client.put(f"/api/v1/proposals/{proposal.id}", json={"title": "Mine now"}, headers=headers)
        assert res.status_code == 403
        assert client.delete(f"/api/v1/proposals/{proposal.id}", headers=headers).status_code == 403


# ═══════════════════════════════════════════════════════════════
# API
# ═══════════════════════════════════════════════════════════════
class TestProposalAPI:
    def test_admin_sees_money(self, client, admin_headers, proposal):
        res = client.get(f"/api/v1/proposals/{proposal.id}", headers=admin_headers)
        data = res.get_json()
        assert data["amount"] == 1000.0
        assert data["net_amount"] == 1000.0
        assert "template" in data

    def test_employee_money_hidden(self, client, employee_headers, proposal):
        res = client.get(f"/api/v1/proposals/{proposal.id}", headers=employee_headers)
        data = res.get_json()
        for key in ("amount", "order_source", "commission_rate", "commission_amount", "net_amount", "line_items"):
            assert key not in data
        res = client.get(f"/api/v1/proposals?project_id={proposal.project_id}", headers=employee_headers)
        assert "amount" not in res.get_json()["items"][0]

    def test_create_via_api(self, client, admin_headers, project):
        res = client.post("/api/v1/proposals", json={
            "project_id": project.id, "title": "Launch", "amount": 800, "order_source": "fiverr",
            "status": "active", "payment_splits": [{"label": "Upfront", "percentage": 100}],
        }, headers=admin_headers)
        assert res.status_code == 201
        data = res.get_json()
        assert data["net_amount"] == pytest.approx(640.0)
        assert data["payment_schedule"] == "• **Upfront**: 100% ($800.00)"
        assert data["template"]["payment_schedule"] == [{"label": "Upfront", "percentage": 100.0}]

    def test_reorder_endpoint(self, client, employee_headers, project, proposal, admin_user):
        b = proposal_service.create_proposal({"project_id": project.id, "title": "B"}, admin_user)
        res = client.post("/api/v1/proposals/reorder", json={"project_id": project.id, "ids": [b.id]},
                          headers=employee_headers)
        assert [p["title"] for p in res.get_json()["items"]] == ["B", "Phase 1"]

    def test_phase_channel_endpoint(self, client, employee_headers, proposal):
        res = client.post(f"/api/v1/proposals/{proposal.id}/channel", headers=employee_headers)
        assert res.status_code == 201
        res = client.post(f"/api/v1/proposals/{proposal.id}/channel", headers=employee_headers)
        assert res.status_code == 200
        res = client.get(f"/api/v1/proposals/{proposal.id}", headers=employee_headers)
        assert res.get_json()["channel_id"]

    def test_delegate_endpoint(self, client, employee_headers, proposal, admin_user):
        revision = proposal_service.create_revision(proposal.id, {"title": "Fix"}, admin_user)
        res = client.post(f"/api/v1/revisions/{revision.id}/delegate", json={}, headers=employee_headers)
        assert res.status_code == 201
        data = res.get_json()
        assert data["revision"]["status"] == "delegated"
        assert data["task"]["id"] == data["revision"]["task_id"]

    def test_client_update_revision_403(self, client, auth_headers, client_user, linked_client, proposal):
        revision = proposal_service.create_revision(proposal.id, {"title": "Mine"}, client_user)
        res = client.put(f"/api/v1/revisions/{revision.id}", json={"status": "completed"},
                         headers=auth_headers(client_user))
        assert res.status_code == 403
