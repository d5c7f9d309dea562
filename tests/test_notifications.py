"""
Notification tests — notify rules, read tracking, settings and push delivery.
"""

from unittest.mock import MagicMock, patch

import pytest
import requests

from opsdesk.core.exceptions import NotFoundError, ValidationError
from opsdesk.models import db
from opsdesk.models.notification import Notification, NotificationSettings, PushSubscription
from opsdesk.services import push_service
from opsdesk.services.notification_service import NotificationService

PUSH_URL = "https://push.example.com/send"
SUBSCRIPTION = {"endpoint": "https://fcm.example.com/abc", "keys": {"p256dh": "k", "auth": "a"}}


def _notify(user_id, **kwargs):
    kwargs.setdefault("title", "Hello")
    notif = NotificationService.notify(user_id=user_id, **kwargs)
    db.session.commit()
    return notif


class TestNotifyRules:
    def test_creates_notification(self, employee_user, admin_user):
        notif = _notify(employee_user.id, type="system", content="Body", link="/x", actor_id=admin_user.id,
                        metadata={"k": "v"})
        assert notif.to_dict()["metadata"] == {"k": "v"}
        assert notif.is_read is False

    def test_skips_self_notification(self, employee_user):
        assert _notify(employee_user.id, actor_id=employee_user.id) is None
        assert Notification.query.count() == 0

    def test_unknown_type_rejected(self, employee_user):
        with pytest.raises(ValidationError):
            NotificationService.notify(user_id=employee_user.id, type="sms", title="x")

    def test_settings_created_lazily_all_enabled(self, employee_user):
        assert NotificationSettings.query.count() == 0
        settings = NotificationService.get_settings(employee_user.id)
        assert (settings.dm_enabled, settings.mention_enabled, settings.task_enabled) == (True, True, True)

    @pytest.mark.parametrize("ntype,flag", [("dm", "dm_enabled"), ("mention", "mention_enabled"),
                                            ("task", "task_enabled")])
    def test_muted_types(self, employee_user, ntype, flag):
        NotificationService.update_settings(employee_user.id, {flag: False})
        assert _notify(employee_user.id, type=ntype) is None

    def test_system_and_reminder_cannot_be_muted(self, employee_user):
        NotificationService.update_settings(
            employee_user.id, {"dm_enabled": False, "mention_enabled": False, "task_enabled": False},
        )
        assert _notify(employee_user.id, type="system") is not None
        assert _notify(employee_user.id, type="reminder") is not None

    def test_settings_must_be_boolean(self, employee_user):
        with pytest.raises(ValidationError):
            NotificationService.update_settings(employee_user.id, {"dm_enabled": "no"})


class TestReadTracking:
    def test_mark_read_and_all(self, employee_user):
        first = _notify(employee_user.id)
        _notify(employee_user.id)
        _notify(employee_user.id)
        NotificationService.mark_read(first.id, employee_user.id)
        assert first.read_at is not None
        assert NotificationService.unread_count(employee_user.id) == 2
        assert NotificationService.mark_all_read(employee_user.id) == 2
        assert NotificationService.unread_count(employee_user.id) == 0

    def test_cannot_touch_others_notifications(self, employee_user, admin_user):
        notif = _notify(employee_user.id)
        with pytest.raises(NotFoundError):
            NotificationService.mark_read(notif.id, admin_user.id)
        with pytest.raises(NotFoundError):
            NotificationService.delete(notif.id, admin_user.id)


class TestPushDelivery:
    def test_skipped_without_url(self, employee_user):
        with patch("opsdesk.services.push_service.requests.post") as post:
            assert push_service.send_push(employee_user.id, "t") is False
        post.assert_not_called()

    def test_skipped_without_subscription(self, app, employee_user, monkeypatch):
        monkeypatch.setitem(app.config, "PUSH_FUNCTION_URL", PUSH_URL)
        with patch("opsdesk.services.push_service.requests.post") as post:
            assert push_service.send_push(employee_user.id, "t") is False
        post.assert_not_called()

    def test_delivered_on_notify(self, app, employee_user, monkeypatch):
        monkeypatch.setitem(app.config, "PUSH_FUNCTION_URL", PUSH_URL)
        NotificationService.register_push(employee_user.id, SUBSCRIPTION)
        with patch("opsdesk.services.push_service.requests.post") as post:
            post.return_value = MagicMock(status_code=200)
            _notify(employee_user.id, title="Ping", content="Body", link="/chat")
        post.assert_called_once()
        args, kwargs = post.call_args
        assert args[0] == PUSH_URL
        assert kwargs["json"]["user_id"] == employee_user.id
        assert kwargs["json"]["title"] == "Ping"
        assert kwargs["timeout"] == push_service.PUSH_TIMEOUT_SECONDS

    def test_push_failure_does_not_block_notification(self, app, employee_user, monkeypatch):
        monkeypatch.setitem(app.config, "PUSH_FUNCTION_URL", PUSH_URL)
        NotificationService.register_push(employee_user.id, SUBSCRIPTION)
        with patch("opsdesk.services.push_service.requests.post", side_effect=requests.ConnectionError("down")):
            notif = _notify(employee_user.id)
        assert notif is not None
        assert Notification.query.count() == 1

    def test_held_until_commit(self, app, employee_user, monkeypatch):
        monkeypatch.setitem(app.config, "PUSH_FUNCTION_URL", PUSH_URL)
        NotificationService.register_push(employee_user.id, SUBSCRIPTION)
        with patch("opsdesk.services.push_service.requests.post") as post:
            NotificationService.notify(user_id=employee_user.id, title="Ping")
            post.assert_not_called()
            db.session.commit()
        post.assert_called_once()

    def test_dropped_on_rollback(self, app, employee_user, monkeypatch):
        monkeypatch.setitem(app.config, "PUSH_FUNCTION_URL", PUSH_URL)
        NotificationService.register_push(employee_user.id, SUBSCRIPTION)
        with patch("opsdesk.services.push_service.requests.post") as post:
            NotificationService.notify(user_id=employee_user.id, title="Ping")
            db.session.rollback()
            db.session.commit()
        post.assert_not_called()
        assert Notification.query.count() == 0

    def test_rejected_ticket_update_sends_nothing(self, app, client, admin_headers, employee_user, monkeypatch):
        from opsdesk.services import ticket_service
        monkeypatch.setitem(app.config, "PUSH_FUNCTION_URL", PUSH_URL)
        NotificationService.register_push(employee_user.id, SUBSCRIPTION)
        ticket = ticket_service.create_ticket({"title": "Export fails"}, employee_user)
        with patch("opsdesk.services.push_service.requests.post") as post:
            res = client.put(f"/api/v1/tickets/{ticket.id}", json={"status": "closed", "priority": "urgent"},
                             headers=admin_headers)
            assert res.status_code == 422
            post.assert_not_called()
            res = client.put(f"/api/v1/tickets/{ticket.id}", json={"status": "closed"}, headers=admin_headers)
            assert res.status_code == 200
        post.assert_called_once()


class TestNotificationAPI:
    def test_list_with_unread_count(self, client, employee_user, employee_headers):
        _notify(employee_user.id, title="One")
        res = client.get("/api/v1/notifications", headers=employee_headers)
        data = res.get_json()
        assert data["unread_count"] == 1
        assert data["items"][0]["title"] == "One"

    def test_read_and_delete(self, client, employee_user, employee_headers):
        notif = _notify(employee_user.id)
        res = client.post(f"/api/v1/notifications/{notif.id}/read", headers=employee_headers)
        assert res.get_json()["is_read"] is True
        res = client.get("/api/v1/notifications/unread-count", headers=employee_headers)
        assert res.get_json() == {"unread_count": 0}
        res = client.delete(f"/api/v1/notifications/{notif.id}", headers=employee_headers)
        assert res.status_code == 200

    def test_read_all(self, client, employee_user, employee_headers):
        _notify(employee_user.id)
        _notify(employee_user.id)
        res = client.post("/api/v1/notifications/read-all", headers=employee_headers)
        assert res.get_json() == {"marked": 2}

    def test_admin_sends_system_notification(self, client, admin_headers, employee_headers, employee_user):
        body = {"user_id": employee_user.id, "title": "Maintenance tonight"}
        assert client.post("/api/v1/notifications", json=body, headers=employee_headers).status_code == 403
        res = client.post("/api/v1/notifications", json=body, headers=admin_headers)
        assert res.status_code == 201
        assert res.get_json()["type"] == "system"

    def test_settings_roundtrip(self, client, employee_headers):
        res = client.get("/api/v1/notifications/settings", headers=employee_headers)
        assert res.get_json()["dm_enabled"] is True
        res = client.put("/api/v1/notifications/settings", json={"dm_enabled": False}, headers=employee_headers)
        assert res.get_json()["dm_enabled"] is False
        assert NotificationSettings.query.count() == 1

    def test_push_register_and_unregister(self, client, employee_headers):
        res = client.post("/api/v1/notifications/push", json={"subscription": SUBSCRIPTION},
                          headers=employee_headers)
        assert res.status_code == 201
        res = client.post("/api/v1/notifications/push", json=SUBSCRIPTION, headers=employee_headers)
        assert res.status_code == 200
        assert PushSubscription.query.count() == 1

        res = client.delete(f"/api/v1/notifications/push?endpoint={SUBSCRIPTION['endpoint']}",
                            headers=employee_headers)
        assert res.get_json() == {"removed": 1}

    def test_push_requires_endpoint(self, client, employee_headers):
        res = client.post("/api/v1/notifications/push", json={"keys": {}}, headers=employee_headers)
        assert res.status_code == 422
