from unittest.mock import MagicMock, patch

import httpx
import pytest

from volunteer_portal.models.notification import get_notification, list_notifications_by_user
from volunteer_portal.notifications.registry import ConnectionRegistry
from volunteer_portal.notifications.sender import (
    NotificationSink,
    _normalized_webhook_url,
    emit_safely,
)


class TestNotificationSink:
    """Test the NotificationSink service."""

    def test_stores_notification_without_webhook(self, db, make_user):
        user = make_user()
        notification = NotificationSink(db).emit(
            user.id, "SIGNUP_CREATED", "Shift signup received", "Kitchen Prep on Monday", related_id=7
        )

        assert notification is not None
        stored = get_notification(db, notification.id)
        assert stored.title == "Shift signup received"
        assert stored.related_id == 7
        assert stored.is_read is False
        assert stored.sent_at is None

    def test_broadcasts_to_live_connections(self, db, make_user):
        user = make_user()
        registry = ConnectionRegistry()
        events = registry.register(user.id, "tab-1")

        NotificationSink(db, registry=registry).emit(user.id, "SHIFT_MOVED", "Moved", "To Onehunga")

        event = events.get_nowait()
        assert event["event"] == "notification"
        assert event["data"]["title"] == "Moved"
        assert event["data"]["user_id"] == user.id

    @patch("volunteer_portal.notifications.sender.httpx.post")
    def test_webhook_success_marks_sent(self, mock_post, db, make_user):
        user = make_user()
        mock_post.return_value = MagicMock(status_code=200)

        sink = NotificationSink(db, webhook_url="hooks.example.org/notify/")
        notification = sink.emit(user.id, "ACHIEVEMENT_UNLOCKED", "Achievement unlocked!", "First Steps")

        mock_post.assert_called_once()
        args, kwargs = mock_post.call_args
        assert args[0] == "http://hooks.example.org/notify"
        assert kwargs["json"]["message"] == "First Steps"
        stored = get_notification(db, notification.id)
        assert stored.sent_at is not None
        assert stored.error is None

    @patch("volunteer_portal.notifications.sender.httpx.post")
    def test_webhook_failure_is_recorded_not_raised(self, mock_post, db, make_user):
        user = make_user()
        mock_post.side_effect = httpx.ConnectError("Connection refused")

        sink = NotificationSink(db, webhook_url="https://hooks.example.org")
        notification = sink.emit(user.id, "SURVEY_ASSIGNED", "New Survey Available", "Please tell us")

        stored = get_notification(db, notification.id)
        assert stored.sent_at is None
        assert "Connection refused" in stored.error

    @patch("volunteer_portal.notifications.sender.httpx.post")
    def test_webhook_url_from_environment(self, mock_post, db, make_user, monkeypatch):
        monkeypatch.setenv("NOTIFY_WEBHOOK_URL", '"https://hooks.example.org/n"')
        mock_post.return_value = MagicMock(status_code=200)
        NotificationSink(db).emit(make_user().id, "SIGNUP_CREATED", "Hi", "There")
        assert mock_post.call_args[0][0] == "https://hooks.example.org/n"

    def test_storage_failure_returns_none(self, db):
        # no such user: the foreign key rejects the row
        assert NotificationSink(db).emit(999, "SIGNUP_CREATED", "Hi", "There") is None
        assert list_notifications_by_user(db, 999) == []


class TestEmitSafely:
    def test_without_sink(self):
        emit_safely(None, 1, "SIGNUP_CREATED", "t", "m")

    def test_swallows_sink_errors(self):
        sink = MagicMock()
        sink.emit.side_effect = RuntimeError("boom")
        emit_safely(sink, 1, "SIGNUP_CREATED", "t", "m", related_id=3)
        sink.emit.assert_called_once_with(1, "SIGNUP_CREATED", "t", "m", related_id=3)


@pytest.mark.parametrize(
    "raw, expected",
    [
        (None, None),
        ("", None),
        ("  'https://hooks.example.org/'  ", "https://hooks.example.org"),
        ("hooks.example.org:8080/notify", "http://hooks.example.org:8080/notify"),
    ],
)
def test_normalized_webhook_url(raw, expected):
    assert _normalized_webhook_url(raw) == expected
