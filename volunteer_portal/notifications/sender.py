import logging
import os
import re
import sqlite3
from typing import Optional
from urllib.parse import urlparse, urlunparse

import httpx

from volunteer_portal.models.notification import (
    Notification,
    NotificationCreate,
    create_notification,
    mark_error,
    mark_sent,
)
from volunteer_portal.notifications.registry import ConnectionRegistry

logger = logging.getLogger(__name__)


def _normalized_webhook_url(raw: Optional[str]) -> Optional[str]:
    """Normalize an env-provided webhook URL, or return None when unset.

    Handles stray quotes and a missing protocol (e.g. ``hooks.internal/notify``).
    """
    value = (raw or "").strip().strip('"').strip("'")
    if not value:
        return None

    if "://" not in value:
        value = f"http://{value}"

    parsed = urlparse(value)
    if not parsed.hostname:
        return None

    netloc = parsed.netloc.rstrip(":")
    path = re.sub(r"/+$", "", parsed.path or "")
    return urlunparse((parsed.scheme or "http", netloc, path, "", "", ""))


class NotificationSink:
    """Fire-and-forget receiver for events raised by the core engines.

    ``emit`` must be called after the originating transaction has committed.
    It stores a notification row, pushes it to live connections and, when
    ``NOTIFY_WEBHOOK_URL`` is set, posts it to the webhook. Any failure is
    logged and swallowed so it can never undo or fail the caller's work.
    """

    def __init__(
        self,
        db: sqlite3.Connection,
        registry: Optional[ConnectionRegistry] = None,
        webhook_url: Optional[str] = None,
    ):
        self.db = db
        self.registry = registry
        self.webhook_url = _normalized_webhook_url(
            webhook_url if webhook_url is not None else os.getenv("NOTIFY_WEBHOOK_URL")
        )

    def emit(
        self,
        user_id: int,
        type: str,
        title: str,
        message: str,
        related_id: Optional[int] = None,
    ) -> Optional[Notification]:
        try:
            notification = create_notification(
                self.db,
                NotificationCreate(
                    user_id=user_id,
                    type=type,
                    title=title,
                    message=message,
                    related_id=related_id,
                ),
            )
        except Exception:
            logger.exception("Failed to store %s notification for user %s", type, user_id)
            return None

        payload = notification.model_dump(mode="json")

        if self.registry is not None:
            try:
                self.registry.broadcast(user_id, {"event": "notification", "data": payload})
            except Exception:
                logger.exception("Failed to broadcast notification %s", notification.id)

        if self.webhook_url:
            self._post(notification, payload)

        return notification

    def _post(self, notification: Notification, payload: dict) -> None:
        try:
            response = httpx.post(self.webhook_url, json=payload, timeout=10)
            response.raise_for_status()
            mark_sent(self.db, notification.id)
        except (httpx.RequestError, httpx.HTTPStatusError) as e:
            logger.warning("Webhook delivery failed for notification %s: %s", notification.id, e)
            try:
                mark_error(self.db, notification.id, str(e))
            except Exception:
                logger.exception("Failed to record delivery error for notification %s", notification.id)


def emit_safely(sink: Optional[NotificationSink], *args, **kwargs) -> None:
    """Emit through ``sink`` if there is one; never raises."""
    if sink is None:
        return
    try:
        sink.emit(*args, **kwargs)
    except Exception:
        logger.exception("Notification sink raised")
