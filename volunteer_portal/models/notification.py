from __future__ import annotations

import sqlite3
from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel

from volunteer_portal import clock
from volunteer_portal.db import transaction

NotificationType = Literal[
    "SIGNUP_CREATED",
    "SHIFT_MOVED",
    "ACHIEVEMENT_UNLOCKED",
    "SURVEY_ASSIGNED",
    "WAITLIST_PROMOTED",
]


# ---------------------------------------------------------------------------
# Pydantic models
# ---------------------------------------------------------------------------

class NotificationCreate(BaseModel):
    user_id: int
    type: NotificationType
    title: str
    message: str
    related_id: Optional[int] = None


class Notification(BaseModel):
    id: int
    user_id: int
    type: str
    title: str
    message: str
    related_id: Optional[int]
    is_read: bool
    created_at: datetime
    sent_at: Optional[datetime]
    error: Optional[str]


# ---------------------------------------------------------------------------
# CRUD helpers
# ---------------------------------------------------------------------------

def _row_to_notification(row: sqlite3.Row) -> Notification:
    return Notification(
        id=row["id"],
        user_id=row["user_id"],
        type=row["type"],
        title=row["title"],
        message=row["message"],
        related_id=row["related_id"],
        is_read=bool(row["is_read"]),
        created_at=row["created_at"],
        sent_at=row["sent_at"],
        error=row["error"],
    )


def create_notification(db: sqlite3.Connection, data: NotificationCreate) -> Notification:
    """Insert a new notification and return the created record."""
    with transaction(db):
        cursor = db.execute(
            """INSERT INTO notifications (user_id, type, title, message, related_id)
               VALUES (?, ?, ?, ?, ?)""",
            (data.user_id, data.type, data.title, data.message, data.related_id),
        )
    return get_notification(db, cursor.lastrowid)


def get_notification(db: sqlite3.Connection, notification_id: int) -> Optional[Notification]:
    """Look up a notification by ID. Returns None if not found."""
    row = db.execute(
        "SELECT * FROM notifications WHERE id = ?", (notification_id,)
    ).fetchone()
    if row is None:
        return None
    return _row_to_notification(row)


def list_notifications_by_user(db: sqlite3.Connection, user_id: int) -> list[Notification]:
    """Return all notifications for a specific user, newest first."""
    rows = db.execute(
        "SELECT * FROM notifications WHERE user_id = ? ORDER BY id DESC",
        (user_id,),
    ).fetchall()
    return [_row_to_notification(r) for r in rows]


def mark_sent(db: sqlite3.Connection, notification_id: int) -> None:
    """Record that the webhook accepted a notification."""
    with transaction(db):
        db.execute(
            "UPDATE notifications SET sent_at = ? WHERE id = ?",
            (clock.to_db(clock.utcnow()), notification_id),
        )


def mark_error(db: sqlite3.Connection, notification_id: int, error_msg: str) -> None:
    """Mark a notification with a delivery error message."""
    with transaction(db):
        db.execute(
            "UPDATE notifications SET error = ? WHERE id = ?",
            (error_msg, notification_id),
        )


def mark_read_for_related(
    db: sqlite3.Connection, user_id: int, type: str, related_id: int
) -> int:
    """Mark a user's unread notifications about one record as read."""
    with transaction(db):
        cursor = db.execute(
            """
            UPDATE notifications SET is_read = 1
            WHERE user_id = ? AND type = ? AND related_id = ? AND is_read = 0
            """,
            (user_id, type, related_id),
        )
    return cursor.rowcount
