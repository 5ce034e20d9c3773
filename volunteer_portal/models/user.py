"""User domain model: schemas, friendships, and the ordered user deletion plan."""

from __future__ import annotations

import logging
import sqlite3
from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel

from volunteer_portal.db import transaction
from volunteer_portal.errors import Conflict, NotFound, ValidationFailed

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Pydantic models
# ---------------------------------------------------------------------------

class UserCreate(BaseModel):
    email: str
    name: Optional[str] = None
    role: Literal["VOLUNTEER", "ADMIN"] = "VOLUNTEER"


class User(BaseModel):
    id: int
    email: str
    name: Optional[str]
    role: str
    created_at: datetime


# ---------------------------------------------------------------------------
# CRUD helpers
# ---------------------------------------------------------------------------

def _row_to_user(row: sqlite3.Row) -> User:
    return User(
        id=row["id"],
        email=row["email"],
        name=row["name"],
        role=row["role"],
        created_at=row["created_at"],
    )


def create_user(db: sqlite3.Connection, data: UserCreate) -> User:
    """Insert a new user and return the created record."""
    email = data.email.strip().lower()
    try:
        with transaction(db):
            cursor = db.execute(
                "INSERT INTO users (email, name, role) VALUES (?, ?, ?)",
                (email, data.name, data.role),
            )
    except sqlite3.IntegrityError:
        raise Conflict(f"A user with email {email} already exists") from None
    return get_user(db, cursor.lastrowid)


def get_user(db: sqlite3.Connection, user_id: int) -> Optional[User]:
    row = db.execute("SELECT * FROM users WHERE id = ?", (user_id,)).fetchone()
    if row is None:
        return None
    return _row_to_user(row)


def list_users(db: sqlite3.Connection, role: Optional[str] = None) -> list[User]:
    """Return all users, optionally filtered by role."""
    if role is None:
        rows = db.execute("SELECT * FROM users ORDER BY id").fetchall()
    else:
        rows = db.execute(
            "SELECT * FROM users WHERE role = ? ORDER BY id", (role,)
        ).fetchall()
    return [_row_to_user(r) for r in rows]


# ---------------------------------------------------------------------------
# Friendships
# ---------------------------------------------------------------------------

def add_friendship(db: sqlite3.Connection, user_id: int, friend_id: int) -> None:
    """Record an accepted friendship in both directions."""
    if user_id == friend_id:
        raise ValidationFailed("Users cannot befriend themselves")
    with transaction(db):
        for a, b in ((user_id, friend_id), (friend_id, user_id)):
            db.execute(
                """
                INSERT INTO friendships (user_id, friend_id, status) VALUES (?, ?, 'ACCEPTED')
                ON CONFLICT(user_id, friend_id) DO UPDATE SET status = 'ACCEPTED'
                """,
                (a, b),
            )


def count_accepted_friends(db: sqlite3.Connection, user_id: int) -> int:
    """Count accepted friendships.

    Friendships are stored in both directions, so only the user's own side
    is counted.
    """
    row = db.execute(
        "SELECT COUNT(*) AS cnt FROM friendships WHERE user_id = ? AND status = 'ACCEPTED'",
        (user_id,),
    ).fetchone()
    return row["cnt"]


# ---------------------------------------------------------------------------
# Deletion
# ---------------------------------------------------------------------------

_ASSIGNMENTS_OF_USER = "SELECT id FROM survey_assignments WHERE user_id = :user_id"
_BOOKINGS_LED_BY_USER = "SELECT id FROM group_bookings WHERE leader_id = :user_id"

# Leaf tables first: every statement only removes rows nothing later in the
# plan (or outside it) still references.
USER_DELETION_PLAN: list[tuple[str, str]] = [
    ("notifications", "DELETE FROM notifications WHERE user_id = :user_id"),
    (
        "survey_responses",
        f"DELETE FROM survey_responses WHERE assignment_id IN ({_ASSIGNMENTS_OF_USER})",
    ),
    (
        "survey_tokens",
        f"DELETE FROM survey_tokens WHERE assignment_id IN ({_ASSIGNMENTS_OF_USER})",
    ),
    ("survey_assignments", "DELETE FROM survey_assignments WHERE user_id = :user_id"),
    ("user_achievements", "DELETE FROM user_achievements WHERE user_id = :user_id"),
    (
        "friendships",
        "DELETE FROM friendships WHERE user_id = :user_id OR friend_id = :user_id",
    ),
    ("signups", "DELETE FROM signups WHERE user_id = :user_id"),
    (
        "group_members",
        f"UPDATE signups SET group_booking_id = NULL WHERE group_booking_id IN ({_BOOKINGS_LED_BY_USER})",
    ),
    ("group_bookings", "DELETE FROM group_bookings WHERE leader_id = :user_id"),
    ("users", "DELETE FROM users WHERE id = :user_id"),
]


def delete_user(db: sqlite3.Connection, user_id: int) -> dict[str, int]:
    """Delete a user and everything they own in one transaction.

    Returns the number of rows touched per plan step.
    """
    with transaction(db):
        if db.execute("SELECT 1 FROM users WHERE id = ?", (user_id,)).fetchone() is None:
            raise NotFound(f"User {user_id} not found")

        affected: dict[str, int] = {}
        for step, sql in USER_DELETION_PLAN:
            affected[step] = db.execute(sql, {"user_id": user_id}).rowcount

    logger.info("Deleted user %s", user_id, extra={"affected": affected})
    return affected
