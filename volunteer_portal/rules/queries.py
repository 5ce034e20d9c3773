"""DB query functions for signup rule checks.

Every function re-reads current state; nothing here is cached.
"""

from __future__ import annotations

import sqlite3
from datetime import date
from typing import Optional

from volunteer_portal import clock


def get_signup_for_pair(db: sqlite3.Connection, user_id: int, shift_id: int) -> Optional[sqlite3.Row]:
    """Return the signup row for (user, shift) in any status, if one exists."""
    return db.execute(
        "SELECT * FROM signups WHERE user_id = ? AND shift_id = ?",
        (user_id, shift_id),
    ).fetchone()


def get_confirmed_count(db: sqlite3.Connection, shift_id: int) -> int:
    """Count CONFIRMED signups for a specific shift."""
    row = db.execute(
        "SELECT COUNT(*) AS cnt FROM signups WHERE shift_id = ? AND status = 'CONFIRMED'",
        (shift_id,),
    ).fetchone()
    return row["cnt"]


def get_confirmed_on_day(
    db: sqlite3.Connection,
    user_id: int,
    day: date,
    exclude_signup_id: Optional[int] = None,
) -> Optional[sqlite3.Row]:
    """Return the user's CONFIRMED signup whose shift starts on the civil day.

    ``exclude_signup_id`` leaves out the signup being moved.
    """
    start, end = clock.day_bounds(day)
    row = db.execute(
        """
        SELECT su.id AS signup_id, sh.id AS shift_id, sh.location, sh.starts_at,
               st.name AS shift_type_name
        FROM signups su
        JOIN shifts sh ON sh.id = su.shift_id
        JOIN shift_types st ON st.id = sh.shift_type_id
        WHERE su.user_id = ?
          AND su.status = 'CONFIRMED'
          AND sh.starts_at >= ?
          AND sh.starts_at < ?
          AND su.id != ?
        ORDER BY sh.starts_at
        LIMIT 1
        """,
        (user_id, clock.to_db(start), clock.to_db(end), exclude_signup_id or -1),
    ).fetchone()
    return row


def get_waitlisted(db: sqlite3.Connection, shift_id: int) -> list[sqlite3.Row]:
    """Return WAITLISTED signups for a shift, oldest first."""
    return db.execute(
        """
        SELECT * FROM signups
        WHERE shift_id = ? AND status = 'WAITLISTED'
        ORDER BY created_at, id
        """,
        (shift_id,),
    ).fetchall()
