"""Signup precondition checks.

Combines query-layer lookups with the pure rule functions. Each check
raises the typed error a caller would see, so they can run inside a
transaction before any row is written.
"""

from __future__ import annotations

import sqlite3
from typing import Optional

from volunteer_portal import clock
from volunteer_portal.errors import DailyDoubleBooking, DuplicateSignup
from volunteer_portal.rules.pure import describe_daily_conflict
from volunteer_portal.rules.queries import get_confirmed_on_day, get_signup_for_pair


def ensure_not_signed_up(db: sqlite3.Connection, user_id: int, shift_id: int) -> Optional[sqlite3.Row]:
    """Raise DuplicateSignup if the user already holds an active signup.

    Returns a CANCELED signup for the pair when there is one, so the caller
    can clear it before signing up again.
    """
    existing = get_signup_for_pair(db, user_id, shift_id)
    if existing is None:
        return None
    if existing["status"] == "CANCELED":
        return existing
    raise DuplicateSignup(f"Already {existing['status'].lower()} for this shift")


def ensure_day_is_free(
    db: sqlite3.Connection,
    user_id: int,
    shift_start,
    exclude_signup_id: Optional[int] = None,
) -> None:
    """Raise DailyDoubleBooking if another CONFIRMED shift fills the civil day."""
    day = clock.civil_day(shift_start)
    other = get_confirmed_on_day(db, user_id, day, exclude_signup_id=exclude_signup_id)
    if other is None:
        return
    raise DailyDoubleBooking(
        describe_daily_conflict(
            other["shift_type_name"], other["location"], clock.from_db(other["starts_at"])
        ),
        conflicting_shift_id=other["shift_id"],
    )


def raise_for_integrity_error(
    db: sqlite3.Connection,
    exc: sqlite3.IntegrityError,
    user_id: int,
    shift_id: int,
    shift_start,
    exclude_signup_id: Optional[int] = None,
) -> None:
    """Re-map a storage uniqueness violation onto the typed signup errors.

    A caller that lost a race sees the same error it would have seen had the
    conflicting row been visible to the pre-checks.
    """
    message = str(exc)
    if "signups.civil_day" in message:
        try:
            ensure_day_is_free(db, user_id, shift_start, exclude_signup_id=exclude_signup_id)
        except DailyDoubleBooking as conflict:
            raise conflict from exc
        raise DailyDoubleBooking(
            "You already have a confirmed shift on this day. You can only sign up for one shift per day."
        ) from exc
    if "signups.shift_id" in message or "signups.user_id" in message:
        raise DuplicateSignup("Already signed up for this shift") from exc
    raise exc
