"""Signup domain model: schemas and the capacity-checked signup transitions.

Every transition runs inside one ``transaction``: preconditions are read
and checked first, then rows are written, and any failure rolls the whole
step back. Notifications go out only after the commit.
"""

from __future__ import annotations

import logging
import sqlite3
from datetime import datetime
from typing import Optional

from pydantic import BaseModel

from volunteer_portal import clock
from volunteer_portal.db import transaction
from volunteer_portal.errors import (
    CapacityExceeded,
    Conflict,
    NotFound,
    ValidationFailed,
)
from volunteer_portal.models.shift import Shift, get_shift, require_shift
from volunteer_portal.notifications.sender import NotificationSink, emit_safely
from volunteer_portal.rules.pure import REQUESTABLE_STATUSES, check_capacity, resolve_signup_status
from volunteer_portal.rules.queries import (
    get_confirmed_count,
    get_confirmed_on_day,
    get_waitlisted,
)
from volunteer_portal.rules.validator import (
    ensure_day_is_free,
    ensure_not_signed_up,
    raise_for_integrity_error,
)
from volunteer_portal.rules.waitlist import WaitlistPolicy, get_waitlist_policy

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Pydantic models
# ---------------------------------------------------------------------------

class SignupCreate(BaseModel):
    user_id: int
    shift_id: int
    status: str = "CONFIRMED"
    note: Optional[str] = None


class Signup(BaseModel):
    id: int
    user_id: int
    shift_id: int
    group_booking_id: Optional[int]
    status: str
    note: Optional[str]
    created_at: datetime
    canceled_at: Optional[datetime]


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------

def _row_to_signup(row: sqlite3.Row) -> Signup:
    """Convert a sqlite3.Row into a Signup model."""
    return Signup(
        id=row["id"],
        user_id=row["user_id"],
        shift_id=row["shift_id"],
        group_booking_id=row["group_booking_id"],
        status=row["status"],
        note=row["note"],
        created_at=row["created_at"],
        canceled_at=row["canceled_at"],
    )


def get_signup(db: sqlite3.Connection, signup_id: int) -> Optional[Signup]:
    row = db.execute("SELECT * FROM signups WHERE id = ?", (signup_id,)).fetchone()
    if row is None:
        return None
    return _row_to_signup(row)


def _require_signup_row(db: sqlite3.Connection, signup_id: int) -> sqlite3.Row:
    row = db.execute("SELECT * FROM signups WHERE id = ?", (signup_id,)).fetchone()
    if row is None:
        raise NotFound(f"Signup {signup_id} not found")
    return row


def get_signups_by_shift(db: sqlite3.Connection, shift_id: int) -> list[Signup]:
    """Return all signups for a given shift (including canceled)."""
    rows = db.execute(
        "SELECT * FROM signups WHERE shift_id = ? ORDER BY created_at, id",
        (shift_id,),
    ).fetchall()
    return [_row_to_signup(r) for r in rows]


def get_signups_by_user(db: sqlite3.Connection, user_id: int) -> list[Signup]:
    """Return a user's signups ordered by shift start."""
    rows = db.execute(
        """
        SELECT su.* FROM signups su
        JOIN shifts sh ON sh.id = su.shift_id
        WHERE su.user_id = ?
        ORDER BY sh.starts_at
        """,
        (user_id,),
    ).fetchall()
    return [_row_to_signup(r) for r in rows]


# ---------------------------------------------------------------------------
# Writes
# ---------------------------------------------------------------------------

def _insert_signup(
    db: sqlite3.Connection,
    user_id: int,
    shift: Shift,
    status: str,
    note: Optional[str] = None,
    group_booking_id: Optional[int] = None,
) -> int:
    try:
        cursor = db.execute(
            """
            INSERT INTO signups (user_id, shift_id, group_booking_id, status, civil_day, note)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (
                user_id,
                shift.id,
                group_booking_id,
                status,
                clock.civil_day(shift.start).isoformat(),
                note,
            ),
        )
    except sqlite3.IntegrityError as exc:
        raise_for_integrity_error(db, exc, user_id, shift.id, shift.start)
    return cursor.lastrowid


def book_place(
    db: sqlite3.Connection,
    user_id: int,
    shift: Shift,
    status: str,
    note: Optional[str] = None,
    group_booking_id: Optional[int] = None,
) -> int:
    """Check a user's preconditions for ``shift`` and insert the signup row.

    Must run inside an open transaction. ``status`` is stored as given, so
    callers resolve capacity first.
    """
    if db.execute("SELECT 1 FROM users WHERE id = ?", (user_id,)).fetchone() is None:
        raise NotFound(f"User {user_id} not found")
    canceled = ensure_not_signed_up(db, user_id, shift.id)
    ensure_day_is_free(db, user_id, shift.start)
    if canceled is not None:
        db.execute("DELETE FROM signups WHERE id = ?", (canceled["id"],))
    return _insert_signup(db, user_id, shift, status, note, group_booking_id)


def create_signup(
    db: sqlite3.Connection,
    user_id: int,
    shift_id: int,
    status: str = "CONFIRMED",
    note: Optional[str] = None,
    sink: Optional[NotificationSink] = None,
) -> Signup:
    """Sign a user up for a shift.

    Raises ShiftNotFound, DuplicateSignup or DailyDoubleBooking. A shift with
    no CONFIRMED place left still accepts the signup, as WAITLISTED.
    """
    if status not in REQUESTABLE_STATUSES:
        raise ValidationFailed(f"Signup status must be one of {', '.join(REQUESTABLE_STATUSES)}")

    with transaction(db):
        shift = require_shift(db, shift_id)
        stored_status = resolve_signup_status(
            status, get_confirmed_count(db, shift_id), shift.capacity
        )
        signup_id = book_place(db, user_id, shift, stored_status, note)

    signup = get_signup(db, signup_id)
    logger.info(
        "User %s signed up for shift %s as %s", user_id, shift_id, signup.status,
    )
    if signup.status == "WAITLISTED":
        title = "Added to the waitlist"
        message = f"{shift.shift_type_name} on {clock.format_civil(shift.start)} is full; you're on the waitlist."
    else:
        title = "Shift signup received"
        message = f"{shift.shift_type_name} on {clock.format_civil(shift.start)} at {shift.location}."
    emit_safely(sink, user_id, "SIGNUP_CREATED", title, message, related_id=signup.id)
    return signup


def _promote_waitlist(
    db: sqlite3.Connection, shift: Shift, policy: WaitlistPolicy
) -> Optional[sqlite3.Row]:
    """Let ``policy`` fill a freed place from the shift's waitlist.

    Runs inside the caller's transaction.
    """
    if not check_capacity(get_confirmed_count(db, shift.id), shift.capacity).allowed:
        return None
    candidates = get_waitlisted(db, shift.id)
    if not candidates:
        return None

    day = clock.civil_day(shift.start)

    def day_is_free(candidate: sqlite3.Row) -> bool:
        return get_confirmed_on_day(db, candidate["user_id"], day) is None

    chosen_id = policy(candidates, day_is_free)
    if chosen_id is None:
        return None
    try:
        db.execute(
            "UPDATE signups SET status = 'CONFIRMED' WHERE id = ? AND status = 'WAITLISTED'",
            (chosen_id,),
        )
    except sqlite3.IntegrityError:
        logger.warning("Waitlist policy chose signup %s with a same-day booking", chosen_id)
        return None
    return db.execute("SELECT * FROM signups WHERE id = ?", (chosen_id,)).fetchone()


def _notify_promoted(sink: Optional[NotificationSink], promoted: Optional[sqlite3.Row], shift: Shift) -> None:
    if promoted is None:
        return
    emit_safely(
        sink,
        promoted["user_id"],
        "WAITLIST_PROMOTED",
        "You're off the waitlist",
        f"A place opened up on {shift.shift_type_name}, {clock.format_civil(shift.start)}.",
        related_id=promoted["id"],
    )


def move_signup(
    db: sqlite3.Connection,
    signup_id: int,
    target_shift_id: int,
    note: Optional[str] = None,
    policy: Optional[WaitlistPolicy] = None,
    sink: Optional[NotificationSink] = None,
) -> Signup:
    """Move a signup to another shift and confirm it there (admin action)."""
    policy = policy or get_waitlist_policy()

    with transaction(db):
        row = _require_signup_row(db, signup_id)
        source = require_shift(db, row["shift_id"])
        target = get_shift(db, target_shift_id)
        if target is None:
            raise NotFound(f"Target shift {target_shift_id} not found")

        if not check_capacity(get_confirmed_count(db, target.id), target.capacity).allowed:
            raise CapacityExceeded("Target shift is at full capacity")

        canceled = ensure_not_signed_up(db, row["user_id"], target.id)
        ensure_day_is_free(db, row["user_id"], target.start, exclude_signup_id=signup_id)
        if canceled is not None:
            db.execute("DELETE FROM signups WHERE id = ?", (canceled["id"],))

        try:
            db.execute(
                """
                UPDATE signups
                SET shift_id = ?, status = 'CONFIRMED', civil_day = ?, note = COALESCE(?, note)
                WHERE id = ?
                """,
                (target.id, clock.civil_day(target.start).isoformat(), note, signup_id),
            )
        except sqlite3.IntegrityError as exc:
            raise_for_integrity_error(
                db, exc, row["user_id"], target.id, target.start, exclude_signup_id=signup_id
            )

        promoted = None
        if row["status"] == "CONFIRMED":
            promoted = _promote_waitlist(db, source, policy)

    logger.info("Moved signup %s from shift %s to %s", signup_id, source.id, target.id)
    emit_safely(
        sink,
        row["user_id"],
        "SHIFT_MOVED",
        "You've been moved to a different shift",
        f"You've been moved from {source.shift_type_name} to {target.shift_type_name} "
        f"on {clock.format_civil(target.start, '%a %d %b %Y')} at {target.location}",
        related_id=target.id,
    )
    _notify_promoted(sink, promoted, source)
    return get_signup(db, signup_id)


def cancel_signup(
    db: sqlite3.Connection,
    signup_id: int,
    now: Optional[datetime] = None,
    policy: Optional[WaitlistPolicy] = None,
    sink: Optional[NotificationSink] = None,
) -> Signup:
    """Cancel a signup; a freed CONFIRMED place goes to the waitlist policy."""
    now = now or clock.utcnow()
    policy = policy or get_waitlist_policy()

    with transaction(db):
        row = _require_signup_row(db, signup_id)
        shift = require_shift(db, row["shift_id"])
        if shift.end < now:
            raise ValidationFailed("Cannot cancel past shifts")
        if row["status"] == "CANCELED":
            raise Conflict("Signup is already canceled")

        db.execute(
            "UPDATE signups SET status = 'CANCELED', canceled_at = ? WHERE id = ?",
            (clock.to_db(now), signup_id),
        )
        promoted = None
        if row["status"] == "CONFIRMED":
            promoted = _promote_waitlist(db, shift, policy)

    _notify_promoted(sink, promoted, shift)
    return get_signup(db, signup_id)


def confirm_signup(
    db: sqlite3.Connection, signup_id: int, sink: Optional[NotificationSink] = None
) -> Signup:
    """Confirm a pending or waitlisted signup (admin action)."""
    with transaction(db):
        row = _require_signup_row(db, signup_id)
        if row["status"] not in ("PENDING", "WAITLISTED", "REGULAR_PENDING"):
            raise Conflict(f"Cannot confirm a {row['status'].lower()} signup")
        shift = require_shift(db, row["shift_id"])
        if not check_capacity(get_confirmed_count(db, shift.id), shift.capacity).allowed:
            raise CapacityExceeded("Shift is at full capacity")
        ensure_day_is_free(db, row["user_id"], shift.start, exclude_signup_id=signup_id)
        try:
            db.execute("UPDATE signups SET status = 'CONFIRMED' WHERE id = ?", (signup_id,))
        except sqlite3.IntegrityError as exc:
            raise_for_integrity_error(
                db, exc, row["user_id"], shift.id, shift.start, exclude_signup_id=signup_id
            )

    emit_safely(
        sink,
        row["user_id"],
        "SIGNUP_CREATED",
        "Shift confirmed",
        f"{shift.shift_type_name} on {clock.format_civil(shift.start)} at {shift.location} is confirmed.",
        related_id=signup_id,
    )
    return get_signup(db, signup_id)


def mark_no_show(db: sqlite3.Connection, signup_id: int, now: Optional[datetime] = None) -> Signup:
    """Record that a confirmed volunteer did not turn up (admin action)."""
    now = now or clock.utcnow()
    with transaction(db):
        row = _require_signup_row(db, signup_id)
        if row["status"] != "CONFIRMED":
            raise Conflict("Only confirmed signups can be marked as no-show")
        shift = require_shift(db, row["shift_id"])
        if shift.start > now:
            raise ValidationFailed("Shift has not started yet")
        db.execute("UPDATE signups SET status = 'NO_SHOW' WHERE id = ?", (signup_id,))
    return get_signup(db, signup_id)
