"""Group bookings: a leader reserves a block of places on one shift."""

from __future__ import annotations

import sqlite3
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from volunteer_portal import clock
from volunteer_portal.db import transaction
from volunteer_portal.errors import CapacityExceeded, DailyDoubleBooking, NotFound, PortalError
from volunteer_portal.models.shift import require_shift
from volunteer_portal.models.signup import Signup, _row_to_signup, book_place
from volunteer_portal.notifications.sender import NotificationSink, emit_safely
from volunteer_portal.rules.pure import check_block_capacity
from volunteer_portal.rules.queries import get_confirmed_count


class GroupBookingCreate(BaseModel):
    leader_id: int
    shift_id: int
    name: str
    member_ids: list[int] = Field(default_factory=list)


class GroupBooking(BaseModel):
    id: int
    shift_id: int
    leader_id: int
    name: str
    created_at: datetime
    signups: list[Signup]


def get_group_booking(db: sqlite3.Connection, booking_id: int) -> Optional[GroupBooking]:
    row = db.execute("SELECT * FROM group_bookings WHERE id = ?", (booking_id,)).fetchone()
    if row is None:
        return None
    signups = db.execute(
        "SELECT * FROM signups WHERE group_booking_id = ? ORDER BY id", (booking_id,)
    ).fetchall()
    return GroupBooking(
        id=row["id"],
        shift_id=row["shift_id"],
        leader_id=row["leader_id"],
        name=row["name"],
        created_at=row["created_at"],
        signups=[_row_to_signup(s) for s in signups],
    )


def create_group_booking(
    db: sqlite3.Connection,
    data: GroupBookingCreate,
    sink: Optional[NotificationSink] = None,
) -> GroupBooking:
    """Book the leader and every member onto a shift as CONFIRMED.

    The whole block must fit in the shift's remaining capacity; any member
    who cannot be booked fails the booking with no rows left behind.
    """
    member_ids = list(dict.fromkeys([data.leader_id, *data.member_ids]))

    with transaction(db):
        shift = require_shift(db, data.shift_id)
        if db.execute("SELECT 1 FROM users WHERE id = ?", (data.leader_id,)).fetchone() is None:
            raise NotFound(f"User {data.leader_id} not found")

        fits = check_block_capacity(
            get_confirmed_count(db, shift.id), shift.capacity, len(member_ids)
        )
        if not fits.allowed:
            raise CapacityExceeded(fits.reason)

        cursor = db.execute(
            "INSERT INTO group_bookings (shift_id, leader_id, name) VALUES (?, ?, ?)",
            (shift.id, data.leader_id, data.name),
        )
        booking_id = cursor.lastrowid

        for user_id in member_ids:
            try:
                book_place(db, user_id, shift, "CONFIRMED", group_booking_id=booking_id)
            except DailyDoubleBooking as exc:
                raise DailyDoubleBooking(
                    f"User {user_id}: {exc.message}", exc.conflicting_shift_id
                ) from exc
            except PortalError as exc:
                raise type(exc)(f"User {user_id}: {exc.message}") from exc

    for user_id in member_ids:
        emit_safely(
            sink,
            user_id,
            "SIGNUP_CREATED",
            f"Group booking: {data.name}",
            f"You're booked on {shift.shift_type_name}, {clock.format_civil(shift.start)} at {shift.location}.",
            related_id=booking_id,
        )
    return get_group_booking(db, booking_id)
