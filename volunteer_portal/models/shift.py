"""Shift domain model: Pydantic schemas, CRUD functions, and admin bulk deletes."""

from __future__ import annotations

import logging
import sqlite3
from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, Field, model_validator

from volunteer_portal import clock
from volunteer_portal.db import transaction
from volunteer_portal.errors import (
    CapacityExceeded,
    DailyDoubleBooking,
    NotFound,
    ShiftNotFound,
    ValidationFailed,
)
from volunteer_portal.rules.queries import get_confirmed_count

logger = logging.getLogger(__name__)

# Signup statuses that still hold (or wait for) a place on a shift.
ACTIVE_STATUSES = ("CONFIRMED", "PENDING", "WAITLISTED", "REGULAR_PENDING")


# ---------------------------------------------------------------------------
# Pydantic models
# ---------------------------------------------------------------------------

class ShiftCreate(BaseModel):
    shift_type_id: int
    location: str
    start: datetime
    end: datetime
    capacity: int = Field(ge=0)
    notes: Optional[str] = None

    @model_validator(mode="after")
    def _window_is_ordered(self) -> "ShiftCreate":
        if self.start.tzinfo is None or self.end.tzinfo is None:
            raise ValueError("start and end must carry a timezone offset")
        if self.start >= self.end:
            raise ValueError("start must be before end")
        return self


class ShiftUpdate(BaseModel):
    location: Optional[str] = None
    start: Optional[datetime] = None
    end: Optional[datetime] = None
    capacity: Optional[int] = Field(default=None, ge=0)
    notes: Optional[str] = None

    @model_validator(mode="after")
    def _times_are_aware(self) -> "ShiftUpdate":
        for value in (self.start, self.end):
            if value is not None and value.tzinfo is None:
                raise ValueError("start and end must carry a timezone offset")
        return self


class Shift(BaseModel):
    id: int
    shift_type_id: int
    shift_type_name: str
    location: str
    start: datetime
    end: datetime
    capacity: int
    notes: Optional[str]
    created_at: datetime

    @property
    def hours(self) -> float:
        return (self.end - self.start).total_seconds() / 3600


class DeleteShiftsResult(BaseModel):
    deleted_count: int
    affected_volunteers: int


# ---------------------------------------------------------------------------
# CRUD
# ---------------------------------------------------------------------------

SHIFT_SELECT = """
    SELECT sh.*, st.name AS shift_type_name
    FROM shifts sh
    JOIN shift_types st ON st.id = sh.shift_type_id
"""


def _row_to_shift(row: sqlite3.Row) -> Shift:
    """Convert a sqlite3.Row into a Shift model."""
    return Shift(
        id=row["id"],
        shift_type_id=row["shift_type_id"],
        shift_type_name=row["shift_type_name"],
        location=row["location"],
        start=clock.from_db(row["starts_at"]),
        end=clock.from_db(row["ends_at"]),
        capacity=row["capacity"],
        notes=row["notes"],
        created_at=row["created_at"],
    )


def create_shift_type(db: sqlite3.Connection, name: str, description: Optional[str] = None) -> int:
    """Insert a shift type (or return the existing one with that name)."""
    with transaction(db):
        db.execute(
            "INSERT OR IGNORE INTO shift_types (name, description) VALUES (?, ?)",
            (name, description),
        )
        row = db.execute("SELECT id FROM shift_types WHERE name = ?", (name,)).fetchone()
    return row["id"]


def create_shift(db: sqlite3.Connection, data: ShiftCreate) -> Shift:
    """Insert a new shift and return it."""
    with transaction(db):
        cursor = db.execute(
            """
            INSERT INTO shifts (shift_type_id, location, starts_at, ends_at, capacity, notes)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (
                data.shift_type_id,
                data.location,
                clock.to_db(data.start),
                clock.to_db(data.end),
                data.capacity,
                data.notes,
            ),
        )
    return get_shift(db, cursor.lastrowid)


def get_shift(db: sqlite3.Connection, shift_id: int) -> Optional[Shift]:
    row = db.execute(f"{SHIFT_SELECT} WHERE sh.id = ?", (shift_id,)).fetchone()
    if row is None:
        return None
    return _row_to_shift(row)


def require_shift(db: sqlite3.Connection, shift_id: int) -> Shift:
    shift = get_shift(db, shift_id)
    if shift is None:
        raise ShiftNotFound(f"Shift {shift_id} not found")
    return shift


def get_shifts_for_day(
    db: sqlite3.Connection, day: date, location: Optional[str] = None
) -> list[Shift]:
    """Return shifts starting on a civil day, optionally at one location."""
    start, end = clock.day_bounds(day)
    params: list = [clock.to_db(start), clock.to_db(end)]
    sql = f"{SHIFT_SELECT} WHERE sh.starts_at >= ? AND sh.starts_at < ?"
    if location is not None:
        sql += " AND sh.location = ?"
        params.append(location)
    rows = db.execute(sql + " ORDER BY sh.starts_at, sh.id", params).fetchall()
    return [_row_to_shift(r) for r in rows]


def update_shift(db: sqlite3.Connection, shift_id: int, data: ShiftUpdate) -> Shift:
    """Apply an admin edit to a shift.

    The stored civil day of every signup follows the shift's new start; a
    move that puts a volunteer on two CONFIRMED shifts in one day is refused.
    """
    with transaction(db):
        current = require_shift(db, shift_id)
        start = data.start or current.start
        end = data.end or current.end
        capacity = current.capacity if data.capacity is None else data.capacity
        if start >= end:
            raise ValidationFailed("Shift start must be before its end")

        confirmed = get_confirmed_count(db, shift_id)
        if capacity < confirmed:
            raise CapacityExceeded(
                f"Shift has {confirmed} confirmed volunteers; capacity cannot drop to {capacity}"
            )

        db.execute(
            """
            UPDATE shifts
            SET location = ?, starts_at = ?, ends_at = ?, capacity = ?, notes = ?
            WHERE id = ?
            """,
            (
                data.location or current.location,
                clock.to_db(start),
                clock.to_db(end),
                capacity,
                data.notes if data.notes is not None else current.notes,
                shift_id,
            ),
        )
        try:
            db.execute(
                "UPDATE signups SET civil_day = ? WHERE shift_id = ?",
                (clock.civil_day(start).isoformat(), shift_id),
            )
        except sqlite3.IntegrityError:
            raise DailyDoubleBooking(
                "Moving this shift would give a volunteer two confirmed shifts on one day"
            ) from None
    return require_shift(db, shift_id)


def _delete_shift_ids(db: sqlite3.Connection, shift_ids: list[int]) -> None:
    """Delete signups, then group bookings, then the shifts themselves."""
    placeholders = ", ".join("?" for _ in shift_ids)
    db.execute(f"DELETE FROM signups WHERE shift_id IN ({placeholders})", shift_ids)
    db.execute(f"DELETE FROM group_bookings WHERE shift_id IN ({placeholders})", shift_ids)
    db.execute(f"DELETE FROM shifts WHERE id IN ({placeholders})", shift_ids)


def delete_shift(db: sqlite3.Connection, shift_id: int) -> None:
    """Delete one shift together with its signups and group bookings."""
    with transaction(db):
        require_shift(db, shift_id)
        _delete_shift_ids(db, [shift_id])


def delete_shifts_by_day_location(
    db: sqlite3.Connection, day: date, location: str
) -> DeleteShiftsResult:
    """Delete every shift at ``location`` starting on the civil ``day``.

    Active signups on those shifts are counted as affected volunteers before
    everything is removed in one transaction.
    """
    with transaction(db):
        shifts = get_shifts_for_day(db, day, location)
        if not shifts:
            raise NotFound(f"No shifts found for {day.isoformat()} at {location}")

        shift_ids = [s.id for s in shifts]
        placeholders = ", ".join("?" for _ in shift_ids)
        status_placeholders = ", ".join("?" for _ in ACTIVE_STATUSES)
        row = db.execute(
            f"""
            SELECT COUNT(DISTINCT user_id) AS cnt FROM signups
            WHERE shift_id IN ({placeholders}) AND status IN ({status_placeholders})
            """,
            (*shift_ids, *ACTIVE_STATUSES),
        ).fetchone()

        _delete_shift_ids(db, shift_ids)

    logger.info(
        "Deleted %d shifts at %s on %s", len(shift_ids), location, day.isoformat(),
        extra={"affected_volunteers": row["cnt"]},
    )
    return DeleteShiftsResult(deleted_count=len(shift_ids), affected_volunteers=row["cnt"])
