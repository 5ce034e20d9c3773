"""Shift routes: day listing, shift detail and volunteer signups."""

from __future__ import annotations

import sqlite3
from typing import Literal, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from volunteer_portal import clock
from volunteer_portal.models.shift import Shift, get_shifts_for_day, require_shift
from volunteer_portal.models.signup import Signup, create_signup, get_signups_by_shift
from volunteer_portal.notifications.sender import NotificationSink
from volunteer_portal.routes.deps import get_db, get_sink
from volunteer_portal.rules.queries import get_confirmed_count

router = APIRouter(prefix="/api/shifts", tags=["shifts"])


# ---------------------------------------------------------------------------
# Request / response schemas
# ---------------------------------------------------------------------------

class ShiftSummary(BaseModel):
    shift: Shift
    confirmed: int
    spots_left: int


class SignupRequest(BaseModel):
    user_id: int
    status: Literal["CONFIRMED", "PENDING"] = "CONFIRMED"
    note: Optional[str] = None


def _summarize(db: sqlite3.Connection, shift: Shift) -> ShiftSummary:
    confirmed = get_confirmed_count(db, shift.id)
    return ShiftSummary(
        shift=shift, confirmed=confirmed, spots_left=max(shift.capacity - confirmed, 0)
    )


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

@router.get("", response_model=list[ShiftSummary])
def list_shifts(
    day: str = Query(..., description="YYYY-MM-DD civil date"),
    location: Optional[str] = None,
    db: sqlite3.Connection = Depends(get_db),
):
    """Return the shifts starting on a civil day with their fill level."""
    shifts = get_shifts_for_day(db, clock.parse_civil_date(day), location)
    return [_summarize(db, s) for s in shifts]


@router.get("/{shift_id}", response_model=ShiftSummary)
def get_shift_detail(shift_id: int, db: sqlite3.Connection = Depends(get_db)):
    return _summarize(db, require_shift(db, shift_id))


@router.get("/{shift_id}/signups", response_model=list[Signup])
def list_shift_signups(shift_id: int, db: sqlite3.Connection = Depends(get_db)):
    require_shift(db, shift_id)
    return get_signups_by_shift(db, shift_id)


@router.post("/{shift_id}/signups", status_code=201, response_model=Signup)
def post_signup(
    shift_id: int,
    body: SignupRequest,
    db: sqlite3.Connection = Depends(get_db),
    sink: NotificationSink = Depends(get_sink),
):
    """Sign a volunteer up; a full shift puts them on the waitlist."""
    return create_signup(db, body.user_id, shift_id, body.status, body.note, sink=sink)
