"""Admin routes: shift management, signup moves, catalogue and survey admin.

Authorization is handled in front of the application; these routes are
only separated by prefix.
"""

from __future__ import annotations

import sqlite3
from typing import Literal, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from volunteer_portal import clock
from volunteer_portal.errors import NotFound
from volunteer_portal.models.achievement import Achievement, AchievementCreate, create_achievement, delete_achievement
from volunteer_portal.models.group_booking import GroupBooking, GroupBookingCreate, create_group_booking
from volunteer_portal.models.location import (
    Location,
    MealsServedRecord,
    list_locations,
    record_meals_served,
    upsert_location,
)
from volunteer_portal.models.shift import (
    DeleteShiftsResult,
    Shift,
    ShiftCreate,
    ShiftUpdate,
    create_shift,
    create_shift_type,
    delete_shift,
    delete_shifts_by_day_location,
    update_shift,
)
from volunteer_portal.models.signup import Signup, confirm_signup, mark_no_show, move_signup
from volunteer_portal.models.survey import (
    Survey,
    SurveyCreate,
    SurveyResponse,
    create_survey,
    get_survey,
    get_survey_responses,
    list_surveys,
    set_survey_active,
)
from volunteer_portal.models.user import delete_user
from volunteer_portal.notifications.sender import NotificationSink
from volunteer_portal.routes.deps import get_db, get_sink
from volunteer_portal.surveys.triggers import (
    AssignResult,
    EligibilityResult,
    find_eligible_users_for_survey,
    manually_assign_survey,
)

router = APIRouter(prefix="/api/admin", tags=["admin"])


# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------

class ShiftTypeRequest(BaseModel):
    name: str
    description: Optional[str] = None


class LocationRequest(BaseModel):
    name: str
    default_meals_served: int = 0


class MoveRequest(BaseModel):
    target_shift_id: int
    note: Optional[str] = None


class AssignRequest(BaseModel):
    user_ids: list[int]


class SurveyStatusRequest(BaseModel):
    is_active: bool


# ---------------------------------------------------------------------------
# Shifts
# ---------------------------------------------------------------------------

@router.post("/shift-types", status_code=201)
def post_shift_type(body: ShiftTypeRequest, db: sqlite3.Connection = Depends(get_db)):
    return {"id": create_shift_type(db, body.name, body.description)}


@router.get("/locations", response_model=list[Location])
def read_locations(db: sqlite3.Connection = Depends(get_db)):
    return list_locations(db)


@router.post("/locations", status_code=201, response_model=Location)
def post_location(body: LocationRequest, db: sqlite3.Connection = Depends(get_db)):
    return upsert_location(db, body.name, body.default_meals_served)


@router.post("/meals-served", status_code=204)
def post_meals_served(body: MealsServedRecord, db: sqlite3.Connection = Depends(get_db)):
    record_meals_served(db, body)


@router.post("/shifts", status_code=201, response_model=Shift)
def post_shift(body: ShiftCreate, db: sqlite3.Connection = Depends(get_db)):
    return create_shift(db, body)


@router.patch("/shifts/{shift_id}", response_model=Shift)
def patch_shift(shift_id: int, body: ShiftUpdate, db: sqlite3.Connection = Depends(get_db)):
    return update_shift(db, shift_id, body)


@router.delete("/shifts/{shift_id}", status_code=204)
def remove_shift(shift_id: int, db: sqlite3.Connection = Depends(get_db)):
    delete_shift(db, shift_id)


@router.delete("/shifts", response_model=DeleteShiftsResult)
def remove_shifts_for_day(
    day: str = Query(..., description="YYYY-MM-DD civil date"),
    location: str = Query(...),
    db: sqlite3.Connection = Depends(get_db),
):
    """Delete every shift at a location on a civil day."""
    return delete_shifts_by_day_location(db, clock.parse_civil_date(day), location)


# ---------------------------------------------------------------------------
# Signups
# ---------------------------------------------------------------------------

@router.post("/signups/{signup_id}/move", response_model=Signup)
def post_move(
    signup_id: int,
    body: MoveRequest,
    db: sqlite3.Connection = Depends(get_db),
    sink: NotificationSink = Depends(get_sink),
):
    return move_signup(db, signup_id, body.target_shift_id, body.note, sink=sink)


@router.post("/signups/{signup_id}/confirm", response_model=Signup)
def post_confirm(
    signup_id: int,
    db: sqlite3.Connection = Depends(get_db),
    sink: NotificationSink = Depends(get_sink),
):
    return confirm_signup(db, signup_id, sink=sink)


@router.post("/signups/{signup_id}/no-show", response_model=Signup)
def post_no_show(signup_id: int, db: sqlite3.Connection = Depends(get_db)):
    return mark_no_show(db, signup_id)


@router.post("/group-bookings", status_code=201, response_model=GroupBooking)
def post_group_booking(
    body: GroupBookingCreate,
    db: sqlite3.Connection = Depends(get_db),
    sink: NotificationSink = Depends(get_sink),
):
    return create_group_booking(db, body, sink=sink)


# ---------------------------------------------------------------------------
# Achievements
# ---------------------------------------------------------------------------

@router.post("/achievements", status_code=201, response_model=Achievement)
def post_achievement(body: AchievementCreate, db: sqlite3.Connection = Depends(get_db)):
    return create_achievement(db, body)


@router.delete("/achievements/{achievement_id}")
def remove_achievement(achievement_id: int, db: sqlite3.Connection = Depends(get_db)):
    """Hard-delete an unused achievement, or deactivate one already earned."""
    outcome: Literal["deactivated", "deleted"] = delete_achievement(db, achievement_id)
    return {"result": outcome}


# ---------------------------------------------------------------------------
# Surveys
# ---------------------------------------------------------------------------

@router.get("/surveys", response_model=list[Survey])
def read_surveys(active_only: bool = False, db: sqlite3.Connection = Depends(get_db)):
    return list_surveys(db, active_only)


@router.post("/surveys", status_code=201, response_model=Survey)
def post_survey(body: SurveyCreate, db: sqlite3.Connection = Depends(get_db)):
    return create_survey(db, body)


@router.patch("/surveys/{survey_id}", response_model=Survey)
def patch_survey(survey_id: int, body: SurveyStatusRequest, db: sqlite3.Connection = Depends(get_db)):
    return set_survey_active(db, survey_id, body.is_active)


@router.post("/surveys/{survey_id}/assign", response_model=AssignResult)
def post_assign(
    survey_id: int,
    body: AssignRequest,
    db: sqlite3.Connection = Depends(get_db),
    sink: NotificationSink = Depends(get_sink),
):
    return manually_assign_survey(db, survey_id, body.user_ids, sink=sink)


@router.get("/surveys/{survey_id}/eligible", response_model=EligibilityResult)
def read_eligible(survey_id: int, db: sqlite3.Connection = Depends(get_db)):
    return find_eligible_users_for_survey(db, survey_id)


@router.post("/surveys/{survey_id}/bulk-assign", response_model=AssignResult)
def post_bulk_assign(
    survey_id: int,
    db: sqlite3.Connection = Depends(get_db),
    sink: NotificationSink = Depends(get_sink),
):
    """Assign the survey to everyone the eligibility preview finds."""
    eligible = find_eligible_users_for_survey(db, survey_id)
    return manually_assign_survey(db, survey_id, eligible.eligible_user_ids, sink=sink)


@router.get("/surveys/{survey_id}/responses", response_model=list[SurveyResponse])
def list_responses(survey_id: int, db: sqlite3.Connection = Depends(get_db)):
    if get_survey(db, survey_id) is None:
        raise NotFound(f"Survey {survey_id} not found")
    return get_survey_responses(db, survey_id)


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------

@router.delete("/users/{user_id}")
def remove_user(user_id: int, db: sqlite3.Connection = Depends(get_db)):
    return {"deleted": delete_user(db, user_id)}
