"""User routes: profile, signups, progress, achievements and pending surveys."""

from __future__ import annotations

import sqlite3

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from volunteer_portal.achievements.progress import UserProgress, calculate_user_progress
from volunteer_portal.achievements.unlock import check_and_unlock_achievements
from volunteer_portal.errors import NotFound
from volunteer_portal.models.achievement import (
    Achievement,
    UserAchievement,
    get_available_achievements,
    get_user_achievements,
)
from volunteer_portal.models.notification import Notification, list_notifications_by_user
from volunteer_portal.models.signup import Signup, get_signups_by_user
from volunteer_portal.models.survey import PendingSurvey, get_pending_surveys
from volunteer_portal.models.user import User, UserCreate, add_friendship, create_user, get_user
from volunteer_portal.notifications.sender import NotificationSink
from volunteer_portal.routes.deps import get_db, get_sink
from volunteer_portal.surveys.triggers import evaluate_survey_triggers

router = APIRouter(prefix="/api/users", tags=["users"])


class FriendRequest(BaseModel):
    friend_id: int


class RefreshResult(BaseModel):
    unlocked: list[Achievement]
    surveys_assigned: int


def _require_user(db: sqlite3.Connection, user_id: int) -> User:
    user = get_user(db, user_id)
    if user is None:
        raise NotFound(f"User {user_id} not found")
    return user


@router.post("", status_code=201, response_model=User)
def post_user(body: UserCreate, db: sqlite3.Connection = Depends(get_db)):
    return create_user(db, body)


@router.get("/{user_id}", response_model=User)
def read_user(user_id: int, db: sqlite3.Connection = Depends(get_db)):
    return _require_user(db, user_id)


@router.get("/{user_id}/signups", response_model=list[Signup])
def list_user_signups(user_id: int, db: sqlite3.Connection = Depends(get_db)):
    _require_user(db, user_id)
    return get_signups_by_user(db, user_id)


@router.post("/{user_id}/friends", status_code=204)
def post_friend(user_id: int, body: FriendRequest, db: sqlite3.Connection = Depends(get_db)):
    _require_user(db, user_id)
    _require_user(db, body.friend_id)
    add_friendship(db, user_id, body.friend_id)


@router.get("/{user_id}/progress", response_model=UserProgress)
def read_progress(user_id: int, db: sqlite3.Connection = Depends(get_db)):
    _require_user(db, user_id)
    return calculate_user_progress(db, user_id)


@router.get("/{user_id}/achievements", response_model=list[UserAchievement])
def list_unlocked(user_id: int, db: sqlite3.Connection = Depends(get_db)):
    _require_user(db, user_id)
    return get_user_achievements(db, user_id)


@router.get("/{user_id}/achievements/available", response_model=list[Achievement])
def list_available(user_id: int, db: sqlite3.Connection = Depends(get_db)):
    _require_user(db, user_id)
    return get_available_achievements(db, user_id)


@router.post("/{user_id}/refresh", response_model=RefreshResult)
def post_refresh(
    user_id: int,
    db: sqlite3.Connection = Depends(get_db),
    sink: NotificationSink = Depends(get_sink),
):
    """Unlock newly earned achievements, then run the survey triggers."""
    unlocked = check_and_unlock_achievements(db, user_id, sink=sink)
    assigned = evaluate_survey_triggers(db, user_id, sink=sink)
    return RefreshResult(unlocked=unlocked, surveys_assigned=len(assigned))


@router.get("/{user_id}/surveys/pending", response_model=list[PendingSurvey])
def list_pending_surveys(user_id: int, db: sqlite3.Connection = Depends(get_db)):
    _require_user(db, user_id)
    return get_pending_surveys(db, user_id)


@router.get("/{user_id}/notifications", response_model=list[Notification])
def list_notifications(user_id: int, db: sqlite3.Connection = Depends(get_db)):
    _require_user(db, user_id)
    return list_notifications_by_user(db, user_id)
