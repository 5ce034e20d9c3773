"""Signup route handlers for volunteers acting on their own signups."""

from __future__ import annotations

import sqlite3

from fastapi import APIRouter, Depends

from volunteer_portal.errors import NotFound
from volunteer_portal.models.signup import Signup, cancel_signup, get_signup
from volunteer_portal.notifications.sender import NotificationSink
from volunteer_portal.routes.deps import get_db, get_sink

router = APIRouter(prefix="/api/signups", tags=["signups"])


@router.get("/{signup_id}", response_model=Signup)
def read_signup(signup_id: int, db: sqlite3.Connection = Depends(get_db)):
    signup = get_signup(db, signup_id)
    if signup is None:
        raise NotFound(f"Signup {signup_id} not found")
    return signup


@router.post("/{signup_id}/cancel", response_model=Signup)
def post_cancel(
    signup_id: int,
    db: sqlite3.Connection = Depends(get_db),
    sink: NotificationSink = Depends(get_sink),
):
    """Cancel a signup; a freed place may go to the waitlist."""
    return cancel_signup(db, signup_id, sink=sink)
