"""Achievement catalogue routes."""

from __future__ import annotations

import sqlite3

from fastapi import APIRouter, Depends

from volunteer_portal.models.achievement import Achievement, list_achievements
from volunteer_portal.routes.deps import get_db

router = APIRouter(prefix="/api/achievements", tags=["achievements"])


@router.get("", response_model=list[Achievement])
def list_catalogue(include_inactive: bool = False, db: sqlite3.Connection = Depends(get_db)):
    return list_achievements(db, active_only=not include_inactive)
