"""Achievement catalogue and per-user unlock records."""

from __future__ import annotations

import sqlite3
from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel

from volunteer_portal.achievements.criteria import AchievementCriteria, dump_criteria
from volunteer_portal.db import transaction
from volunteer_portal.errors import NotFound

AchievementCategory = Literal["MILESTONE", "DEDICATION", "SPECIALIZATION", "COMMUNITY", "IMPACT"]


# ---------------------------------------------------------------------------
# Pydantic models
# ---------------------------------------------------------------------------

class AchievementCreate(BaseModel):
    name: str
    description: str = ""
    category: AchievementCategory
    icon: Optional[str] = None
    criteria: AchievementCriteria
    points: int = 0
    is_active: bool = True


class Achievement(BaseModel):
    id: int
    name: str
    description: str
    category: str
    icon: Optional[str]
    criteria: str
    points: int
    is_active: bool
    created_at: datetime


class UserAchievement(BaseModel):
    id: int
    user_id: int
    unlocked_at: datetime
    progress: float
    achievement: Achievement


# ---------------------------------------------------------------------------
# CRUD helpers
# ---------------------------------------------------------------------------

def _row_to_achievement(row: sqlite3.Row) -> Achievement:
    return Achievement(
        id=row["id"],
        name=row["name"],
        description=row["description"],
        category=row["category"],
        icon=row["icon"],
        criteria=row["criteria"],
        points=row["points"],
        is_active=bool(row["is_active"]),
        created_at=row["created_at"],
    )


def create_achievement(db: sqlite3.Connection, data: AchievementCreate) -> Achievement:
    with transaction(db):
        cursor = db.execute(
            """
            INSERT INTO achievements (name, description, category, icon, criteria, points, is_active)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (
                data.name,
                data.description,
                data.category,
                data.icon,
                dump_criteria(data.criteria),
                data.points,
                data.is_active,
            ),
        )
    return get_achievement(db, cursor.lastrowid)


def get_achievement(db: sqlite3.Connection, achievement_id: int) -> Optional[Achievement]:
    row = db.execute("SELECT * FROM achievements WHERE id = ?", (achievement_id,)).fetchone()
    if row is None:
        return None
    return _row_to_achievement(row)


def delete_achievement(db: sqlite3.Connection, achievement_id: int) -> Literal["deactivated", "deleted"]:
    """Remove an achievement from the catalogue.

    Achievements somebody has unlocked are only deactivated so their unlock
    history stays intact.
    """
    with transaction(db):
        if get_achievement(db, achievement_id) is None:
            raise NotFound(f"Achievement {achievement_id} not found")
        unlocks = db.execute(
            "SELECT COUNT(*) AS cnt FROM user_achievements WHERE achievement_id = ?",
            (achievement_id,),
        ).fetchone()["cnt"]
        if unlocks:
            db.execute("UPDATE achievements SET is_active = 0 WHERE id = ?", (achievement_id,))
            return "deactivated"
        db.execute("DELETE FROM achievements WHERE id = ?", (achievement_id,))
        return "deleted"


def get_user_achievements(db: sqlite3.Connection, user_id: int) -> list[UserAchievement]:
    """Return a user's unlocked achievements, most recent first."""
    rows = db.execute(
        """
        SELECT ua.id AS ua_id, ua.user_id, ua.unlocked_at, ua.progress, a.*
        FROM user_achievements ua
        JOIN achievements a ON a.id = ua.achievement_id
        WHERE ua.user_id = ?
        ORDER BY ua.unlocked_at DESC, ua.id DESC
        """,
        (user_id,),
    ).fetchall()
    return [
        UserAchievement(
            id=r["ua_id"],
            user_id=r["user_id"],
            unlocked_at=r["unlocked_at"],
            progress=r["progress"],
            achievement=_row_to_achievement(r),
        )
        for r in rows
    ]


def get_available_achievements(db: sqlite3.Connection, user_id: int) -> list[Achievement]:
    """Active achievements the user has not unlocked yet, cheapest first."""
    rows = db.execute(
        """
        SELECT a.* FROM achievements a
        WHERE a.is_active = 1
          AND NOT EXISTS (
              SELECT 1 FROM user_achievements ua
              WHERE ua.achievement_id = a.id AND ua.user_id = ?
          )
        ORDER BY a.points, a.id
        """,
        (user_id,),
    ).fetchall()
    return [_row_to_achievement(r) for r in rows]


def list_achievements(db: sqlite3.Connection, active_only: bool = True) -> list[Achievement]:
    sql = "SELECT * FROM achievements"
    if active_only:
        sql += " WHERE is_active = 1"
    rows = db.execute(sql + " ORDER BY category, points, id").fetchall()
    return [_row_to_achievement(r) for r in rows]
