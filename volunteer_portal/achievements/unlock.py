"""Idempotent achievement unlocking.

``check_and_unlock_achievements`` may run on every signup, login or
dashboard load. Unlocks are written with ``INSERT OR IGNORE`` against the
``(user_id, achievement_id)`` unique key, so two overlapping calls can never
record the same unlock twice, and each call reports only the rows it wrote.
"""

from __future__ import annotations

import logging
import sqlite3
from datetime import datetime
from typing import Optional

from volunteer_portal import clock
from volunteer_portal.achievements.criteria import parse_criteria
from volunteer_portal.achievements.progress import calculate_user_progress
from volunteer_portal.db import transaction
from volunteer_portal.errors import NotFound, ValidationFailed
from volunteer_portal.models.achievement import Achievement, get_available_achievements
from volunteer_portal.notifications.sender import NotificationSink, emit_safely

logger = logging.getLogger(__name__)


def check_and_unlock_achievements(
    db: sqlite3.Connection,
    user_id: int,
    now: Optional[datetime] = None,
    sink: Optional[NotificationSink] = None,
) -> list[Achievement]:
    """Unlock every achievement the user now qualifies for.

    Returns the achievements newly unlocked by this call (empty when there
    is nothing new). An achievement whose criteria cannot be evaluated is
    logged and skipped without affecting the others.
    """
    now = now or clock.utcnow()
    unlocked: list[Achievement] = []

    with transaction(db):
        if db.execute("SELECT 1 FROM users WHERE id = ?", (user_id,)).fetchone() is None:
            raise NotFound(f"User {user_id} not found")

        progress = calculate_user_progress(db, user_id, now)

        for achievement in get_available_achievements(db, user_id):
            try:
                criteria = parse_criteria(achievement.criteria)
                met = criteria.is_met(progress)
            except ValidationFailed as exc:
                logger.warning("Skipping achievement %s: %s", achievement.name, exc.message)
                continue
            except Exception:
                logger.exception("Error evaluating achievement %s", achievement.name)
                continue

            if not met:
                continue

            cursor = db.execute(
                """
                INSERT OR IGNORE INTO user_achievements (user_id, achievement_id, unlocked_at, progress)
                VALUES (?, ?, ?, ?)
                """,
                (user_id, achievement.id, clock.to_db(now), criteria.progress_value(progress)),
            )
            if cursor.rowcount == 1:
                unlocked.append(achievement)

    for achievement in unlocked:
        emit_safely(
            sink,
            user_id,
            "ACHIEVEMENT_UNLOCKED",
            "Achievement unlocked!",
            f"You earned \"{achievement.name}\" (+{achievement.points} points).",
            related_id=achievement.id,
        )
    if unlocked:
        logger.info("User %s unlocked %d achievement(s)", user_id, len(unlocked))
    return unlocked
