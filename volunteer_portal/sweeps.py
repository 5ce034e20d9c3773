"""Periodic sweeps: progress recompute after shifts end, survey expiry."""

from __future__ import annotations

import logging
import os
import sqlite3
from datetime import datetime, timedelta
from typing import Optional

from apscheduler.schedulers.base import BaseScheduler

from volunteer_portal import clock
from volunteer_portal.achievements.unlock import check_and_unlock_achievements
from volunteer_portal.db import get_db_connection
from volunteer_portal.errors import PortalError
from volunteer_portal.notifications.registry import ConnectionRegistry
from volunteer_portal.notifications.sender import NotificationSink
from volunteer_portal.surveys.tokens import expire_stale_assignments
from volunteer_portal.surveys.triggers import evaluate_survey_triggers

logger = logging.getLogger(__name__)

RECENT_WINDOW = timedelta(hours=2)


def schedule_sweeps(scheduler: BaseScheduler, registry: Optional[ConnectionRegistry] = None) -> None:
    scheduler.add_job(
        run_completed_shift_sweep,
        "cron",
        minute=5,
        kwargs={"registry": registry},
        id="completed-shift-sweep",
        replace_existing=True,
    )
    scheduler.add_job(
        run_expiry_sweep,
        "cron",
        hour=3,
        minute=0,
        id="survey-expiry-sweep",
        replace_existing=True,
    )


def _db_path() -> str:
    return os.getenv("DB_PATH", "volunteer-portal.db")


def run_completed_shift_sweep(registry: Optional[ConnectionRegistry] = None) -> None:
    db = get_db_connection(_db_path())
    try:
        recompute_recent_volunteers(db, clock.utcnow(), NotificationSink(db, registry=registry))
    finally:
        db.close()


def run_expiry_sweep() -> None:
    db = get_db_connection(_db_path())
    try:
        expire_stale_assignments(db)
    finally:
        db.close()


def users_with_recently_ended_shifts(
    db: sqlite3.Connection, now: datetime, window: timedelta = RECENT_WINDOW
) -> list[int]:
    rows = db.execute(
        """
        SELECT DISTINCT su.user_id
        FROM signups su
        JOIN shifts sh ON sh.id = su.shift_id
        WHERE su.status = 'CONFIRMED' AND sh.ends_at >= ? AND sh.ends_at < ?
        ORDER BY su.user_id
        """,
        (clock.to_db(now - window), clock.to_db(now)),
    ).fetchall()
    return [r["user_id"] for r in rows]


def recompute_recent_volunteers(
    db: sqlite3.Connection,
    now: datetime,
    sink: Optional[NotificationSink] = None,
) -> int:
    """Unlock achievements and run survey triggers for volunteers whose shift just ended.

    A failure for one volunteer is logged and does not stop the sweep.
    Returns the number of volunteers processed.
    """
    user_ids = users_with_recently_ended_shifts(db, now)
    for user_id in user_ids:
        try:
            check_and_unlock_achievements(db, user_id, now, sink=sink)
            evaluate_survey_triggers(db, user_id, now, sink=sink)
        except (PortalError, sqlite3.Error):
            logger.exception("Progress sweep failed for user %s", user_id)
    logger.info("Progress sweep processed %d volunteer(s)", len(user_ids))
    return len(user_ids)
