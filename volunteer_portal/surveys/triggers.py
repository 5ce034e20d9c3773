"""Survey assignment: automatic triggers, manual bulk assignment and previews.

A user holds at most one live (non-EXPIRED) assignment per survey. That is
enforced by the ``ux_survey_assignments_live`` partial unique index; every
insert here is ``INSERT OR IGNORE`` and only rows actually written count as
assigned.
"""

from __future__ import annotations

import logging
import os
import sqlite3
from datetime import datetime
from typing import NamedTuple, Optional

from pydantic import BaseModel

from volunteer_portal import clock
from volunteer_portal.achievements.progress import UserProgress, calculate_user_progress
from volunteer_portal.db import transaction
from volunteer_portal.errors import NotFound
from volunteer_portal.models.survey import Survey, SurveyAssignment, _row_to_survey, get_assignment, get_survey
from volunteer_portal.models.user import User, _row_to_user
from volunteer_portal.notifications.sender import NotificationSink, emit_safely
from volunteer_portal.surveys.tokens import issue_token

logger = logging.getLogger(__name__)

SAMPLE_SIZE = 10


class TriggerResult(NamedTuple):
    triggered: bool
    reason: Optional[str] = None


class AssignResult(BaseModel):
    assigned: list[int]
    skipped: list[int]


class EligibilityResult(BaseModel):
    eligible_user_ids: list[int]
    total_eligible: int
    already_assigned: int
    sample_users: list[User]


def assign_batch_size() -> int:
    return max(1, int(os.getenv("SURVEY_ASSIGN_BATCH_SIZE", "50")))


# ---------------------------------------------------------------------------
# Pure trigger evaluation
# ---------------------------------------------------------------------------

def _range_label(low: float, high: Optional[float]) -> str:
    return f"{low:g}-{high:g}" if high is not None else f"{low:g}+"


def evaluate_trigger(
    trigger_type: str,
    trigger_value: float,
    trigger_max_value: Optional[float],
    progress: UserProgress,
    now: datetime,
) -> TriggerResult:
    """Decide whether a user's progress falls inside a survey's trigger range.

    The range is inclusive at both ends; no maximum means unbounded.
    MANUAL surveys never trigger.
    """
    if trigger_type == "SHIFTS_COMPLETED":
        value = progress.shifts_completed
        label = "Completed {value:g} shifts"
    elif trigger_type == "HOURS_VOLUNTEERED":
        value = progress.hours_volunteered
        label = "Volunteered {value:g} hours"
    elif trigger_type == "FIRST_SHIFT":
        if progress.first_shift_start is None:
            return TriggerResult(False)
        value = (now - progress.first_shift_start).days
        label = "{value:g} days since first shift"
    else:
        return TriggerResult(False)

    if value < trigger_value:
        return TriggerResult(False)
    if trigger_max_value is not None and value > trigger_max_value:
        return TriggerResult(False)
    reason = label.format(value=value) + f" (target: {_range_label(trigger_value, trigger_max_value)})"
    return TriggerResult(True, reason)


# ---------------------------------------------------------------------------
# Writing assignments
# ---------------------------------------------------------------------------

def _assign(db: sqlite3.Connection, survey_id: int, user_id: int, now: datetime) -> Optional[int]:
    """Insert a PENDING assignment plus its token; None if one is already live."""
    cursor = db.execute(
        """
        INSERT OR IGNORE INTO survey_assignments (survey_id, user_id, status, assigned_at)
        VALUES (?, ?, 'PENDING', ?)
        """,
        (survey_id, user_id, clock.to_db(now)),
    )
    if cursor.rowcount != 1:
        return None
    assignment_id = cursor.lastrowid
    issue_token(db, assignment_id, now)
    return assignment_id


def _notify_assigned(sink: Optional[NotificationSink], survey: Survey, user_id: int, assignment_id: int) -> None:
    emit_safely(
        sink,
        user_id,
        "SURVEY_ASSIGNED",
        "New Survey Available",
        f'We\'d love your feedback! Please complete the "{survey.title}" survey.',
        related_id=assignment_id,
    )


def evaluate_survey_triggers(
    db: sqlite3.Connection,
    user_id: int,
    now: Optional[datetime] = None,
    sink: Optional[NotificationSink] = None,
) -> list[SurveyAssignment]:
    """Assign every active automatic survey whose trigger the user now meets.

    Returns the assignments created by this call.
    """
    now = now or clock.utcnow()
    created: list[tuple[Survey, int]] = []

    with transaction(db):
        if db.execute("SELECT 1 FROM users WHERE id = ?", (user_id,)).fetchone() is None:
            raise NotFound(f"User {user_id} not found")

        progress = calculate_user_progress(db, user_id, now)
        rows = db.execute(
            """
            SELECT s.* FROM surveys s
            WHERE s.is_active = 1
              AND s.trigger_type != 'MANUAL'
              AND NOT EXISTS (
                  SELECT 1 FROM survey_assignments sa
                  WHERE sa.survey_id = s.id AND sa.user_id = ? AND sa.status != 'EXPIRED'
              )
            ORDER BY s.id
            """,
            (user_id,),
        ).fetchall()

        for row in rows:
            survey = _row_to_survey(row)
            result = evaluate_trigger(
                survey.trigger_type, survey.trigger_value, survey.trigger_max_value, progress, now
            )
            if not result.triggered:
                continue
            assignment_id = _assign(db, survey.id, user_id, now)
            if assignment_id is not None:
                logger.info("Assigned survey %s to user %s: %s", survey.id, user_id, result.reason)
                created.append((survey, assignment_id))

    for survey, assignment_id in created:
        _notify_assigned(sink, survey, user_id, assignment_id)
    return [get_assignment(db, assignment_id) for _, assignment_id in created]


def manually_assign_survey(
    db: sqlite3.Connection,
    survey_id: int,
    user_ids: list[int],
    now: Optional[datetime] = None,
    sink: Optional[NotificationSink] = None,
) -> AssignResult:
    """Assign a survey to a list of users.

    Users who do not exist or already hold a live assignment are reported as
    skipped. Work is committed in batches of ``SURVEY_ASSIGN_BATCH_SIZE``
    users, each batch in its own transaction.
    """
    now = now or clock.utcnow()
    survey = get_survey(db, survey_id)
    if survey is None or not survey.is_active:
        raise NotFound("Survey not found or inactive")

    ordered = list(dict.fromkeys(user_ids))
    size = assign_batch_size()
    assigned: list[int] = []
    skipped: list[int] = []

    for start in range(0, len(ordered), size):
        batch = ordered[start:start + size]
        written: list[tuple[int, int]] = []
        with transaction(db):
            placeholders = ", ".join("?" for _ in batch)
            existing = {
                r["id"]
                for r in db.execute(f"SELECT id FROM users WHERE id IN ({placeholders})", batch)
            }
            for user_id in batch:
                assignment_id = _assign(db, survey_id, user_id, now) if user_id in existing else None
                if assignment_id is None:
                    skipped.append(user_id)
                else:
                    written.append((user_id, assignment_id))

        for user_id, assignment_id in written:
            _notify_assigned(sink, survey, user_id, assignment_id)
        assigned.extend(user_id for user_id, _ in written)
        logger.info(
            "Survey %s batch %d: %d assigned, %d processed of %d",
            survey_id,
            start // size + 1,
            len(written),
            min(start + size, len(ordered)),
            len(ordered),
        )

    return AssignResult(assigned=assigned, skipped=skipped)


# ---------------------------------------------------------------------------
# Eligibility preview
# ---------------------------------------------------------------------------

def _progress_by_user(db: sqlite3.Connection, now: datetime) -> dict[int, UserProgress]:
    """Shift count, hours and first shift for every user with completed shifts."""
    rows = db.execute(
        """
        SELECT su.user_id, sh.starts_at, sh.ends_at
        FROM signups su
        JOIN shifts sh ON sh.id = su.shift_id
        WHERE su.status = 'CONFIRMED' AND sh.ends_at < ?
        ORDER BY sh.starts_at
        """,
        (clock.to_db(now),),
    ).fetchall()

    progress: dict[int, UserProgress] = {}
    for row in rows:
        start = clock.from_db(row["starts_at"])
        end = clock.from_db(row["ends_at"])
        p = progress.setdefault(row["user_id"], UserProgress(first_shift_start=start))
        p.shifts_completed += 1
        p.hours_volunteered += (end - start).total_seconds() / 3600
    for p in progress.values():
        p.hours_volunteered = round(p.hours_volunteered, 2)
    return progress


def find_eligible_users_for_survey(
    db: sqlite3.Connection, survey_id: int, now: Optional[datetime] = None
) -> EligibilityResult:
    """Preview who an assignment run would reach, without writing anything.

    Automatic surveys use the same trigger rule as ``evaluate_survey_triggers``;
    MANUAL surveys consider every volunteer. Users with a live assignment
    are excluded.
    """
    now = now or clock.utcnow()
    survey = get_survey(db, survey_id)
    if survey is None:
        raise NotFound(f"Survey {survey_id} not found")

    live = {
        r["user_id"]
        for r in db.execute(
            "SELECT user_id FROM survey_assignments WHERE survey_id = ? AND status != 'EXPIRED'",
            (survey_id,),
        )
    }

    if survey.trigger_type == "MANUAL":
        users = db.execute("SELECT * FROM users WHERE role = 'VOLUNTEER' ORDER BY id").fetchall()
        candidates = [_row_to_user(r) for r in users]
    else:
        progress = _progress_by_user(db, now)
        candidates = [
            _row_to_user(r)
            for r in db.execute("SELECT * FROM users ORDER BY id").fetchall()
            if evaluate_trigger(
                survey.trigger_type,
                survey.trigger_value,
                survey.trigger_max_value,
                progress.get(r["id"], UserProgress()),
                now,
            ).triggered
        ]

    eligible = [u for u in candidates if u.id not in live]
    return EligibilityResult(
        eligible_user_ids=[u.id for u in eligible],
        total_eligible=len(eligible),
        already_assigned=len(live),
        sample_users=eligible[:SAMPLE_SIZE],
    )
