"""Survey submission and dismissal."""

from __future__ import annotations

import json
import logging
import sqlite3
from datetime import datetime
from typing import Optional

from volunteer_portal import clock
from volunteer_portal.db import transaction
from volunteer_portal.errors import AlreadyCompleted, Expired, Forbidden, NotFound, ValidationFailed
from volunteer_portal.models.notification import mark_read_for_related
from volunteer_portal.models.survey import SurveyAssignment, SurveyResponse, get_assignment
from volunteer_portal.surveys.questions import SurveyAnswer, validate_answers
from volunteer_portal.surveys.tokens import (
    COMPLETED_MESSAGE,
    get_token,
    is_past,
    raise_for_invalid,
    validate_survey_token,
)

logger = logging.getLogger(__name__)


def submit_survey(
    db: sqlite3.Connection,
    token: str,
    answers: list[SurveyAnswer],
    now: Optional[datetime] = None,
) -> SurveyResponse:
    """Store a response for the assignment behind ``token``.

    Every answer is validated before anything is written. The response, the
    assignment's completion and the token's use commit together; the token
    is claimed with a conditional update, so of two racing submissions only
    one can succeed and the other gets ``AlreadyCompleted``.
    """
    now = now or clock.utcnow()
    result = validate_survey_token(db, token, now)
    raise_for_invalid(result)

    validate_answers(result.survey.questions, answers)
    payload = json.dumps([a.model_dump(by_alias=True) for a in answers])
    assignment = result.assignment

    with transaction(db):
        claimed = db.execute(
            "UPDATE survey_tokens SET used_at = ? WHERE token = ? AND used_at IS NULL",
            (clock.to_db(now), token),
        )
        if claimed.rowcount != 1:
            raise AlreadyCompleted(COMPLETED_MESSAGE)
        cursor = db.execute(
            "INSERT INTO survey_responses (assignment_id, answers, submitted_at) VALUES (?, ?, ?)",
            (assignment.id, payload, clock.to_db(now)),
        )
        db.execute(
            "UPDATE survey_assignments SET status = 'COMPLETED', completed_at = ? WHERE id = ?",
            (clock.to_db(now), assignment.id),
        )

    logger.info("Survey response stored for assignment %s", assignment.id)
    try:
        mark_read_for_related(db, assignment.user_id, "SURVEY_ASSIGNED", assignment.id)
    except sqlite3.Error:
        logger.exception("Could not clear survey notification for assignment %s", assignment.id)

    return SurveyResponse(
        id=cursor.lastrowid,
        assignment_id=assignment.id,
        answers=answers,
        submitted_at=now,
    )


def dismiss_survey(
    db: sqlite3.Connection,
    assignment_id: int,
    user_id: int,
    now: Optional[datetime] = None,
) -> SurveyAssignment:
    """Hide a PENDING survey from the user's dashboard.

    The token stays usable, so a dismissed survey can still be completed
    from its link. An assignment whose token has lapsed is expired instead.
    """
    now = now or clock.utcnow()
    expired = False
    with transaction(db):
        assignment = get_assignment(db, assignment_id)
        if assignment is None:
            raise NotFound("Survey assignment not found")
        if assignment.user_id != user_id:
            raise Forbidden("This survey belongs to another user")
        if assignment.status != "PENDING":
            raise ValidationFailed("Survey cannot be dismissed in current state")

        row = db.execute(
            "SELECT token FROM survey_tokens WHERE assignment_id = ?", (assignment_id,)
        ).fetchone()
        record = get_token(db, row["token"]) if row is not None else None
        if record is not None and is_past(record.expires_at, now):
            db.execute(
                "UPDATE survey_assignments SET status = 'EXPIRED' WHERE id = ?", (assignment_id,)
            )
            expired = True
        else:
            db.execute(
                "UPDATE survey_assignments SET status = 'DISMISSED', dismissed_at = ? WHERE id = ?",
                (clock.to_db(now), assignment_id),
            )

    if expired:
        raise Expired("Survey has expired and cannot be dismissed")
    return get_assignment(db, assignment_id)
