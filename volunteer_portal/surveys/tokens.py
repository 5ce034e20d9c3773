"""Survey tokens: single-use, optionally time-limited links to one assignment."""

from __future__ import annotations

import logging
import os
import secrets
import sqlite3
from datetime import datetime, timedelta
from typing import Optional

from pydantic import BaseModel

from volunteer_portal import clock
from volunteer_portal.db import transaction
from volunteer_portal.errors import AlreadyCompleted, Expired, NotFound
from volunteer_portal.models.survey import Survey, SurveyAssignment, _row_to_assignment, get_survey
from volunteer_portal.models.user import User, get_user

logger = logging.getLogger(__name__)

EXPIRED_MESSAGE = "Survey token has expired"
COMPLETED_MESSAGE = "Survey has already been completed"


class SurveyToken(BaseModel):
    id: int
    token: str
    assignment_id: int
    expires_at: Optional[datetime]
    used_at: Optional[datetime]
    created_at: datetime


class TokenValidation(BaseModel):
    valid: bool
    message: str
    assignment: Optional[SurveyAssignment] = None
    survey: Optional[Survey] = None
    user: Optional[User] = None
    token: Optional[SurveyToken] = None

    @property
    def expired(self) -> bool:
        return "expired" in self.message


def _row_to_token(row: sqlite3.Row) -> SurveyToken:
    return SurveyToken(
        id=row["id"],
        token=row["token"],
        assignment_id=row["assignment_id"],
        expires_at=row["expires_at"],
        used_at=row["used_at"],
        created_at=row["created_at"],
    )


def token_ttl() -> Optional[timedelta]:
    """Token lifetime from ``SURVEY_TOKEN_TTL_DAYS``; ``0`` means tokens never expire."""
    days = int(os.getenv("SURVEY_TOKEN_TTL_DAYS", "30"))
    if days <= 0:
        return None
    return timedelta(days=days)


def generate_survey_token() -> str:
    return secrets.token_hex(32)


def issue_token(db: sqlite3.Connection, assignment_id: int, now: Optional[datetime] = None) -> str:
    """Create the token for a freshly inserted assignment.

    Runs inside the caller's transaction so assignment and token are
    written together.
    """
    now = now or clock.utcnow()
    ttl = token_ttl()
    token = generate_survey_token()
    db.execute(
        "INSERT INTO survey_tokens (token, assignment_id, expires_at, created_at) VALUES (?, ?, ?, ?)",
        (
            token,
            assignment_id,
            clock.to_db(now + ttl) if ttl is not None else None,
            clock.to_db(now),
        ),
    )
    return token


def get_token(db: sqlite3.Connection, token: str) -> Optional[SurveyToken]:
    row = db.execute("SELECT * FROM survey_tokens WHERE token = ?", (token,)).fetchone()
    if row is None:
        return None
    return _row_to_token(row)


def is_past(expires_at: Optional[datetime], now: datetime) -> bool:
    return expires_at is not None and expires_at < now


def validate_survey_token(
    db: sqlite3.Connection, token: str, now: Optional[datetime] = None
) -> TokenValidation:
    """Check whether a token still grants access to its survey.

    An expired token moves its assignment to EXPIRED (unless it was already
    COMPLETED) and that change is committed even though the token is
    reported invalid.
    """
    now = now or clock.utcnow()
    if not token:
        return TokenValidation(valid=False, message="Survey token is required")

    record = get_token(db, token)
    if record is None:
        return TokenValidation(valid=False, message="Invalid survey token")

    if is_past(record.expires_at, now):
        with transaction(db):
            db.execute(
                "UPDATE survey_assignments SET status = 'EXPIRED' WHERE id = ? AND status != 'COMPLETED'",
                (record.assignment_id,),
            )
        logger.info("Survey assignment %s expired", record.assignment_id)
        return TokenValidation(valid=False, message=EXPIRED_MESSAGE, token=record)

    row = db.execute(
        "SELECT * FROM survey_assignments WHERE id = ?", (record.assignment_id,)
    ).fetchone()
    assignment = _row_to_assignment(row)

    if record.used_at is not None or assignment.status == "COMPLETED":
        return TokenValidation(
            valid=False, message=COMPLETED_MESSAGE, assignment=assignment, token=record
        )

    survey = get_survey(db, assignment.survey_id)
    if not survey.is_active:
        return TokenValidation(
            valid=False, message="This survey is no longer available", assignment=assignment, token=record
        )

    return TokenValidation(
        valid=True,
        message="Token is valid",
        assignment=assignment,
        survey=survey,
        user=get_user(db, assignment.user_id),
        token=record,
    )


def expire_stale_assignments(db: sqlite3.Connection, now: Optional[datetime] = None) -> int:
    """Move open assignments whose token has lapsed to EXPIRED.

    Returns the number of assignments expired.
    """
    now = now or clock.utcnow()
    with transaction(db):
        cursor = db.execute(
            """
            UPDATE survey_assignments SET status = 'EXPIRED'
            WHERE status IN ('PENDING', 'DISMISSED')
              AND id IN (
                  SELECT assignment_id FROM survey_tokens
                  WHERE expires_at IS NOT NULL AND expires_at < ? AND used_at IS NULL
              )
            """,
            (clock.to_db(now),),
        )
    if cursor.rowcount:
        logger.info("Expired %d stale survey assignment(s)", cursor.rowcount)
    return cursor.rowcount


def raise_for_invalid(result: TokenValidation) -> None:
    """Turn an invalid validation result into the matching typed error."""
    if result.valid:
        return
    if result.expired:
        raise Expired(result.message)
    if result.message == COMPLETED_MESSAGE:
        raise AlreadyCompleted(result.message)
    raise NotFound(result.message)
