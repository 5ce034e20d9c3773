"""Survey domain model: surveys, assignments and stored responses."""

from __future__ import annotations

import json
import sqlite3
from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, Field, model_validator

from volunteer_portal.db import transaction
from volunteer_portal.errors import NotFound
from volunteer_portal.surveys.questions import SurveyAnswer, SurveyQuestion, dump_questions, parse_questions

TriggerType = Literal["SHIFTS_COMPLETED", "HOURS_VOLUNTEERED", "FIRST_SHIFT", "MANUAL"]
AssignmentStatus = Literal["PENDING", "DISMISSED", "COMPLETED", "EXPIRED"]


# ---------------------------------------------------------------------------
# Pydantic models
# ---------------------------------------------------------------------------

class SurveyCreate(BaseModel):
    title: str = Field(min_length=1)
    description: Optional[str] = None
    questions: list[SurveyQuestion] = Field(min_length=1)
    trigger_type: TriggerType
    trigger_value: float = Field(default=0, ge=0)
    trigger_max_value: Optional[float] = None
    is_active: bool = True

    @model_validator(mode="after")
    def _range_is_ordered(self) -> "SurveyCreate":
        if self.trigger_max_value is not None and self.trigger_max_value < self.trigger_value:
            raise ValueError("trigger_max_value must not be below trigger_value")
        return self


class Survey(BaseModel):
    id: int
    title: str
    description: Optional[str]
    questions: list[SurveyQuestion]
    trigger_type: TriggerType
    trigger_value: float
    trigger_max_value: Optional[float]
    is_active: bool
    created_at: datetime


class SurveyAssignment(BaseModel):
    id: int
    survey_id: int
    user_id: int
    status: AssignmentStatus
    assigned_at: datetime
    completed_at: Optional[datetime]
    dismissed_at: Optional[datetime]


class SurveyResponse(BaseModel):
    id: int
    assignment_id: int
    answers: list[SurveyAnswer]
    submitted_at: datetime


class PendingSurvey(BaseModel):
    assignment: SurveyAssignment
    survey: Survey
    token: Optional[str]


# ---------------------------------------------------------------------------
# CRUD helpers
# ---------------------------------------------------------------------------

def _row_to_survey(row: sqlite3.Row) -> Survey:
    return Survey(
        id=row["id"],
        title=row["title"],
        description=row["description"],
        questions=parse_questions(row["questions"]),
        trigger_type=row["trigger_type"],
        trigger_value=row["trigger_value"],
        trigger_max_value=row["trigger_max_value"],
        is_active=bool(row["is_active"]),
        created_at=row["created_at"],
    )


def _row_to_assignment(row: sqlite3.Row) -> SurveyAssignment:
    return SurveyAssignment(
        id=row["id"],
        survey_id=row["survey_id"],
        user_id=row["user_id"],
        status=row["status"],
        assigned_at=row["assigned_at"],
        completed_at=row["completed_at"],
        dismissed_at=row["dismissed_at"],
    )


def create_survey(db: sqlite3.Connection, data: SurveyCreate) -> Survey:
    questions_json = dump_questions(data.questions)
    with transaction(db):
        cursor = db.execute(
            """
            INSERT INTO surveys
                (title, description, questions, trigger_type, trigger_value, trigger_max_value, is_active)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (
                data.title,
                data.description,
                questions_json,
                data.trigger_type,
                data.trigger_value,
                data.trigger_max_value,
                data.is_active,
            ),
        )
    return get_survey(db, cursor.lastrowid)


def get_survey(db: sqlite3.Connection, survey_id: int) -> Optional[Survey]:
    row = db.execute("SELECT * FROM surveys WHERE id = ?", (survey_id,)).fetchone()
    if row is None:
        return None
    return _row_to_survey(row)


def list_surveys(db: sqlite3.Connection, active_only: bool = False) -> list[Survey]:
    sql = "SELECT * FROM surveys"
    if active_only:
        sql += " WHERE is_active = 1"
    rows = db.execute(sql + " ORDER BY id").fetchall()
    return [_row_to_survey(r) for r in rows]


def set_survey_active(db: sqlite3.Connection, survey_id: int, is_active: bool) -> Survey:
    with transaction(db):
        cursor = db.execute(
            "UPDATE surveys SET is_active = ? WHERE id = ?", (is_active, survey_id)
        )
        if cursor.rowcount == 0:
            raise NotFound(f"Survey {survey_id} not found")
    return get_survey(db, survey_id)


def get_assignment(db: sqlite3.Connection, assignment_id: int) -> Optional[SurveyAssignment]:
    row = db.execute(
        "SELECT * FROM survey_assignments WHERE id = ?", (assignment_id,)
    ).fetchone()
    if row is None:
        return None
    return _row_to_assignment(row)


def get_pending_surveys(db: sqlite3.Connection, user_id: int) -> list[PendingSurvey]:
    """PENDING assignments of active surveys for a user, newest first."""
    rows = db.execute(
        """
        SELECT sa.id AS assignment_id, st.token, s.*
        FROM survey_assignments sa
        JOIN surveys s ON s.id = sa.survey_id
        LEFT JOIN survey_tokens st ON st.assignment_id = sa.id
        WHERE sa.user_id = ? AND sa.status = 'PENDING' AND s.is_active = 1
        ORDER BY sa.assigned_at DESC, sa.id DESC
        """,
        (user_id,),
    ).fetchall()
    return [
        PendingSurvey(
            assignment=get_assignment(db, r["assignment_id"]),
            survey=_row_to_survey(r),
            token=r["token"],
        )
        for r in rows
    ]


def get_survey_responses(db: sqlite3.Connection, survey_id: int) -> list[SurveyResponse]:
    rows = db.execute(
        """
        SELECT r.* FROM survey_responses r
        JOIN survey_assignments sa ON sa.id = r.assignment_id
        WHERE sa.survey_id = ?
        ORDER BY r.submitted_at, r.id
        """,
        (survey_id,),
    ).fetchall()
    return [
        SurveyResponse(
            id=r["id"],
            assignment_id=r["assignment_id"],
            answers=json.loads(r["answers"]),
            submitted_at=r["submitted_at"],
        )
        for r in rows
    ]
