"""Survey routes reached through an emailed token, plus dismissal."""

from __future__ import annotations

import sqlite3
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from volunteer_portal.models.survey import Survey, SurveyAssignment
from volunteer_portal.routes.deps import get_db
from volunteer_portal.surveys.questions import SurveyAnswer
from volunteer_portal.surveys.submission import dismiss_survey, submit_survey
from volunteer_portal.surveys.tokens import raise_for_invalid, validate_survey_token

router = APIRouter(prefix="/api/surveys", tags=["surveys"])


class SurveyView(BaseModel):
    assignment: SurveyAssignment
    survey: Survey
    user_name: Optional[str]


class SubmitRequest(BaseModel):
    answers: list[SurveyAnswer]


class DismissRequest(BaseModel):
    user_id: int


@router.get("/{token}", response_model=SurveyView)
def read_survey(token: str, db: sqlite3.Connection = Depends(get_db)):
    """Return the survey behind a token (410 once the token has expired)."""
    result = validate_survey_token(db, token)
    raise_for_invalid(result)
    return SurveyView(
        assignment=result.assignment,
        survey=result.survey,
        user_name=result.user.name if result.user else None,
    )


@router.post("/{token}/submit")
def post_submission(token: str, body: SubmitRequest, db: sqlite3.Connection = Depends(get_db)):
    response = submit_survey(db, token, body.answers)
    return {"success": True, "response_id": response.id}


@router.post("/assignments/{assignment_id}/dismiss", response_model=SurveyAssignment)
def post_dismiss(assignment_id: int, body: DismissRequest, db: sqlite3.Connection = Depends(get_db)):
    return dismiss_survey(db, assignment_id, body.user_id)
