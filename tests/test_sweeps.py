"""Tests for the periodic sweeps and their scheduling."""

from datetime import date, timedelta
from unittest.mock import MagicMock, patch

from apscheduler.schedulers.background import BackgroundScheduler

from volunteer_portal import clock
from volunteer_portal.achievements.criteria import parse_criteria
from volunteer_portal.errors import NotFound
from volunteer_portal.models.achievement import AchievementCreate, create_achievement, get_user_achievements
from volunteer_portal.models.signup import create_signup
from volunteer_portal.models.survey import SurveyCreate, create_survey, get_pending_surveys
from volunteer_portal.scheduler import shutdown_scheduler
from volunteer_portal.sweeps import (
    recompute_recent_volunteers,
    schedule_sweeps,
    users_with_recently_ended_shifts,
)

SHIFT_END = clock.civil_datetime(date(2025, 3, 10), 12)


def test_finds_volunteers_whose_shift_just_ended(db, make_user, make_shift):
    recent, pending, earlier = make_user(), make_user(), make_user()
    shift = make_shift()
    create_signup(db, recent.id, shift.id)
    create_signup(db, pending.id, shift.id, status="PENDING")
    create_signup(db, earlier.id, make_shift(day=date(2025, 3, 9)).id)

    now = SHIFT_END + timedelta(minutes=5)
    assert users_with_recently_ended_shifts(db, now) == [recent.id]
    assert users_with_recently_ended_shifts(db, SHIFT_END - timedelta(minutes=1)) == []


def test_recompute_unlocks_and_assigns(db, make_user, make_shift):
    user = make_user()
    create_signup(db, user.id, make_shift().id)
    create_achievement(
        db,
        AchievementCreate(
            name="First Steps",
            category="MILESTONE",
            criteria=parse_criteria({"type": "shifts_completed", "value": 1}),
            points=10,
        ),
    )
    create_survey(
        db,
        SurveyCreate(
            title="First shift feedback",
            questions=[{"id": "q1", "type": "yes_no", "text": "Enjoyed it?"}],
            trigger_type="SHIFTS_COMPLETED",
            trigger_value=1,
            trigger_max_value=1,
        ),
    )

    processed = recompute_recent_volunteers(db, SHIFT_END + timedelta(minutes=5))

    assert processed == 1
    assert [ua.achievement.name for ua in get_user_achievements(db, user.id)] == ["First Steps"]
    assert [p.survey.title for p in get_pending_surveys(db, user.id)] == ["First shift feedback"]


@patch("volunteer_portal.sweeps.evaluate_survey_triggers")
@patch("volunteer_portal.sweeps.check_and_unlock_achievements")
def test_one_failure_does_not_stop_the_sweep(mock_unlock, mock_triggers, db, make_user, make_shift):
    first, second = make_user(), make_user()
    shift = make_shift()
    create_signup(db, first.id, shift.id)
    create_signup(db, second.id, shift.id)
    mock_unlock.side_effect = [NotFound("gone"), []]

    assert recompute_recent_volunteers(db, SHIFT_END + timedelta(minutes=5)) == 2
    assert mock_unlock.call_count == 2
    mock_triggers.assert_called_once()


def test_schedule_sweeps_registers_both_jobs():
    scheduler = BackgroundScheduler(timezone=clock.civil_zone())
    registry = MagicMock()
    schedule_sweeps(scheduler, registry)

    jobs = {job.id: job for job in scheduler.get_jobs()}
    assert set(jobs) == {"completed-shift-sweep", "survey-expiry-sweep"}
    assert jobs["completed-shift-sweep"].kwargs == {"registry": registry}


def test_shutdown_scheduler_tolerates_none():
    shutdown_scheduler(None)
