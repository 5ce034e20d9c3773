"""Tests for volunteer_portal.rules.queries, the DB query layer for rule checks."""

from __future__ import annotations

from datetime import date

import pytest

from volunteer_portal.rules.queries import (
    get_confirmed_count,
    get_confirmed_on_day,
    get_signup_for_pair,
    get_waitlisted,
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _insert_signup(db, user_id: int, shift_id: int, status: str, civil_day: str, created_at: str) -> int:
    cursor = db.execute(
        """
        INSERT INTO signups (user_id, shift_id, status, civil_day, created_at)
        VALUES (?, ?, ?, ?, ?)
        """,
        (user_id, shift_id, status, civil_day, created_at),
    )
    db.commit()
    return cursor.lastrowid


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def setup(db, make_user, make_shift):
    """One full morning shift on 2025-03-10 with a waitlist, plus an evening shift."""
    ana, ben, cat, dev = make_user(), make_user(), make_user(), make_user()
    morning = make_shift(capacity=1)
    evening = make_shift(start_hour=17, end_hour=20, location="Onehunga")

    s1 = _insert_signup(db, ana.id, morning.id, "CONFIRMED", "2025-03-10", "2025-03-01T00:00:00+00:00")
    # inserted out of order: the later created_at must still sort last
    s3 = _insert_signup(db, cat.id, morning.id, "WAITLISTED", "2025-03-10", "2025-03-03T00:00:00+00:00")
    s2 = _insert_signup(db, ben.id, morning.id, "WAITLISTED", "2025-03-10", "2025-03-02T00:00:00+00:00")
    s4 = _insert_signup(db, dev.id, evening.id, "CANCELED", "2025-03-10", "2025-03-01T00:00:00+00:00")

    return {
        "db": db,
        "users": {"ana": ana.id, "ben": ben.id, "cat": cat.id, "dev": dev.id},
        "shifts": {"morning": morning.id, "evening": evening.id},
        "signups": {"s1": s1, "s2": s2, "s3": s3, "s4": s4},
    }


# ---------------------------------------------------------------------------
# Tests
# ---------------------------------------------------------------------------

def test_confirmed_count(setup):
    assert get_confirmed_count(setup["db"], setup["shifts"]["morning"]) == 1
    assert get_confirmed_count(setup["db"], setup["shifts"]["evening"]) == 0


def test_signup_for_pair_any_status(setup):
    row = get_signup_for_pair(setup["db"], setup["users"]["dev"], setup["shifts"]["evening"])
    assert row["id"] == setup["signups"]["s4"]
    assert row["status"] == "CANCELED"
    assert get_signup_for_pair(setup["db"], setup["users"]["dev"], setup["shifts"]["morning"]) is None


def test_waitlist_is_oldest_first(setup):
    rows = get_waitlisted(setup["db"], setup["shifts"]["morning"])
    assert [r["id"] for r in rows] == [setup["signups"]["s2"], setup["signups"]["s3"]]


def test_confirmed_on_day(setup):
    row = get_confirmed_on_day(setup["db"], setup["users"]["ana"], date(2025, 3, 10))
    assert row["signup_id"] == setup["signups"]["s1"]
    assert row["shift_type_name"] == "Kitchen Prep"
    assert row["location"] == "Wellington"


def test_confirmed_on_day_ignores_other_statuses(setup):
    assert get_confirmed_on_day(setup["db"], setup["users"]["ben"], date(2025, 3, 10)) is None
    assert get_confirmed_on_day(setup["db"], setup["users"]["dev"], date(2025, 3, 10)) is None


def test_confirmed_on_day_other_day(setup):
    assert get_confirmed_on_day(setup["db"], setup["users"]["ana"], date(2025, 3, 11)) is None


def test_confirmed_on_day_excluding_signup(setup):
    row = get_confirmed_on_day(
        setup["db"], setup["users"]["ana"], date(2025, 3, 10), exclude_signup_id=setup["signups"]["s1"]
    )
    assert row is None
