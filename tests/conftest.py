import itertools
from datetime import date

import pytest

from volunteer_portal import clock
from volunteer_portal.db import create_tables, get_db_connection
from volunteer_portal.models.shift import ShiftCreate, create_shift, create_shift_type
from volunteer_portal.models.user import UserCreate, create_user

_CONFIG_VARS = (
    "CIVIL_TIMEZONE",
    "WAITLIST_POLICY",
    "NOTIFY_WEBHOOK_URL",
    "SURVEY_TOKEN_TTL_DAYS",
    "SURVEY_ASSIGN_BATCH_SIZE",
    "MEALS_PER_SHIFT_ESTIMATE",
)


@pytest.fixture(autouse=True)
def _clean_config(monkeypatch):
    """Run every test against the default configuration."""
    for name in _CONFIG_VARS:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def db():
    """Yield an in-memory SQLite connection with all tables created."""
    conn = get_db_connection(":memory:")
    create_tables(conn)
    yield conn
    conn.close()


@pytest.fixture
def make_user(db):
    counter = itertools.count(1)

    def _make(name=None, role="VOLUNTEER"):
        n = next(counter)
        return create_user(
            db, UserCreate(email=f"user{n}@example.org", name=name or f"User {n}", role=role)
        )

    return _make


@pytest.fixture
def kitchen_type(db):
    return create_shift_type(db, "Kitchen Prep")


@pytest.fixture
def make_shift(db, kitchen_type):
    def _make(
        day=date(2025, 3, 10),
        start_hour=9,
        end_hour=12,
        location="Wellington",
        capacity=2,
        shift_type_id=None,
    ):
        return create_shift(
            db,
            ShiftCreate(
                shift_type_id=shift_type_id or kitchen_type,
                location=location,
                start=clock.civil_datetime(day, start_hour),
                end=clock.civil_datetime(day, end_hour),
                capacity=capacity,
            ),
        )

    return _make
