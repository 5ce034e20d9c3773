"""Concurrent signups against a file-backed database."""

import threading
from datetime import date

from volunteer_portal import clock
from volunteer_portal.db import create_tables, get_db_connection
from volunteer_portal.errors import DailyDoubleBooking, PortalError
from volunteer_portal.models.shift import ShiftCreate, create_shift, create_shift_type
from volunteer_portal.models.signup import create_signup
from volunteer_portal.models.user import UserCreate, create_user


def _setup(path, capacity):
    conn = get_db_connection(str(path))
    create_tables(conn)
    type_id = create_shift_type(conn, "Lunch Service")

    def shift(start_hour, end_hour, location="Wellington"):
        return create_shift(
            conn,
            ShiftCreate(
                shift_type_id=type_id,
                location=location,
                start=clock.civil_datetime(date(2025, 3, 10), start_hour),
                end=clock.civil_datetime(date(2025, 3, 10), end_hour),
                capacity=capacity,
            ),
        )

    return conn, shift


def _run_in_threads(path, jobs):
    """Run each ``(user_id, shift_id)`` job on its own connection, all at once."""
    barrier = threading.Barrier(len(jobs))
    results = [None] * len(jobs)

    def worker(index, user_id, shift_id):
        conn = get_db_connection(str(path))
        try:
            barrier.wait()
            results[index] = create_signup(conn, user_id, shift_id)
        except PortalError as exc:
            results[index] = exc
        finally:
            conn.close()

    threads = [
        threading.Thread(target=worker, args=(i, user_id, shift_id))
        for i, (user_id, shift_id) in enumerate(jobs)
    ]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    return results


def test_last_place_goes_to_exactly_one_volunteer(tmp_path):
    path = tmp_path / "portal.db"
    conn, shift = _setup(path, capacity=1)
    target = shift(12, 15)
    first = create_user(conn, UserCreate(email="a@example.org", name="A"))
    second = create_user(conn, UserCreate(email="b@example.org", name="B"))
    conn.close()

    results = _run_in_threads(path, [(first.id, target.id), (second.id, target.id)])

    statuses = sorted(r.status for r in results)
    assert statuses == ["CONFIRMED", "WAITLISTED"]

    check = get_db_connection(str(path))
    confirmed = check.execute(
        "SELECT COUNT(*) AS cnt FROM signups WHERE shift_id = ? AND status = 'CONFIRMED'",
        (target.id,),
    ).fetchone()["cnt"]
    check.close()
    assert confirmed == 1


def test_same_volunteer_cannot_take_two_shifts_on_one_day_at_once(tmp_path):
    path = tmp_path / "portal.db"
    conn, shift = _setup(path, capacity=5)
    morning = shift(9, 12)
    evening = shift(17, 20, location="Onehunga")
    user = create_user(conn, UserCreate(email="a@example.org", name="A"))
    conn.close()

    results = _run_in_threads(path, [(user.id, morning.id), (user.id, evening.id)])

    refused = [r for r in results if isinstance(r, DailyDoubleBooking)]
    accepted = [r for r in results if not isinstance(r, PortalError)]
    assert len(refused) == 1
    assert len(accepted) == 1
    assert refused[0].conflicting_shift_id == accepted[0].shift_id
