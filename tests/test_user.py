"""Tests for users, friendships and the user deletion plan."""

from unittest.mock import MagicMock

import pytest

from volunteer_portal.errors import Conflict, NotFound, ValidationFailed
from volunteer_portal.models.group_booking import GroupBookingCreate, create_group_booking
from volunteer_portal.models.notification import list_notifications_by_user
from volunteer_portal.models.signup import create_signup, get_signups_by_shift
from volunteer_portal.models.user import (
    UserCreate,
    add_friendship,
    count_accepted_friends,
    create_user,
    delete_user,
    get_user,
    list_users,
)
from volunteer_portal.notifications.sender import NotificationSink


def test_create_user_normalizes_email(db):
    user = create_user(db, UserCreate(email="  Ana@Example.ORG ", name="Ana"))
    assert user.email == "ana@example.org"
    assert user.role == "VOLUNTEER"


def test_duplicate_email(db):
    create_user(db, UserCreate(email="ana@example.org"))
    with pytest.raises(Conflict):
        create_user(db, UserCreate(email="ANA@example.org"))


def test_list_users_by_role(db, make_user):
    volunteer = make_user()
    admin = make_user(role="ADMIN")
    assert [u.id for u in list_users(db)] == [volunteer.id, admin.id]
    assert [u.id for u in list_users(db, role="ADMIN")] == [admin.id]


class TestFriendships:
    def test_friendship_counts_for_both(self, db, make_user):
        a, b, c = make_user(), make_user(), make_user()
        add_friendship(db, a.id, b.id)
        add_friendship(db, c.id, a.id)
        assert count_accepted_friends(db, a.id) == 2
        assert count_accepted_friends(db, b.id) == 1

    def test_repeat_is_harmless(self, db, make_user):
        a, b = make_user(), make_user()
        add_friendship(db, a.id, b.id)
        add_friendship(db, b.id, a.id)
        assert count_accepted_friends(db, a.id) == 1

    def test_self_friendship(self, db, make_user):
        a = make_user()
        with pytest.raises(ValidationFailed):
            add_friendship(db, a.id, a.id)


class TestDeleteUser:
    def test_removes_everything_the_user_owns(self, db, make_user, make_shift):
        leader, member, friend = make_user(), make_user(), make_user()
        shift = make_shift(capacity=3)
        create_group_booking(
            db, GroupBookingCreate(leader_id=leader.id, shift_id=shift.id, name="Crew", member_ids=[member.id])
        )
        add_friendship(db, leader.id, friend.id)
        NotificationSink(db).emit(leader.id, "SIGNUP_CREATED", "Hi", "Welcome")

        affected = delete_user(db, leader.id)

        assert get_user(db, leader.id) is None
        assert affected["users"] == 1
        assert affected["signups"] == 1
        assert affected["group_members"] == 1
        assert affected["group_bookings"] == 1
        assert affected["friendships"] == 2
        assert affected["notifications"] == 1
        remaining = get_signups_by_shift(db, shift.id)
        assert [(s.user_id, s.group_booking_id) for s in remaining] == [(member.id, None)]
        assert count_accepted_friends(db, friend.id) == 0
        assert list_notifications_by_user(db, leader.id) == []

    def test_missing_user(self, db):
        with pytest.raises(NotFound):
            delete_user(db, 999)

    def test_failure_leaves_user_in_place(self, db, make_user):
        user = make_user()
        broken = MagicMock(side_effect=RuntimeError("disk on fire"))
        db_proxy = _FailingOnStep(db, "DELETE FROM users", broken)
        with pytest.raises(RuntimeError):
            delete_user(db_proxy, user.id)
        assert get_user(db, user.id) is not None


class _FailingOnStep:
    """Connection wrapper that fails one statement to exercise rollback."""

    def __init__(self, conn, prefix, failure):
        self._conn = conn
        self._prefix = prefix
        self._failure = failure

    def __getattr__(self, name):
        return getattr(self._conn, name)

    def execute(self, sql, *args):
        if sql.startswith(self._prefix):
            self._failure()
        return self._conn.execute(sql, *args)
