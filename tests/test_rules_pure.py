"""Tests for the pure signup rules and waitlist policies."""

from datetime import date

import pytest

from volunteer_portal import clock
from volunteer_portal.rules.pure import (
    check_block_capacity,
    check_capacity,
    describe_daily_conflict,
    resolve_signup_status,
)
from volunteer_portal.rules.waitlist import fifo_promotion, get_waitlist_policy, manual_promotion


class TestCapacity:
    def test_room_left(self):
        assert check_capacity(1, 2).allowed is True

    def test_full(self):
        result = check_capacity(2, 2)
        assert result.allowed is False
        assert result.reason == "Shift is full (2/2)"

    def test_zero_capacity_is_always_full(self):
        assert check_capacity(0, 0).allowed is False

    def test_block_fits(self):
        assert check_block_capacity(1, 4, 3).allowed is True

    def test_block_too_big(self):
        result = check_block_capacity(3, 4, 2)
        assert result.allowed is False
        assert "1 place(s) left" in result.reason


class TestResolveStatus:
    def test_keeps_requested_status_when_room(self):
        assert resolve_signup_status("CONFIRMED", 0, 1) == "CONFIRMED"
        assert resolve_signup_status("PENDING", 0, 1) == "PENDING"

    def test_full_shift_waitlists(self):
        assert resolve_signup_status("CONFIRMED", 1, 1) == "WAITLISTED"

    def test_rejects_unrequestable_status(self):
        with pytest.raises(ValueError):
            resolve_signup_status("NO_SHOW", 0, 1)


def test_daily_conflict_names_the_other_shift():
    start = clock.civil_datetime(date(2025, 3, 10), 9)
    message = describe_daily_conflict("Kitchen Prep", "Wellington", start)
    assert message.startswith("You already have a confirmed shift on this day: Kitchen Prep at Wellington, 9:00 AM.")
    assert message.endswith("You can only sign up for one shift per day.")


class TestWaitlistPolicies:
    candidates = [{"id": 11}, {"id": 12}, {"id": 13}]

    def test_manual_never_promotes(self):
        assert manual_promotion(self.candidates, lambda c: True) is None

    def test_fifo_takes_oldest_free_candidate(self):
        assert fifo_promotion(self.candidates, lambda c: c["id"] != 11) == 12

    def test_fifo_with_no_free_candidate(self):
        assert fifo_promotion(self.candidates, lambda c: False) is None

    def test_policy_from_environment(self, monkeypatch):
        assert get_waitlist_policy() is manual_promotion
        monkeypatch.setenv("WAITLIST_POLICY", "FIFO")
        assert get_waitlist_policy() is fifo_promotion

    def test_unknown_policy(self):
        with pytest.raises(ValueError):
            get_waitlist_policy("lottery")
