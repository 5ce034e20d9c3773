"""Pure signup rule functions: no DB, no volunteer_portal.models imports."""

from __future__ import annotations

from collections import namedtuple
from datetime import datetime

from volunteer_portal import clock


# ---------------------------------------------------------------------------
# Types
# ---------------------------------------------------------------------------

RuleResult = namedtuple("RuleResult", ["allowed", "reason"])

REQUESTABLE_STATUSES = ("CONFIRMED", "PENDING")


# ---------------------------------------------------------------------------
# Capacity
# ---------------------------------------------------------------------------

def check_capacity(confirmed_count: int, capacity: int) -> RuleResult:
    """Check that a shift still has a CONFIRMED place free."""
    if confirmed_count >= capacity:
        return RuleResult(False, f"Shift is full ({confirmed_count}/{capacity})")
    return RuleResult(True, "")


def check_block_capacity(confirmed_count: int, capacity: int, block_size: int) -> RuleResult:
    """Check that ``block_size`` more CONFIRMED places fit on a shift."""
    remaining = max(capacity - confirmed_count, 0)
    if block_size > remaining:
        return RuleResult(
            False, f"Shift has {remaining} place(s) left; {block_size} requested"
        )
    return RuleResult(True, "")


def resolve_signup_status(requested: str, confirmed_count: int, capacity: int) -> str:
    """Pick the stored status for a new signup.

    Capacity only limits CONFIRMED places: a full shift turns the request
    into a WAITLISTED signup instead of rejecting it.
    """
    if requested not in REQUESTABLE_STATUSES:
        raise ValueError(f"Cannot request status {requested!r}")
    if not check_capacity(confirmed_count, capacity).allowed:
        return "WAITLISTED"
    return requested


# ---------------------------------------------------------------------------
# Same-day bookings
# ---------------------------------------------------------------------------

def describe_daily_conflict(shift_type_name: str, location: str, start: datetime) -> str:
    """User-facing reason naming the shift that already fills the day."""
    when = clock.format_civil(start, "%I:%M %p").lstrip("0")
    return (
        f"You already have a confirmed shift on this day: {shift_type_name} at "
        f"{location}, {when}. You can only sign up for one shift per day."
    )
