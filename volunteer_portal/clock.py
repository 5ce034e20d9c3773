"""Civil-day arithmetic in the organisation's fixed timezone.

Every day boundary used for filtering, grouping or same-day collision
checks is computed here, never from server-local time. Boundaries are
taken from the zone's own midnights, so a day that contains a daylight
saving transition comes out 23 or 25 hours long.
"""

from __future__ import annotations

import logging
import os
from datetime import date, datetime, time, timedelta, timezone
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from volunteer_portal.errors import ValidationFailed

logger = logging.getLogger(__name__)

DEFAULT_TIMEZONE = "Pacific/Auckland"


def civil_zone() -> ZoneInfo:
    raw_name = (os.getenv("CIVIL_TIMEZONE") or "").strip() or DEFAULT_TIMEZONE
    try:
        return ZoneInfo(raw_name)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning("Unknown CIVIL_TIMEZONE %r, using %s", raw_name, DEFAULT_TIMEZONE)
        return ZoneInfo(DEFAULT_TIMEZONE)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _aware(instant: datetime) -> datetime:
    if instant.tzinfo is None:
        raise ValueError(f"Naive datetime is ambiguous: {instant!r}")
    return instant


def to_db(instant: datetime) -> str:
    """Serialize an aware datetime to the stored UTC text form."""
    return _aware(instant).astimezone(timezone.utc).isoformat(timespec="seconds")


def from_db(value: Optional[str]) -> Optional[datetime]:
    if value is None:
        return None
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def civil_day(instant: datetime) -> date:
    """Return the calendar date of ``instant`` in the civil zone."""
    return _aware(instant).astimezone(civil_zone()).date()


def civil_month(instant: datetime) -> str:
    return _aware(instant).astimezone(civil_zone()).strftime("%Y-%m")


def civil_datetime(day: date, hour: int, minute: int = 0) -> datetime:
    """Build the absolute instant for a wall-clock time on a civil day."""
    local = datetime.combine(day, time(hour, minute), tzinfo=civil_zone())
    return local.astimezone(timezone.utc)


def day_bounds(day: date) -> tuple[datetime, datetime]:
    """Return the half-open ``[start, end)`` UTC window of a civil day."""
    zone = civil_zone()
    start = datetime.combine(day, time.min, tzinfo=zone)
    end = datetime.combine(day + timedelta(days=1), time.min, tzinfo=zone)
    return start.astimezone(timezone.utc), end.astimezone(timezone.utc)


def parse_civil_date(value: str) -> date:
    """Parse ``YYYY-MM-DD`` as a civil date."""
    try:
        return date.fromisoformat(value)
    except (TypeError, ValueError):
        raise ValidationFailed(f"Invalid date {value!r}. Use YYYY-MM-DD.") from None


def format_civil(instant: datetime, fmt: str = "%a %d %b %Y, %I:%M %p") -> str:
    return _aware(instant).astimezone(civil_zone()).strftime(fmt)
