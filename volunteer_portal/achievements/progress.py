"""Volunteer progress figures derived from shift and friendship history."""

from __future__ import annotations

import os
import sqlite3
from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, Field

from volunteer_portal import clock
from volunteer_portal.models.user import count_accepted_friends


class UserProgress(BaseModel):
    shifts_completed: int = 0
    hours_volunteered: float = 0
    consecutive_months: int = 0
    years_volunteering: int = 0
    community_impact: float = 0
    friends_count: int = 0
    shift_type_counts: dict[str, int] = Field(default_factory=dict)
    first_shift_start: Optional[datetime] = None


def meals_per_shift_estimate() -> int:
    return int(os.getenv("MEALS_PER_SHIFT_ESTIMATE", "50"))


def get_completed_shifts(
    db: sqlite3.Connection, user_id: int, now: datetime
) -> list[sqlite3.Row]:
    """CONFIRMED signups whose shift has already ended, oldest first."""
    return db.execute(
        """
        SELECT sh.id AS shift_id, sh.starts_at, sh.ends_at, sh.location,
               st.name AS shift_type_name
        FROM signups su
        JOIN shifts sh ON sh.id = su.shift_id
        JOIN shift_types st ON st.id = sh.shift_type_id
        WHERE su.user_id = ?
          AND su.status = 'CONFIRMED'
          AND sh.ends_at < ?
        ORDER BY sh.starts_at
        """,
        (user_id, clock.to_db(now)),
    ).fetchall()


def longest_month_streak(months: set[str]) -> int:
    """Longest run of consecutive ``YYYY-MM`` months in the set."""
    ordinals = sorted(int(m[:4]) * 12 + int(m[5:7]) - 1 for m in months)
    best = current = 0
    previous = None
    for ordinal in ordinals:
        current = current + 1 if previous is not None and ordinal == previous + 1 else 1
        best = max(best, current)
        previous = ordinal
    return best


def full_years_between(start: date, end: date) -> int:
    years = end.year - start.year
    if (end.month, end.day) < (start.month, start.day):
        years -= 1
    return max(years, 0)


def estimate_meals(db: sqlite3.Connection, completed: list[sqlite3.Row]) -> float:
    """Meals a volunteer helped serve.

    Shifts are grouped by (civil day, location). A group counts the meals
    recorded for that day and location, else the location's default, else
    the per-shift estimate for each shift in the group.
    """
    groups: dict[tuple[str, str], int] = {}
    for row in completed:
        day = clock.civil_day(clock.from_db(row["starts_at"])).isoformat()
        key = (day, row["location"])
        groups[key] = groups.get(key, 0) + 1

    total = 0.0
    for (day, location), shift_count in groups.items():
        recorded = db.execute(
            "SELECT meals_served FROM meals_served WHERE civil_day = ? AND location = ?",
            (day, location),
        ).fetchone()
        if recorded is not None:
            total += recorded["meals_served"]
            continue
        default = db.execute(
            "SELECT default_meals_served FROM locations WHERE name = ?", (location,)
        ).fetchone()
        if default is not None and default["default_meals_served"] > 0:
            total += default["default_meals_served"]
        else:
            total += shift_count * meals_per_shift_estimate()
    return total


def calculate_user_progress(
    db: sqlite3.Connection, user_id: int, now: Optional[datetime] = None
) -> UserProgress:
    """Compute every progress figure the achievement criteria compare against."""
    now = now or clock.utcnow()
    completed = get_completed_shifts(db, user_id, now)

    hours = 0.0
    months: set[str] = set()
    type_counts: dict[str, int] = {}
    for row in completed:
        start = clock.from_db(row["starts_at"])
        end = clock.from_db(row["ends_at"])
        hours += (end - start).total_seconds() / 3600
        months.add(clock.civil_month(start))
        name = row["shift_type_name"]
        type_counts[name] = type_counts.get(name, 0) + 1

    first_start = clock.from_db(completed[0]["starts_at"]) if completed else None
    years = 0
    if first_start is not None:
        years = full_years_between(clock.civil_day(first_start), clock.civil_day(now))

    friends = count_accepted_friends(db, user_id)

    return UserProgress(
        shifts_completed=len(completed),
        hours_volunteered=round(hours, 2),
        consecutive_months=longest_month_streak(months),
        years_volunteering=years,
        community_impact=estimate_meals(db, completed),
        friends_count=friends,
        shift_type_counts=type_counts,
        first_shift_start=first_start,
    )
