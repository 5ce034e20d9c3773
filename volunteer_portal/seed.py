"""Seed helpers: the standard achievement catalogue and a demo week of shifts."""

from __future__ import annotations

import sqlite3
from datetime import date, timedelta

from volunteer_portal import clock
from volunteer_portal.achievements.criteria import parse_criteria
from volunteer_portal.models.achievement import AchievementCreate, create_achievement
from volunteer_portal.models.location import upsert_location
from volunteer_portal.models.shift import ShiftCreate, create_shift, create_shift_type


# ---------------------------------------------------------------------------
# Achievement catalogue
# ---------------------------------------------------------------------------

def _achievement(name, description, category, icon, kind, value, points) -> dict:
    return {
        "name": name,
        "description": description,
        "category": category,
        "icon": icon,
        "criteria": {"type": kind, "value": value},
        "points": points,
    }


ACHIEVEMENT_DEFINITIONS = [
    # Shift milestones
    _achievement("First Steps", "Complete your first volunteer shift", "MILESTONE", "🌟", "shifts_completed", 1, 10),
    _achievement("Getting Started", "Complete 5 volunteer shifts", "MILESTONE", "⭐", "shifts_completed", 5, 25),
    _achievement("Making a Difference", "Complete 10 volunteer shifts", "MILESTONE", "🎯", "shifts_completed", 10, 50),
    _achievement("Veteran Volunteer", "Complete 25 volunteer shifts", "MILESTONE", "🏆", "shifts_completed", 25, 100),
    _achievement("Community Champion", "Complete 50 volunteer shifts", "MILESTONE", "👑", "shifts_completed", 50, 200),
    # Hours
    _achievement("Time Keeper", "Volunteer for 10 hours", "DEDICATION", "⏰", "hours_volunteered", 10, 30),
    _achievement("Dedicated Helper", "Volunteer for 25 hours", "DEDICATION", "💪", "hours_volunteered", 25, 75),
    _achievement("Marathon Volunteer", "Volunteer for 50 hours", "DEDICATION", "🏃", "hours_volunteered", 50, 150),
    _achievement("Century Club", "Volunteer for 100 hours", "DEDICATION", "💯", "hours_volunteered", 100, 300),
    # Consistency
    _achievement("Consistent Helper", "Volunteer for 3 consecutive months", "DEDICATION", "📅", "consecutive_months", 3, 50),
    _achievement("Reliable Volunteer", "Volunteer for 6 consecutive months", "DEDICATION", "🗓️", "consecutive_months", 6, 100),
    _achievement("Year-Round Helper", "Volunteer for 12 consecutive months", "DEDICATION", "🎊", "consecutive_months", 12, 200),
    # Anniversaries
    _achievement("One Year Strong", "Volunteer for one full year", "MILESTONE", "🎂", "years_volunteering", 1, 150),
    _achievement("Two Year Veteran", "Volunteer for two full years", "MILESTONE", "🎉", "years_volunteering", 2, 300),
    # Impact
    _achievement("Meal Master", "Help prepare an estimated 100 meals", "IMPACT", "🍽️", "community_impact", 100, 75),
    _achievement("Food Hero", "Help prepare an estimated 500 meals", "IMPACT", "🦸", "community_impact", 500, 200),
    _achievement("Hunger Fighter", "Help prepare an estimated 1000 meals", "IMPACT", "⚔️", "community_impact", 1000, 400),
    # Friends
    _achievement("Social Butterfly", "Make 3 friends in the volunteer community", "COMMUNITY", "🦋", "friends_count", 3, 25),
    _achievement("Team Player", "Make 5 friends in the volunteer community", "COMMUNITY", "🤝", "friends_count", 5, 50),
    _achievement("Community Connector", "Make 10 friends in the volunteer community", "COMMUNITY", "🌐", "friends_count", 10, 100),
    _achievement("Networking Pro", "Make 20 friends in the volunteer community", "COMMUNITY", "🎭", "friends_count", 20, 200),
    _achievement("Community Leader", "Make 50 friends in the volunteer community", "COMMUNITY", "⭐", "friends_count", 50, 500),
]


def seed_achievements(db: sqlite3.Connection) -> int:
    """Load the standard achievement catalogue.

    Idempotent: skips any achievement whose name already exists.
    Returns the number of achievements created.
    """
    created = 0
    for entry in ACHIEVEMENT_DEFINITIONS:
        existing = db.execute(
            "SELECT 1 FROM achievements WHERE name = ?", (entry["name"],)
        ).fetchone()
        if existing:
            continue
        create_achievement(
            db,
            AchievementCreate(
                name=entry["name"],
                description=entry["description"],
                category=entry["category"],
                icon=entry["icon"],
                criteria=parse_criteria(entry["criteria"]),
                points=entry["points"],
            ),
        )
        created += 1
    return created


# ---------------------------------------------------------------------------
# Demo shifts
# ---------------------------------------------------------------------------

SHIFT_TYPE_DATA = [
    # (name, start hour, end hour, capacity)
    ("Kitchen Prep", 9, 12, 6),
    ("Lunch Service", 12, 15, 8),
    ("Dinner Service", 17, 20, 8),
]

LOCATION_DATA = [
    ("Wellington", 60),
    ("Glen Innes", 0),
    ("Onehunga", 40),
]


def seed_week(db: sqlite3.Connection, first_day: date, days: int = 7) -> int:
    """Create every shift type at every location for ``days`` civil days.

    Idempotent: skips any (start, location, shift type) that already exists.
    Returns the number of shifts created.
    """
    for name, default_meals in LOCATION_DATA:
        upsert_location(db, name, default_meals)
    type_ids = {name: create_shift_type(db, name) for name, _, _, _ in SHIFT_TYPE_DATA}

    created = 0
    for offset in range(days):
        day = first_day + timedelta(days=offset)
        for location, _ in LOCATION_DATA:
            for name, start_hour, end_hour, capacity in SHIFT_TYPE_DATA:
                start = clock.civil_datetime(day, start_hour)
                existing = db.execute(
                    "SELECT 1 FROM shifts WHERE starts_at = ? AND location = ? AND shift_type_id = ?",
                    (clock.to_db(start), location, type_ids[name]),
                ).fetchone()
                if existing:
                    continue
                create_shift(
                    db,
                    ShiftCreate(
                        shift_type_id=type_ids[name],
                        location=location,
                        start=start,
                        end=clock.civil_datetime(day, end_hour),
                        capacity=capacity,
                    ),
                )
                created += 1
    return created
