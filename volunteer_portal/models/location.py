"""Locations and the meals-served figures the impact estimate reads."""

from __future__ import annotations

import sqlite3
from datetime import date
from typing import Optional

from pydantic import BaseModel, Field

from volunteer_portal.db import transaction


class Location(BaseModel):
    id: int
    name: str
    default_meals_served: int


class MealsServedRecord(BaseModel):
    civil_day: date
    location: str
    meals_served: int = Field(ge=0)


def upsert_location(db: sqlite3.Connection, name: str, default_meals_served: int = 0) -> Location:
    with transaction(db):
        db.execute(
            """
            INSERT INTO locations (name, default_meals_served) VALUES (?, ?)
            ON CONFLICT(name) DO UPDATE SET default_meals_served = excluded.default_meals_served
            """,
            (name, default_meals_served),
        )
    return get_location(db, name)


def get_location(db: sqlite3.Connection, name: str) -> Optional[Location]:
    row = db.execute("SELECT * FROM locations WHERE name = ?", (name,)).fetchone()
    if row is None:
        return None
    return Location(id=row["id"], name=row["name"], default_meals_served=row["default_meals_served"])


def list_locations(db: sqlite3.Connection) -> list[Location]:
    rows = db.execute("SELECT * FROM locations ORDER BY name").fetchall()
    return [
        Location(id=r["id"], name=r["name"], default_meals_served=r["default_meals_served"])
        for r in rows
    ]


def record_meals_served(db: sqlite3.Connection, record: MealsServedRecord) -> None:
    """Store (or overwrite) the meals actually served at a location on a day."""
    with transaction(db):
        db.execute(
            """
            INSERT INTO meals_served (civil_day, location, meals_served) VALUES (?, ?, ?)
            ON CONFLICT(civil_day, location) DO UPDATE SET meals_served = excluded.meals_served
            """,
            (record.civil_day.isoformat(), record.location, record.meals_served),
        )
