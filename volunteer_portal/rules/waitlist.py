"""Waitlist promotion policies.

A policy receives the shift's WAITLISTED signups (oldest first) and a
predicate telling whether a candidate's civil day is still free, and
returns the signup id to promote, or None to leave the waitlist alone.
"""

from __future__ import annotations

import os
import sqlite3
from typing import Callable, Optional

WaitlistPolicy = Callable[[list[sqlite3.Row], Callable[[sqlite3.Row], bool]], Optional[int]]


def manual_promotion(candidates: list[sqlite3.Row], day_is_free: Callable[[sqlite3.Row], bool]) -> Optional[int]:
    """Never promote automatically; an admin confirms waitlisted signups."""
    return None


def fifo_promotion(candidates: list[sqlite3.Row], day_is_free: Callable[[sqlite3.Row], bool]) -> Optional[int]:
    """Promote the earliest waitlisted signup whose day is still free."""
    for candidate in candidates:
        if day_is_free(candidate):
            return candidate["id"]
    return None


POLICIES: dict[str, WaitlistPolicy] = {
    "manual": manual_promotion,
    "fifo": fifo_promotion,
}


def get_waitlist_policy(name: Optional[str] = None) -> WaitlistPolicy:
    key = (name or os.getenv("WAITLIST_POLICY") or "manual").strip().lower()
    try:
        return POLICIES[key]
    except KeyError:
        raise ValueError(f"Unknown waitlist policy {key!r}") from None
