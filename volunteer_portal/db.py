import os
import sqlite3
from contextlib import contextmanager
from typing import Iterator

from volunteer_portal.errors import Conflict

# Canonical stored timestamp form; matches clock.to_db so SQL string
# comparison orders the same as instant comparison.
_NOW_SQL = "(strftime('%Y-%m-%dT%H:%M:%S+00:00', 'now'))"


def get_db_connection(db_path: str = ":memory:") -> sqlite3.Connection:
    """Return a sqlite3 connection with Row factory for dict-like access."""
    timeout = float(os.getenv("DB_BUSY_TIMEOUT_SECONDS", "5"))
    conn = sqlite3.connect(db_path, timeout=timeout, check_same_thread=False)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    return conn


@contextmanager
def transaction(conn: sqlite3.Connection) -> Iterator[sqlite3.Connection]:
    """Run a block inside one write transaction.

    ``BEGIN IMMEDIATE`` takes the database write lock before the first read,
    so capacity and uniqueness checks inside the block cannot interleave
    with another writer. Commits on success, rolls back on any exception.
    If the lock is not granted within the busy timeout the caller gets a
    ``Conflict``. A block entered while a transaction is already open joins
    it and leaves commit/rollback to the outer block.
    """
    if conn.in_transaction:
        yield conn
        return

    try:
        conn.execute("BEGIN IMMEDIATE")
    except sqlite3.OperationalError as exc:
        raise Conflict("The database is busy; please retry") from exc

    try:
        yield conn
    except BaseException:
        conn.rollback()
        raise
    else:
        conn.commit()


def create_tables(conn: sqlite3.Connection) -> None:
    """Create all tables and the indexes that back the uniqueness rules.

    This is called by the shared test fixture so every model's tests
    start with a fully-initialised schema.
    """
    conn.executescript(
        f"""
        CREATE TABLE IF NOT EXISTS users (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            email TEXT UNIQUE NOT NULL,
            name TEXT,
            role TEXT NOT NULL DEFAULT 'VOLUNTEER' CHECK(role IN ('VOLUNTEER', 'ADMIN')),
            created_at TEXT NOT NULL DEFAULT {_NOW_SQL}
        );

        CREATE TABLE IF NOT EXISTS friendships (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            user_id INTEGER NOT NULL,
            friend_id INTEGER NOT NULL,
            status TEXT NOT NULL DEFAULT 'PENDING' CHECK(status IN ('PENDING', 'ACCEPTED', 'DECLINED')),
            created_at TEXT NOT NULL DEFAULT {_NOW_SQL},
            FOREIGN KEY (user_id) REFERENCES users(id),
            FOREIGN KEY (friend_id) REFERENCES users(id),
            UNIQUE(user_id, friend_id)
        );

        CREATE TABLE IF NOT EXISTS locations (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            name TEXT UNIQUE NOT NULL,
            default_meals_served INTEGER NOT NULL DEFAULT 0
        );

        CREATE TABLE IF NOT EXISTS meals_served (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            civil_day TEXT NOT NULL,
            location TEXT NOT NULL,
            meals_served INTEGER NOT NULL,
            UNIQUE(civil_day, location)
        );

        CREATE TABLE IF NOT EXISTS shift_types (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            name TEXT UNIQUE NOT NULL,
            description TEXT
        );

        CREATE TABLE IF NOT EXISTS shifts (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            shift_type_id INTEGER NOT NULL,
            location TEXT NOT NULL,
            starts_at TEXT NOT NULL,
            ends_at TEXT NOT NULL,
            capacity INTEGER NOT NULL CHECK(capacity >= 0),
            notes TEXT,
            created_at TEXT NOT NULL DEFAULT {_NOW_SQL},
            FOREIGN KEY (shift_type_id) REFERENCES shift_types(id),
            CHECK(starts_at < ends_at)
        );

        CREATE INDEX IF NOT EXISTS ix_shifts_location_start ON shifts(location, starts_at);

        CREATE TABLE IF NOT EXISTS group_bookings (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            shift_id INTEGER NOT NULL,
            leader_id INTEGER NOT NULL,
            name TEXT NOT NULL,
            created_at TEXT NOT NULL DEFAULT {_NOW_SQL},
            FOREIGN KEY (shift_id) REFERENCES shifts(id),
            FOREIGN KEY (leader_id) REFERENCES users(id)
        );

        CREATE TABLE IF NOT EXISTS signups (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            user_id INTEGER NOT NULL,
            shift_id INTEGER NOT NULL,
            group_booking_id INTEGER,
            status TEXT NOT NULL CHECK(status IN (
                'PENDING', 'CONFIRMED', 'WAITLISTED', 'REGULAR_PENDING', 'NO_SHOW', 'CANCELED'
            )),
            civil_day TEXT NOT NULL,
            note TEXT,
            created_at TEXT NOT NULL DEFAULT {_NOW_SQL},
            canceled_at TEXT,
            FOREIGN KEY (user_id) REFERENCES users(id),
            FOREIGN KEY (shift_id) REFERENCES shifts(id),
            FOREIGN KEY (group_booking_id) REFERENCES group_bookings(id),
            UNIQUE(user_id, shift_id)
        );

        CREATE UNIQUE INDEX IF NOT EXISTS ux_signups_user_day_confirmed
            ON signups(user_id, civil_day) WHERE status = 'CONFIRMED';

        CREATE TABLE IF NOT EXISTS achievements (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            name TEXT UNIQUE NOT NULL,
            description TEXT NOT NULL DEFAULT '',
            category TEXT NOT NULL CHECK(category IN (
                'MILESTONE', 'DEDICATION', 'SPECIALIZATION', 'COMMUNITY', 'IMPACT'
            )),
            icon TEXT,
            criteria TEXT NOT NULL,
            points INTEGER NOT NULL DEFAULT 0,
            is_active BOOLEAN NOT NULL DEFAULT 1,
            created_at TEXT NOT NULL DEFAULT {_NOW_SQL}
        );

        CREATE TABLE IF NOT EXISTS user_achievements (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            user_id INTEGER NOT NULL,
            achievement_id INTEGER NOT NULL,
            unlocked_at TEXT NOT NULL DEFAULT {_NOW_SQL},
            progress REAL NOT NULL DEFAULT 0,
            FOREIGN KEY (user_id) REFERENCES users(id),
            FOREIGN KEY (achievement_id) REFERENCES achievements(id),
            UNIQUE(user_id, achievement_id)
        );

        CREATE TABLE IF NOT EXISTS surveys (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            title TEXT NOT NULL,
            description TEXT,
            questions TEXT NOT NULL,
            trigger_type TEXT NOT NULL CHECK(trigger_type IN (
                'SHIFTS_COMPLETED', 'HOURS_VOLUNTEERED', 'FIRST_SHIFT', 'MANUAL'
            )),
            trigger_value REAL NOT NULL DEFAULT 0,
            trigger_max_value REAL,
            is_active BOOLEAN NOT NULL DEFAULT 1,
            created_at TEXT NOT NULL DEFAULT {_NOW_SQL}
        );

        CREATE TABLE IF NOT EXISTS survey_assignments (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            survey_id INTEGER NOT NULL,
            user_id INTEGER NOT NULL,
            status TEXT NOT NULL DEFAULT 'PENDING' CHECK(status IN (
                'PENDING', 'DISMISSED', 'COMPLETED', 'EXPIRED'
            )),
            assigned_at TEXT NOT NULL DEFAULT {_NOW_SQL},
            completed_at TEXT,
            dismissed_at TEXT,
            FOREIGN KEY (survey_id) REFERENCES surveys(id),
            FOREIGN KEY (user_id) REFERENCES users(id)
        );

        CREATE UNIQUE INDEX IF NOT EXISTS ux_survey_assignments_live
            ON survey_assignments(user_id, survey_id) WHERE status != 'EXPIRED';

        CREATE TABLE IF NOT EXISTS survey_tokens (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            token TEXT UNIQUE NOT NULL,
            assignment_id INTEGER UNIQUE NOT NULL,
            expires_at TEXT,
            used_at TEXT,
            created_at TEXT NOT NULL DEFAULT {_NOW_SQL},
            FOREIGN KEY (assignment_id) REFERENCES survey_assignments(id)
        );

        CREATE TABLE IF NOT EXISTS survey_responses (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            assignment_id INTEGER UNIQUE NOT NULL,
            answers TEXT NOT NULL,
            submitted_at TEXT NOT NULL DEFAULT {_NOW_SQL},
            FOREIGN KEY (assignment_id) REFERENCES survey_assignments(id)
        );

        CREATE TABLE IF NOT EXISTS notifications (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            user_id INTEGER NOT NULL,
            type TEXT NOT NULL CHECK(type IN (
                'SIGNUP_CREATED', 'SHIFT_MOVED', 'ACHIEVEMENT_UNLOCKED', 'SURVEY_ASSIGNED', 'WAITLIST_PROMOTED'
            )),
            title TEXT NOT NULL,
            message TEXT NOT NULL,
            related_id INTEGER,
            is_read BOOLEAN NOT NULL DEFAULT 0,
            created_at TEXT NOT NULL DEFAULT {_NOW_SQL},
            sent_at TEXT,
            error TEXT,
            FOREIGN KEY (user_id) REFERENCES users(id)
        );
        """
    )
