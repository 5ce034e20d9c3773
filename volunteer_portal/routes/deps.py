"""Request-scoped dependencies shared by the routers."""

from __future__ import annotations

import sqlite3
from typing import Iterator

from fastapi import Depends, Request

from volunteer_portal.db import get_db_connection
from volunteer_portal.notifications.sender import NotificationSink


def get_db(request: Request) -> Iterator[sqlite3.Connection]:
    """Open a connection for one request.

    Each request gets its own connection so that concurrent requests hold
    separate transactions.
    """
    conn = get_db_connection(request.app.state.db_path)
    try:
        yield conn
    finally:
        conn.close()


def get_sink(request: Request, db: sqlite3.Connection = Depends(get_db)) -> NotificationSink:
    return NotificationSink(db, registry=getattr(request.app.state, "registry", None))
