"""Live connection registry for pushing notification events to clients.

The registry is an object owned by the application (``app.state.registry``)
rather than module state. It only reaches clients connected to this
process; a deployment with several workers needs a shared pub/sub behind
the same ``register``/``remove``/``broadcast`` surface.
"""

from __future__ import annotations

import logging
import queue
import threading
from collections import defaultdict
from typing import Any

logger = logging.getLogger(__name__)


class ConnectionRegistry:
    def __init__(self, max_queue_size: int = 100):
        self._lock = threading.Lock()
        self._connections: dict[int, dict[str, queue.Queue]] = defaultdict(dict)
        self._max_queue_size = max_queue_size

    def register(self, user_id: int, connection_id: str) -> queue.Queue:
        """Open a connection for a user and return the queue its events land on."""
        events: queue.Queue = queue.Queue(maxsize=self._max_queue_size)
        with self._lock:
            self._connections[user_id][connection_id] = events
        logger.debug("Registered connection %s for user %s", connection_id, user_id)
        return events

    def remove(self, user_id: int, connection_id: str) -> None:
        with self._lock:
            user_connections = self._connections.get(user_id)
            if not user_connections:
                return
            user_connections.pop(connection_id, None)
            if not user_connections:
                del self._connections[user_id]

    def broadcast(self, user_id: int, event: dict[str, Any]) -> int:
        """Queue an event on every open connection of a user.

        A connection whose queue is full misses the event rather than
        blocking the sender. Returns the number of connections reached.
        """
        with self._lock:
            targets = list(self._connections.get(user_id, {}).items())

        delivered = 0
        for connection_id, events in targets:
            try:
                events.put_nowait(event)
                delivered += 1
            except queue.Full:
                logger.warning("Dropping event for slow connection %s", connection_id)
        return delivered

    def connection_count(self, user_id: int | None = None) -> int:
        with self._lock:
            if user_id is not None:
                return len(self._connections.get(user_id, {}))
            return sum(len(c) for c in self._connections.values())
