"""
Per-user live push connections.

Each open server-sent-events stream is a `LiveConnection` owned by the
request's event loop. The `ConnectionRegistry` maps user IDs to their open
connections and is written to from request handlers while the notification
bridge thread delivers into it.
"""

import asyncio
import logging
import threading
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import AsyncIterator, Dict, List, Optional

from hrflow.services.event_bus import JobEvent
from hrflow.utils.errors import ConnectionClosedError

logger = logging.getLogger(__name__)

CONNECTED_COMMENT = ": connected\n\n"
KEEP_ALIVE_COMMENT = ": keep-alive\n\n"


def format_sse(event: JobEvent) -> str:
    """Encode an event as one server-sent-events message."""
    return f"event: {event.type}\ndata: {event.to_json()}\n\n"


class ConnectionState(str, Enum):
    """Lifecycle of a live connection."""

    CONNECTED = "connected"
    STREAMING = "streaming"
    CLOSED = "closed"


# Queued to wake a waiting stream on close
_CLOSE = object()


class LiveConnection:
    """
    One open push channel to a user's client.

    Must be created on the event loop that will stream it; `send` may be
    called from any thread.
    """

    def __init__(
        self,
        user_id: str,
        max_queue_size: int = 100,
        loop: Optional[asyncio.AbstractEventLoop] = None,
    ):
        self.connection_id = str(uuid.uuid4())
        self.user_id = user_id
        self.connected_at = datetime.now(timezone.utc)
        self.state = ConnectionState.CONNECTED
        self._loop = loop or asyncio.get_running_loop()
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=max_queue_size)

    @property
    def is_closed(self) -> bool:
        return self.state == ConnectionState.CLOSED

    def send(self, event: JobEvent) -> None:
        """
        Queue an event for this connection.

        Raises:
            ConnectionClosedError: The connection or its event loop is gone.
        """
        if self.is_closed:
            raise ConnectionClosedError(f"Connection {self.connection_id} is closed")

        try:
            self._loop.call_soon_threadsafe(self._put, event)
        except RuntimeError as e:
            self.state = ConnectionState.CLOSED
            raise ConnectionClosedError(
                f"Event loop for connection {self.connection_id} is closed"
            ) from e

    def _put(self, item: object) -> None:
        try:
            self._queue.put_nowait(item)
        except asyncio.QueueFull:
            if item is not _CLOSE:
                logger.warning(
                    f"Dropping event for user {self.user_id}: connection queue full",
                    extra={"user_id": self.user_id, "connection_id": self.connection_id},
                )

    async def stream(self, heartbeat_seconds: float = 15.0) -> AsyncIterator[str]:
        """
        Yield SSE-encoded messages until the connection is closed.

        A keep-alive comment is sent whenever no event arrives within
        `heartbeat_seconds`.
        """
        self.state = ConnectionState.STREAMING
        yield CONNECTED_COMMENT

        try:
            while not self.is_closed:
                try:
                    item = await asyncio.wait_for(self._queue.get(), timeout=heartbeat_seconds)
                except asyncio.TimeoutError:
                    yield KEEP_ALIVE_COMMENT
                    continue

                if item is _CLOSE:
                    break
                yield format_sse(item)
        finally:
            self.state = ConnectionState.CLOSED

    def close(self) -> None:
        """Close the connection and wake its stream."""
        if self.is_closed:
            return

        self.state = ConnectionState.CLOSED
        try:
            self._loop.call_soon_threadsafe(self._put, _CLOSE)
        except RuntimeError:
            logger.debug(f"Event loop already closed for connection {self.connection_id}")


class ConnectionRegistry:
    """Thread-safe mapping of user IDs to their live connections."""

    def __init__(self):
        self._connections: Dict[str, Dict[str, LiveConnection]] = {}
        self._lock = threading.Lock()

    def add_connection(self, user_id: str, connection: LiveConnection) -> LiveConnection:
        """Register a connection; it receives events published from now on."""
        with self._lock:
            self._connections.setdefault(user_id, {})[connection.connection_id] = connection
            count = len(self._connections[user_id])

        logger.info(
            f"User {user_id} connected ({count} open connection(s))",
            extra={"user_id": user_id, "connection_id": connection.connection_id},
        )
        return connection

    def remove_connection(self, user_id: str, connection: LiveConnection) -> bool:
        """Deregister and close a connection. Returns False if it was not registered."""
        with self._lock:
            user_connections = self._connections.get(user_id, {})
            removed = user_connections.pop(connection.connection_id, None)
            if not user_connections:
                self._connections.pop(user_id, None)

        connection.close()
        if removed is not None:
            logger.info(
                f"User {user_id} disconnected",
                extra={"user_id": user_id, "connection_id": connection.connection_id},
            )
        return removed is not None

    def deliver(self, user_id: str, event: JobEvent) -> int:
        """
        Send an event to every open connection of a user.

        Dead connections are dropped from the registry.

        Returns:
            Number of connections the event was queued on.
        """
        with self._lock:
            targets: List[LiveConnection] = list(self._connections.get(user_id, {}).values())

        delivered = 0
        for connection in targets:
            try:
                connection.send(event)
                delivered += 1
            except ConnectionClosedError as e:
                logger.debug(f"Dropping dead connection for user {user_id}: {str(e)}")
                self.remove_connection(user_id, connection)

        return delivered

    def get_connection_count(self, user_id: str) -> int:
        """Open connections for one user."""
        with self._lock:
            return len(self._connections.get(user_id, {}))

    def get_total_connections(self) -> int:
        """Open connections across all users."""
        with self._lock:
            return sum(len(connections) for connections in self._connections.values())

    def close_all(self) -> None:
        """Close and forget every connection."""
        with self._lock:
            connections = [
                connection
                for user_connections in self._connections.values()
                for connection in user_connections.values()
            ]
            self._connections.clear()

        for connection in connections:
            connection.close()
        logger.info(f"Closed {len(connections)} live connection(s)")
