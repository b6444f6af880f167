"""Forwards job events from the pub/sub bus to live user connections."""

import logging
import threading
from typing import Optional

from redis.exceptions import RedisError

from hrflow.services.connection_registry import ConnectionRegistry
from hrflow.services.event_bus import JobEvent, RedisPubSubBus, Subscription

logger = logging.getLogger(__name__)


class NotificationBridge:
    """
    Background listener on the notifications channel.

    Runs in a daemon thread of the API process. Events for users with no
    open connection are not kept; the durable notification written by the
    worker covers them.
    """

    def __init__(
        self,
        bus: RedisPubSubBus,
        registry: ConnectionRegistry,
        channel: str = "employee-notifications",
        poll_timeout: float = 1.0,
        reconnect_delay: float = 5.0,
    ):
        self.bus = bus
        self.registry = registry
        self.channel = channel
        self.poll_timeout = poll_timeout
        self.reconnect_delay = reconnect_delay
        self._subscription: Optional[Subscription] = None
        self._thread: Optional[threading.Thread] = None
        self._stop_event = threading.Event()

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def handle_event(self, event: JobEvent) -> int:
        """
        Deliver one event to its user's live connections.

        Never raises; returns the number of connections reached.
        """
        if not event.user_id:
            logger.debug(f"Event {event.type} for job {event.job_id} has no user, not forwarded")
            return 0

        try:
            delivered = self.registry.deliver(event.user_id, event)
        except Exception as e:
            logger.error(
                f"Failed to deliver {event.type} event to user {event.user_id}: {str(e)}",
                exc_info=True,
                extra={"user_id": event.user_id, "job_id": event.job_id},
            )
            return 0

        logger.debug(
            f"Forwarded {event.type} for job {event.job_id} to {delivered} connection(s)",
            extra={"user_id": event.user_id, "job_id": event.job_id},
        )
        return delivered

    def start(self) -> None:
        """Subscribe to the channel and start the listener thread."""
        if self.is_running:
            return

        self._stop_event.clear()
        self._subscription = self.bus.subscribe(self.channel)
        self._thread = threading.Thread(
            target=self._run,
            name="notification-bridge",
            daemon=True,
        )
        self._thread.start()
        logger.info(f"Notification bridge listening on {self.channel}")

    def stop(self, timeout: float = 5.0) -> None:
        """Stop the listener thread and close the subscription."""
        self._stop_event.set()

        if self._thread is not None:
            self._thread.join(timeout=timeout)
            self._thread = None

        if self._subscription is not None:
            try:
                self._subscription.close()
            except RedisError as e:
                logger.warning(f"Error closing notification subscription: {str(e)}")
            self._subscription = None

        logger.info("Notification bridge stopped")

    def _run(self) -> None:
        while not self._stop_event.is_set():
            try:
                event = self._subscription.get_event(timeout=self.poll_timeout)
            except RedisError as e:
                logger.error(f"Notification subscription error, retrying in {self.reconnect_delay}s: {str(e)}")
                self._stop_event.wait(self.reconnect_delay)
                continue

            if event is not None:
                self.handle_event(event)
