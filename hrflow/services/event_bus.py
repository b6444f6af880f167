"""
Job outcome events over Redis pub/sub.

Workers publish one event per job outcome on a named channel; every
subscribed process (the API's notification bridge) receives it. Delivery is
fire-and-forget: events published while nobody listens are lost, which is
why each outcome is also stored as a durable notification.
"""

import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from redis import Redis
from redis.client import PubSub

logger = logging.getLogger(__name__)


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class JobEvent(BaseModel):
    """Outcome of one job, as broadcast to live clients."""

    model_config = ConfigDict(populate_by_name=True)

    type: str
    user_id: Optional[str] = Field(default=None, alias="userId")
    job_id: Optional[str] = Field(default=None, alias="jobId")
    status: str
    data: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
    timestamp: str = Field(default_factory=_now_iso)

    def to_json(self) -> str:
        """Wire format: camelCase keys, unset optionals omitted."""
        return self.model_dump_json(by_alias=True, exclude_none=True)

    def to_payload(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")


class Subscription:
    """A channel subscription read by polling."""

    def __init__(self, pubsub: PubSub, channel: str):
        self._pubsub = pubsub
        self.channel = channel

    def get_event(self, timeout: float = 1.0) -> Optional[JobEvent]:
        """
        Wait up to `timeout` seconds for the next event.

        Returns None on timeout and for payloads that are not job events.
        """
        message = self._pubsub.get_message(ignore_subscribe_messages=True, timeout=timeout)
        if message is None or message.get("type") != "message":
            return None

        raw = message.get("data")
        try:
            return JobEvent.model_validate(json.loads(raw))
        except (TypeError, ValueError, ValidationError) as e:
            logger.warning(
                f"Ignoring malformed event on {self.channel}: {str(e)}",
                extra={"channel": self.channel},
            )
            return None

    def close(self) -> None:
        """Unsubscribe and release the connection."""
        try:
            self._pubsub.unsubscribe(self.channel)
        finally:
            self._pubsub.close()


class RedisPubSubBus:
    """Publishes and subscribes to job events on Redis channels."""

    def __init__(self, redis_client: Redis):
        self.redis = redis_client

    def publish(self, channel: str, event: JobEvent) -> int:
        """
        Broadcast an event.

        Returns:
            Number of subscribers that received it.
        """
        receivers = self.redis.publish(channel, event.to_json())
        logger.debug(
            f"Published {event.type} for job {event.job_id} to {receivers} subscriber(s)",
            extra={"channel": channel, "job_id": event.job_id, "event_type": event.type},
        )
        return receivers

    def subscribe(self, channel: str) -> Subscription:
        """Open a subscription to a channel."""
        pubsub = self.redis.pubsub(ignore_subscribe_messages=True)
        pubsub.subscribe(channel)
        logger.info(f"Subscribed to channel {channel}")
        return Subscription(pubsub, channel)
