"""Tests for the pub/sub bus and the notification bridge."""

import asyncio
from unittest.mock import MagicMock

import pytest

from hrflow.services.connection_registry import ConnectionRegistry, LiveConnection
from hrflow.services.event_bus import JobEvent, RedisPubSubBus
from hrflow.services.notification_bridge import NotificationBridge


CHANNEL = "employee-notifications"


def make_event(user_id="user-1"):
    return JobEvent(type="employee_created", user_id=user_id, job_id="job-1", status="success")


@pytest.fixture
def bus(redis_client):
    return RedisPubSubBus(redis_client)


# =============================================================================
# Bus Tests
# =============================================================================

class TestRedisPubSubBus:
    """Test cases for RedisPubSubBus."""

    def test_publish_and_receive(self, bus):
        """Test a subscriber receives a published event."""
        subscription = bus.subscribe(CHANNEL)
        try:
            receivers = bus.publish(CHANNEL, make_event())
            event = subscription.get_event(timeout=1.0)
        finally:
            subscription.close()

        assert receivers == 1
        assert event.type == "employee_created"
        assert event.user_id == "user-1"
        assert event.job_id == "job-1"

    def test_publish_without_subscribers(self, bus):
        """Test events with no listener are dropped."""
        assert bus.publish(CHANNEL, make_event()) == 0

    def test_malformed_payload_is_ignored(self, bus, redis_client):
        """Test messages that are not job events are skipped."""
        subscription = bus.subscribe(CHANNEL)
        try:
            redis_client.publish(CHANNEL, "not json")
            assert subscription.get_event(timeout=1.0) is None
        finally:
            subscription.close()

    def test_wire_format(self):
        """Test events serialize with camelCase keys."""
        payload = make_event().to_payload()

        assert payload["userId"] == "user-1"
        assert payload["jobId"] == "job-1"
        assert "error" not in payload
        assert "timestamp" in payload


# =============================================================================
# Bridge Tests
# =============================================================================

class TestNotificationBridge:
    """Test cases for NotificationBridge."""

    def test_event_without_user_is_not_forwarded(self, bus):
        """Test events lacking a user ID are dropped."""
        registry = MagicMock()
        bridge = NotificationBridge(bus, registry)

        assert bridge.handle_event(make_event(user_id=None)) == 0
        registry.deliver.assert_not_called()

    def test_delivery_error_is_contained(self, bus):
        """Test a registry failure does not escape the bridge."""
        registry = MagicMock()
        registry.deliver.side_effect = RuntimeError("boom")
        bridge = NotificationBridge(bus, registry)

        assert bridge.handle_event(make_event()) == 0

    def test_forwards_published_events(self, bus):
        """Test an event published on the bus reaches the user's connection."""
        async def scenario():
            registry = ConnectionRegistry()
            connection = registry.add_connection("user-1", LiveConnection("user-1"))
            stream = connection.stream(heartbeat_seconds=5)
            await asyncio.wait_for(stream.__anext__(), timeout=1.0)

            bridge = NotificationBridge(bus, registry, channel=CHANNEL, poll_timeout=0.05)
            bridge.start()
            try:
                assert bridge.is_running
                bus.publish(CHANNEL, make_event())
                message = await asyncio.wait_for(stream.__anext__(), timeout=5.0)
            finally:
                await asyncio.to_thread(bridge.stop)
                registry.close_all()
            return message, bridge.is_running

        message, running = asyncio.run(scenario())

        assert message.startswith("event: employee_created\ndata: ")
        assert running is False
