"""
Notification API Endpoints

Provides endpoints for:
- Listing durable job outcome notifications
- Marking notifications as read
- Live server-sent-events stream per user
- Live connection status
"""

import logging
from datetime import datetime, timezone
from typing import Annotated, Any, AsyncIterator, Dict

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import StreamingResponse

from hrflow.api.dependencies import get_container, get_current_user
from hrflow.container import AppContainer
from hrflow.services.connection_registry import LiveConnection

logger = logging.getLogger(__name__)

notifications_router = APIRouter(prefix="/api/notifications", tags=["Notifications"])


# =============================================================================
# Durable Notifications
# =============================================================================

@notifications_router.get("")
def list_notifications(
    user_id: Annotated[str, Depends(get_current_user)],
    container: Annotated[AppContainer, Depends(get_container)],
    page: Annotated[int, Query(ge=1)] = 1,
    limit: Annotated[int, Query(ge=1, le=100)] = 20,
    unread_only: Annotated[bool, Query(alias="unreadOnly")] = False,
) -> Dict[str, Any]:
    """List notifications newest first, with pagination and the unread count."""
    result = container.notifications.list_notifications(
        page=page,
        limit=limit,
        unread_only=unread_only,
    )
    return {"success": True, "data": result.to_dict()}


@notifications_router.patch("/read-all")
def mark_all_as_read(
    user_id: Annotated[str, Depends(get_current_user)],
    container: Annotated[AppContainer, Depends(get_container)],
) -> Dict[str, Any]:
    """Mark every unread notification as read."""
    updated = container.notifications.mark_all_as_read()
    return {
        "success": True,
        "data": {"message": "All notifications marked as read", "updated": updated},
    }


# =============================================================================
# Live Stream
# =============================================================================

@notifications_router.get("/subscribe")
async def subscribe(
    request: Request,
    user_id: Annotated[str, Depends(get_current_user)],
    container: Annotated[AppContainer, Depends(get_container)],
) -> StreamingResponse:
    """
    Open a server-sent-events stream of job outcome events for this user.

    Only events published after the stream opens are delivered; earlier
    outcomes are available from the notification list.
    """
    settings = container.settings.notifications
    connection = LiveConnection(user_id, max_queue_size=settings.connection_queue_size)
    container.registry.add_connection(user_id, connection)

    async def generate() -> AsyncIterator[str]:
        try:
            async for message in connection.stream(heartbeat_seconds=settings.heartbeat_seconds):
                if await request.is_disconnected():
                    break
                yield message
        finally:
            container.registry.remove_connection(user_id, connection)

    return StreamingResponse(
        generate(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",  # Disable nginx buffering
        },
    )


@notifications_router.get("/status")
def get_connection_status(
    user_id: Annotated[str, Depends(get_current_user)],
    container: Annotated[AppContainer, Depends(get_container)],
) -> Dict[str, Any]:
    """Live connection counts for this user and overall."""
    return {
        "success": True,
        "data": {
            "userId": user_id,
            "activeConnections": container.registry.get_connection_count(user_id),
            "totalActiveConnections": container.registry.get_total_connections(),
            "timestamp": datetime.now(timezone.utc).isoformat(),
        },
    }
