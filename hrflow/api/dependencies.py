"""Shared FastAPI dependencies."""

from typing import Annotated, Optional

from fastapi import Header, Request

from hrflow.container import AppContainer
from hrflow.utils.errors import ServiceUnavailableError, UnauthorizedError


def get_container(request: Request) -> AppContainer:
    """Application container attached at startup."""
    container = getattr(request.app.state, "container", None)
    if container is None:
        raise ServiceUnavailableError("Application is not ready")
    return container


def get_current_user(
    x_user_id: Annotated[Optional[str], Header(alias="X-User-ID")] = None,
) -> str:
    """
    Get the authenticated user ID from request headers.

    Token verification happens upstream; requests reaching the service
    without a user header are rejected.
    """
    if not x_user_id or not x_user_id.strip():
        raise UnauthorizedError()
    return x_user_id.strip()
