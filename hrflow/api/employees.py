"""API endpoint for deferred employee creation."""

import logging
from typing import Annotated, Any, Dict

from fastapi import APIRouter, Body, Depends, status
from pydantic import BaseModel, Field

from hrflow.api.dependencies import get_container, get_current_user
from hrflow.container import AppContainer
from hrflow.utils.errors import JobStoreUnavailableError, ServiceUnavailableError

logger = logging.getLogger(__name__)

employees_router = APIRouter(prefix="/api/employees", tags=["Employees"])


# =============================================================================
# Response Models
# =============================================================================

class QueuedJob(BaseModel):
    """Handle for a job accepted for background processing."""

    jobId: str = Field(..., description="ID carried by the outcome event and notification")
    status: str = "queued"


class QueuedJobResponse(BaseModel):
    success: bool = True
    message: str
    data: QueuedJob


# =============================================================================
# Endpoints
# =============================================================================

@employees_router.post(
    "/async",
    response_model=QueuedJobResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Create an employee in the background",
)
def create_employee_async(
    employee_data: Annotated[Dict[str, Any], Body(...)],
    user_id: Annotated[str, Depends(get_current_user)],
    container: Annotated[AppContainer, Depends(get_container)],
) -> QueuedJobResponse:
    """
    Queue an employee for creation.

    Field validation happens in the worker; the outcome arrives as a live
    event and a durable notification carrying the returned job ID.
    """
    try:
        job_id = container.employee_queue.enqueue_employee_creation(employee_data, user_id)
    except JobStoreUnavailableError as e:
        raise ServiceUnavailableError("Job queue is unavailable, please retry later") from e

    return QueuedJobResponse(
        message="Employee creation queued",
        data=QueuedJob(jobId=job_id),
    )
