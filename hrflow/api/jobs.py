"""API endpoints for background job state."""

from typing import Annotated, Any, Dict

from fastapi import APIRouter, Depends

from hrflow.api.dependencies import get_container, get_current_user
from hrflow.container import AppContainer
from hrflow.services.job_store import Topic
from hrflow.utils.errors import create_not_found_error

jobs_router = APIRouter(prefix="/api/jobs", tags=["Jobs"])


@jobs_router.get("/stats")
def get_job_stats(
    user_id: Annotated[str, Depends(get_current_user)],
    container: Annotated[AppContainer, Depends(get_container)],
) -> Dict[str, Any]:
    """Job counts per topic and state."""
    return {
        "success": True,
        "data": {topic.value: container.job_store.counts(topic) for topic in Topic},
    }


@jobs_router.get("/{job_id}")
def get_job(
    job_id: str,
    user_id: Annotated[str, Depends(get_current_user)],
    container: Annotated[AppContainer, Depends(get_container)],
) -> Dict[str, Any]:
    """State of one job; finished jobs are kept only up to the retention limit."""
    job = container.job_store.get_job(job_id)
    if job is None:
        raise create_not_found_error("Job", job_id)

    return {"success": True, "data": job.to_dict()}
