"""API endpoints for bulk employee CSV import."""

import logging
from pathlib import Path
from typing import Annotated, Any, Dict

from fastapi import APIRouter, Depends, File, UploadFile, status

from hrflow.api.dependencies import get_container, get_current_user
from hrflow.container import AppContainer
from hrflow.utils.errors import (
    JobStoreUnavailableError,
    NoValidDataError,
    NotFoundError,
    ServiceUnavailableError,
    ValidationError,
)

logger = logging.getLogger(__name__)

imports_router = APIRouter(prefix="/api/import", tags=["Import"])


# =============================================================================
# Constants and Configuration
# =============================================================================

MAX_FILE_SIZE_MB = 10
MAX_FILE_SIZE_BYTES = MAX_FILE_SIZE_MB * 1024 * 1024
ALLOWED_CONTENT_TYPES = ["text/csv", "application/csv"]
ALLOWED_EXTENSIONS = [".csv"]


def _is_csv(file: UploadFile) -> bool:
    extension = Path(file.filename or "").suffix.lower()
    return extension in ALLOWED_EXTENSIONS or file.content_type in ALLOWED_CONTENT_TYPES


# =============================================================================
# Endpoints
# =============================================================================

@imports_router.post(
    "/employees",
    status_code=status.HTTP_201_CREATED,
    summary="Start a CSV employee import",
)
def upload_employees_csv(
    file: Annotated[UploadFile, File(...)],
    user_id: Annotated[str, Depends(get_current_user)],
    container: Annotated[AppContainer, Depends(get_container)],
) -> Dict[str, Any]:
    """
    Split an uploaded CSV into batches and queue them for import.

    Columns: name, age, position, salary. Rows that cannot be imported are
    skipped by the workers; progress is polled via the status endpoint.
    """
    if not _is_csv(file):
        raise ValidationError("Only CSV files are allowed")

    content = file.file.read(MAX_FILE_SIZE_BYTES + 1)
    if len(content) > MAX_FILE_SIZE_BYTES:
        raise ValidationError(f"File exceeds the {MAX_FILE_SIZE_MB}MB limit")
    if not content.strip():
        raise NoValidDataError()

    try:
        submission = container.import_queue.submit_csv(content, user_id=user_id)
    except JobStoreUnavailableError as e:
        raise ServiceUnavailableError("Failed to initialize import process") from e

    logger.info(
        f"User {user_id} started import {submission.job_id} from {file.filename}",
        extra={"job_id": submission.job_id, "user_id": user_id},
    )
    return {
        "success": True,
        "message": "CSV import started successfully",
        "data": submission.to_dict(),
    }


@imports_router.get(
    "/status/{job_id}",
    summary="Get CSV import progress",
)
def get_import_status(
    job_id: str,
    user_id: Annotated[str, Depends(get_current_user)],
    container: Annotated[AppContainer, Depends(get_container)],
) -> Dict[str, Any]:
    """Current progress of an import; records expire 24 hours after creation."""
    progress = container.import_queue.get_import_progress(job_id)
    if progress is None:
        raise NotFoundError("Import job not found", details={"job_id": job_id})

    return {"success": True, "data": progress.to_response()}
