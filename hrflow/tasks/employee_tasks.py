"""Background task for deferred employee creation."""

import logging
from typing import Any, Dict

from hrflow.infrastructure.redis.celery_config import EMPLOYEE_QUEUE
from hrflow.services.job_store import Topic
from hrflow.tasks.base import JobTask
from hrflow.tasks.celery_app import celery_app

logger = logging.getLogger(__name__)


@celery_app.task(
    name="tasks.create_employee",
    bind=True,
    base=JobTask,
    topic=Topic.CREATE_EMPLOYEE,
    queue=EMPLOYEE_QUEUE,
)
def create_employee(self: JobTask, payload: Dict[str, Any]) -> Any:
    """
    Create one employee from a `create-employee` job payload.

    Payload: ``{"employeeData": {...}, "jobId": str, "userId": str}``
    """
    worker = self.get_container().employee_worker
    return self.execute_job(
        payload,
        handler=lambda job: worker.process(job.payload),
        on_terminal_failure=lambda job, error: worker.report_failure(job.payload, error),
    )
