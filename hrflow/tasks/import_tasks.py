"""Background task for CSV import batches."""

import logging
from typing import Any, Dict

from hrflow.infrastructure.redis.celery_config import IMPORT_QUEUE
from hrflow.services.job_store import Topic
from hrflow.tasks.base import JobTask
from hrflow.tasks.celery_app import celery_app

logger = logging.getLogger(__name__)


@celery_app.task(
    name="tasks.process_csv_batch",
    bind=True,
    base=JobTask,
    topic=Topic.PROCESS_CSV_BATCH,
    queue=IMPORT_QUEUE,
)
def process_csv_batch(self: JobTask, payload: Dict[str, Any]) -> Any:
    """
    Import one batch of CSV rows.

    Payload: ``{"batch": [...], "jobId": str, "totalBatches": int,
    "currentBatch": int, "userId": str}``
    """
    worker = self.get_container().import_worker
    return self.execute_job(
        payload,
        handler=lambda job: worker.process(job.payload),
        on_terminal_failure=lambda job, error: worker.report_failure(job.payload, error),
    )
