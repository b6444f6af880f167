"""
Bulk CSV import.

An upload is parsed lazily, split into fixed-size batches and submitted as
one `process-csv-batch` job per batch. Batches are processed in any order
by the import worker pool; the progress store aggregates their completion.
"""

import csv
import logging
import uuid
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Union

from hrflow.data.employee_repository import EmployeeRepository
from hrflow.models.notification import NotificationType
from hrflow.services.batch_splitter import BATCH_SIZE, split_into_batches
from hrflow.services.event_bus import JobEvent, RedisPubSubBus
from hrflow.services.job_store import JobOptions, JobStore, Topic
from hrflow.services.notification_service import NotificationService
from hrflow.services.progress_store import ProgressRecord, ProgressStore
from hrflow.services.side_effects import best_effort
from hrflow.utils.csv_parser import is_importable, iter_csv_rows, to_employee_record, transform_row
from hrflow.utils.errors import (
    JobStoreUnavailableError,
    JobValidationError,
    NoValidDataError,
    ValidationError,
)

logger = logging.getLogger(__name__)

DEFAULT_CHANNEL = "employee-notifications"

EVENT_IMPORT_COMPLETED = "import_completed"
EVENT_IMPORT_FAILED = "import_failed"

# Row IDs are derived from their position in the import so a replayed
# batch maps onto the rows it already wrote
_ROW_NAMESPACE = uuid.UUID("6b0f3f7e-2d55-4b8e-9a55-0f1c3c9a7d21")


def row_id_for(job_id: str, batch_index: int, row_index: int) -> str:
    """Stable employee ID for one row of an import."""
    return str(uuid.uuid5(_ROW_NAMESPACE, f"{job_id}:{batch_index}:{row_index}"))


# =============================================================================
# Worker
# =============================================================================

class ImportBatchWorker:
    """Persists the importable rows of one `process-csv-batch` job."""

    def __init__(
        self,
        record_store: EmployeeRepository,
        progress_store: ProgressStore,
        bus: RedisPubSubBus,
        notifications: NotificationService,
        channel: str = DEFAULT_CHANNEL,
    ):
        self.record_store = record_store
        self.progress_store = progress_store
        self.bus = bus
        self.notifications = notifications
        self.channel = channel

    def process(self, job_data: Dict[str, Any]) -> Dict[str, Any]:
        """
        Import one batch and record its completion.

        Rows missing a name or position, or with a non-numeric age or
        salary, are dropped. A storage error fails the whole batch.
        """
        job_id = job_data["jobId"]
        batch_index = int(job_data["currentBatch"])
        rows: List[Dict[str, Any]] = job_data.get("batch") or []
        total_batches = int(job_data["totalBatches"])
        if not 0 <= batch_index < total_batches:
            raise JobValidationError(
                f"Batch index {batch_index} out of range for {total_batches} batches"
            )

        transformed = [
            transform_row(row, row_id=row_id_for(job_id, batch_index, row_index))
            for row_index, row in enumerate(rows)
        ]
        records = [to_employee_record(row) for row in transformed if is_importable(row)]
        skipped = len(rows) - len(records)

        inserted = self.record_store.bulk_create(records)
        record, completed_now = self.progress_store.record_batch(job_id, batch_index)

        logger.info(
            f"Import {job_id} batch {batch_index + 1}/{total_batches}: "
            f"{inserted} inserted, {skipped} skipped",
            extra={"job_id": job_id, "batch_index": batch_index, "inserted": inserted, "skipped": skipped},
        )

        if completed_now and record is not None:
            self._announce_completion(job_data, record)

        return {"success": True, "processed": len(records), "inserted": inserted, "skipped": skipped}

    def _announce_completion(self, job_data: Dict[str, Any], record: ProgressRecord) -> None:
        job_id = record.job_id
        event = JobEvent(
            type=EVENT_IMPORT_COMPLETED,
            user_id=job_data.get("userId"),
            job_id=job_id,
            status="success",
            data={"progress": record.to_response()},
        )
        best_effort("publish import completed event", self.bus.publish, self.channel, event)
        best_effort(
            "create import completed notification",
            self.notifications.create_notification,
            title="CSV Import Completed",
            message=f"CSV import finished: {record.total_batches} batch(es) processed.",
            type=NotificationType.SYSTEM,
            job_id=job_id,
            metadata={"totalBatches": record.total_batches, "processed": record.processed},
        )

    def report_failure(self, job_data: Dict[str, Any], error: BaseException) -> None:
        """Mark the import as failed once a batch has exhausted its attempts."""
        job_id = job_data.get("jobId")
        batch_index = job_data.get("currentBatch")
        message = str(error)

        best_effort("record import error", self.progress_store.record_error, job_id, message)

        event = JobEvent(
            type=EVENT_IMPORT_FAILED,
            user_id=job_data.get("userId"),
            job_id=job_id,
            status="error",
            error=message,
            data={"currentBatch": batch_index, "totalBatches": job_data.get("totalBatches")},
        )
        best_effort("publish import failed event", self.bus.publish, self.channel, event)
        best_effort(
            "create import failed notification",
            self.notifications.create_notification,
            title="CSV Import Failed",
            message=f"CSV import failed: {message}",
            type=NotificationType.SYSTEM,
            job_id=job_id,
            metadata={"error": message, "currentBatch": batch_index},
        )


# =============================================================================
# Producer
# =============================================================================

@dataclass
class ImportSubmission:
    """Summary returned to the uploader."""

    job_id: str
    total_rows: int
    total_batches: int
    batch_size: int
    valid_rows: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "jobId": self.job_id,
            "totalRows": self.total_rows,
            "totalBatches": self.total_batches,
            "batchSize": self.batch_size,
        }


class ImportQueue:
    """Splits CSV uploads into batch jobs and reports their progress."""

    def __init__(
        self,
        job_store: JobStore,
        progress_store: ProgressStore,
        batch_size: int = BATCH_SIZE,
        delimiter: Optional[str] = None,
        options: Optional[JobOptions] = None,
    ):
        self.job_store = job_store
        self.progress_store = progress_store
        self.batch_size = batch_size
        self.delimiter = delimiter
        self.options = options

    def submit_csv(self, content: Union[bytes, str], user_id: Optional[str] = None) -> ImportSubmission:
        """
        Parse an uploaded CSV and enqueue its batches.

        Raises:
            NoValidDataError: No row in the file is importable; nothing is enqueued.
            ValidationError: The file is not readable as UTF-8 CSV.
            JobStoreUnavailableError: The batches could not be enqueued.
        """
        batches: List[List[Dict[str, str]]] = []
        total_rows = 0
        valid_rows = 0

        try:
            for batch in split_into_batches(iter_csv_rows(content, self.delimiter), self.batch_size):
                batches.append(batch)
                total_rows += len(batch)
                valid_rows += sum(1 for row in batch if is_importable(transform_row(row)))
        except (UnicodeDecodeError, csv.Error) as e:
            logger.warning(f"Failed to parse CSV upload: {str(e)}")
            raise ValidationError("Failed to parse CSV file") from e

        if valid_rows == 0:
            raise NoValidDataError()

        job_id = str(uuid.uuid4())
        self.enqueue_import_batches(batches, job_id, user_id=user_id)

        logger.info(
            f"CSV import {job_id} started: {total_rows} rows in {len(batches)} batches",
            extra={"job_id": job_id, "user_id": user_id, "total_rows": total_rows},
        )
        return ImportSubmission(
            job_id=job_id,
            total_rows=total_rows,
            total_batches=len(batches),
            batch_size=self.batch_size,
            valid_rows=valid_rows,
        )

    def enqueue_import_batches(
        self,
        batches: Iterable[List[Dict[str, Any]]],
        job_id: str,
        user_id: Optional[str] = None,
    ) -> str:
        """
        Enqueue one job per batch under a shared import ID.

        The progress record is created before the first batch is enqueued.
        """
        batches = list(batches)
        if not batches:
            raise NoValidDataError()

        total_batches = len(batches)
        self.progress_store.initialize(job_id, total_batches, user_id=user_id)

        for index, batch in enumerate(batches):
            payload = {
                "batch": batch,
                "jobId": job_id,
                "totalBatches": total_batches,
                "currentBatch": index,
                "userId": user_id,
            }
            try:
                self.job_store.enqueue(
                    Topic.PROCESS_CSV_BATCH,
                    payload,
                    options=self.options,
                    job_id=f"{job_id}:batch:{index}",
                )
            except JobStoreUnavailableError:
                best_effort(
                    "record import enqueue error",
                    self.progress_store.record_error,
                    job_id,
                    f"Failed to enqueue batch {index + 1} of {total_batches}",
                )
                raise

        return job_id

    def get_import_progress(self, job_id: str) -> Optional[ProgressRecord]:
        """Progress of an import, or None when unknown or expired."""
        return self.progress_store.get(job_id)
