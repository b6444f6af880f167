"""
Import progress tracking in Redis.

Each import has a hash ``import-progress:<jobId>`` with the aggregate
counters and a set ``import-progress:<jobId>:batches`` of completed batch
indexes. Both expire a fixed time after the import was created.
"""

import logging
import math
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field
from redis import Redis
from redis.client import Pipeline

logger = logging.getLogger(__name__)


class ProgressStatus(str, Enum):
    """Import lifecycle as seen by pollers."""

    PROCESSING = "processing"
    COMPLETED = "completed"
    ERROR = "error"


class ProgressRecord(BaseModel):
    """Aggregate completion state for one import job."""

    model_config = ConfigDict(populate_by_name=True)

    job_id: str = Field(alias="jobId")
    progress: int = 0
    processed: int = 0
    total_batches: int = Field(alias="totalBatches")
    status: ProgressStatus = ProgressStatus.PROCESSING
    error: Optional[str] = None
    user_id: Optional[str] = Field(default=None, alias="userId")
    created_at: str = Field(alias="createdAt")
    last_updated: str = Field(alias="lastUpdated")

    @classmethod
    def from_hash(cls, job_id: str, data: Dict[str, str]) -> "ProgressRecord":
        """Build a record from the stored hash fields."""
        return cls(
            job_id=job_id,
            progress=int(data.get("progress") or 0),
            processed=int(data.get("processed") or 0),
            total_batches=int(data.get("totalBatches") or 0),
            status=ProgressStatus(data.get("status") or ProgressStatus.PROCESSING.value),
            error=data.get("error") or None,
            user_id=data.get("userId") or None,
            created_at=data.get("createdAt", ""),
            last_updated=data.get("lastUpdated", ""),
        )

    def to_hash(self) -> Dict[str, str]:
        """Flatten into hash fields."""
        return {
            "progress": str(self.progress),
            "processed": str(self.processed),
            "totalBatches": str(self.total_batches),
            "status": self.status.value,
            "error": self.error or "",
            "userId": self.user_id or "",
            "createdAt": self.created_at,
            "lastUpdated": self.last_updated,
        }

    def to_response(self) -> Dict[str, object]:
        """Serialize with camelCase keys for API responses."""
        return self.model_dump(by_alias=True, mode="json")


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def calculate_progress(processed: int, total_batches: int) -> int:
    """Percentage of batches done, rounded half up."""
    if total_batches <= 0:
        return 0
    return int(math.floor(processed * 100 / total_batches + 0.5))


class ProgressStore:
    """Reads and writes import progress records."""

    KEY_PREFIX = "import-progress"

    def __init__(self, redis_client: Redis, ttl_seconds: int = 86400):
        self.redis = redis_client
        self.ttl_seconds = ttl_seconds

    def _key(self, job_id: str) -> str:
        return f"{self.KEY_PREFIX}:{job_id}"

    def _batches_key(self, job_id: str) -> str:
        return f"{self.KEY_PREFIX}:{job_id}:batches"

    def initialize(
        self,
        job_id: str,
        total_batches: int,
        user_id: Optional[str] = None,
    ) -> ProgressRecord:
        """Create the record for a new import, before any batch is enqueued."""
        now = _now_iso()
        record = ProgressRecord(
            job_id=job_id,
            total_batches=total_batches,
            user_id=user_id,
            created_at=now,
            last_updated=now,
        )

        pipe = self.redis.pipeline()
        pipe.delete(self._key(job_id), self._batches_key(job_id))
        pipe.hset(self._key(job_id), mapping=record.to_hash())
        pipe.expire(self._key(job_id), self.ttl_seconds)
        pipe.execute()

        logger.info(
            f"Initialized import {job_id} with {total_batches} batches",
            extra={"job_id": job_id, "total_batches": total_batches},
        )
        return record

    def record_batch(
        self,
        job_id: str,
        batch_index: int,
    ) -> Tuple[Optional[ProgressRecord], bool]:
        """
        Mark one batch as completed.

        Safe under concurrent and repeated delivery: `processed` counts
        distinct batch indexes, so redelivering a batch leaves the counters
        unchanged. An `error` status is never overwritten.

        Returns:
            The updated record (None once it has expired) and whether this
            call is the one that completed the import.
        """
        key = self._key(job_id)
        batches_key = self._batches_key(job_id)

        def _update(pipe: Pipeline) -> Tuple[Optional[ProgressRecord], bool]:
            data = pipe.hgetall(key)
            if not data:
                return None, False

            record = ProgressRecord.from_hash(job_id, data)
            if not 0 <= batch_index < record.total_batches:
                raise ValueError(
                    f"Batch index {batch_index} out of range for import {job_id} "
                    f"with {record.total_batches} batches"
                )

            if pipe.sismember(batches_key, batch_index):
                return record, False

            processed = pipe.scard(batches_key) + 1
            ttl = pipe.ttl(key)

            previous_status = record.status
            record.processed = processed
            record.progress = calculate_progress(processed, record.total_batches)
            record.last_updated = _now_iso()
            if record.status != ProgressStatus.ERROR:
                if processed >= record.total_batches:
                    record.status = ProgressStatus.COMPLETED
                else:
                    record.status = ProgressStatus.PROCESSING

            pipe.multi()
            pipe.sadd(batches_key, batch_index)
            if ttl and ttl > 0:
                pipe.expire(batches_key, ttl)
            pipe.hset(key, mapping=record.to_hash())

            completed_now = (
                record.status == ProgressStatus.COMPLETED
                and previous_status != ProgressStatus.COMPLETED
            )
            return record, completed_now

        record, completed_now = self.redis.transaction(
            _update, key, batches_key, value_from_callable=True
        )

        if record is None:
            logger.warning(
                f"Progress record for import {job_id} not found, batch {batch_index} not recorded",
                extra={"job_id": job_id, "batch_index": batch_index},
            )
        else:
            logger.debug(
                f"Import {job_id}: {record.processed}/{record.total_batches} batches "
                f"({record.progress}%)"
            )
        return record, completed_now

    def record_error(self, job_id: str, message: str) -> Optional[ProgressRecord]:
        """Mark an import as failed with the given message."""
        key = self._key(job_id)

        def _update(pipe: Pipeline) -> Optional[ProgressRecord]:
            data = pipe.hgetall(key)
            if not data:
                return None

            record = ProgressRecord.from_hash(job_id, data)
            record.status = ProgressStatus.ERROR
            record.error = message
            record.last_updated = _now_iso()

            pipe.multi()
            pipe.hset(key, mapping=record.to_hash())
            return record

        record = self.redis.transaction(_update, key, value_from_callable=True)
        if record is None:
            logger.warning(f"Progress record for import {job_id} not found, error not recorded")
        return record

    def get(self, job_id: str) -> Optional[ProgressRecord]:
        """Current progress, or None when unknown or expired."""
        data = self.redis.hgetall(self._key(job_id))
        if not data:
            return None
        return ProgressRecord.from_hash(job_id, data)
