"""
Durable job store backed by Celery and Redis.

Celery owns delivery: messages sit in a per-topic Redis queue, each one is
handed to a single worker, and it is only acknowledged once the handler
returns (late ack). A worker that dies mid-job leaves its message to be
redelivered, and the redelivered message takes over the dead worker's lease.

This module keeps the job record alongside the broker message:
- ``jobs:<id>``                 hash with topic, payload, attempt and state
- ``jobs:<id>:lease``           "<attempt>:<worker>" claim held while a job runs
- ``jobs:<topic>:<state>``      sets of waiting / active / delayed job IDs
- ``jobs:<topic>:completed``    bounded list of finished job IDs
- ``jobs:<topic>:failed``       bounded list of terminally failed job IDs
"""

import json
import logging
import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, Optional, Union

from celery import Celery
from kombu.exceptions import OperationalError
from redis import Redis
from redis.exceptions import RedisError

from hrflow.config.settings import QueueSettings
from hrflow.infrastructure.redis.celery_config import EMPLOYEE_QUEUE, IMPORT_QUEUE
from hrflow.utils.errors import JobStoreUnavailableError, JobValidationError

logger = logging.getLogger(__name__)


# =============================================================================
# Job Model
# =============================================================================

class Topic(str, Enum):
    """Job categories, each served by its own worker pool."""

    CREATE_EMPLOYEE = "create-employee"
    PROCESS_CSV_BATCH = "process-csv-batch"


class JobState(str, Enum):
    """Lifecycle states of a job record."""

    WAITING = "waiting"
    ACTIVE = "active"
    DELAYED = "delayed"
    COMPLETED = "completed"
    FAILED = "failed"


TOPIC_TASKS: Dict[Topic, str] = {
    Topic.CREATE_EMPLOYEE: "tasks.create_employee",
    Topic.PROCESS_CSV_BATCH: "tasks.process_csv_batch",
}

TOPIC_QUEUES: Dict[Topic, str] = {
    Topic.CREATE_EMPLOYEE: EMPLOYEE_QUEUE,
    Topic.PROCESS_CSV_BATCH: IMPORT_QUEUE,
}

# States tracked in per-topic sets; terminal states live in bounded lists
_OPEN_STATES = (JobState.WAITING, JobState.ACTIVE, JobState.DELAYED)


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class JobOptions:
    """Per-job delivery options."""

    attempts: int = 3
    backoff: str = "exponential"
    backoff_delay: float = 2.0
    max_backoff: float = 300.0
    remove_on_complete: int = 10
    remove_on_fail: int = 5

    @classmethod
    def from_settings(cls, settings: QueueSettings) -> "JobOptions":
        """Default options from queue settings."""
        return cls(
            attempts=settings.max_attempts,
            backoff_delay=settings.backoff_delay_seconds,
            max_backoff=settings.max_backoff_seconds,
            remove_on_complete=settings.keep_completed,
            remove_on_fail=settings.keep_failed,
        )

    def retry_delay(self, attempt: int) -> float:
        """Seconds to wait before the attempt after `attempt`."""
        if self.backoff != "exponential":
            return self.backoff_delay

        delay = self.backoff_delay * (2 ** max(attempt - 1, 0))
        return min(delay, self.max_backoff)


@dataclass
class Job:
    """One unit of asynchronous work."""

    job_id: str
    topic: Topic
    payload: Dict[str, Any]
    attempt: int = 0
    max_attempts: int = 3
    state: JobState = JobState.WAITING
    error: Optional[str] = None
    created_at: str = field(default_factory=_now_iso)
    updated_at: str = field(default_factory=_now_iso)
    options: JobOptions = field(default_factory=JobOptions)

    @property
    def is_final_attempt(self) -> bool:
        """Whether a failure now would exhaust the job."""
        return self.attempt >= self.max_attempts

    def to_mapping(self) -> Dict[str, str]:
        """Flatten into a Redis hash mapping."""
        return {
            "job_id": self.job_id,
            "topic": self.topic.value,
            "payload": json.dumps(self.payload),
            "attempt": str(self.attempt),
            "max_attempts": str(self.max_attempts),
            "state": self.state.value,
            "error": self.error or "",
            "created_at": self.created_at,
            "updated_at": self.updated_at,
            "options": json.dumps(asdict(self.options)),
        }

    @classmethod
    def from_mapping(cls, data: Dict[str, str]) -> "Job":
        """Rebuild a job from its Redis hash."""
        return cls(
            job_id=data["job_id"],
            topic=Topic(data["topic"]),
            payload=json.loads(data.get("payload") or "{}"),
            attempt=int(data.get("attempt") or 0),
            max_attempts=int(data.get("max_attempts") or 3),
            state=JobState(data.get("state") or JobState.WAITING.value),
            error=data.get("error") or None,
            created_at=data.get("created_at", ""),
            updated_at=data.get("updated_at", ""),
            options=JobOptions(**json.loads(data.get("options") or "{}")),
        )

    def to_dict(self) -> Dict[str, Any]:
        """Serialize for API responses."""
        return {
            "jobId": self.job_id,
            "topic": self.topic.value,
            "state": self.state.value,
            "attempt": self.attempt,
            "maxAttempts": self.max_attempts,
            "error": self.error,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }


class RetryJob(Exception):
    """Signals that a failed job should be redelivered after `delay` seconds."""

    def __init__(self, delay: float, cause: BaseException):
        self.delay = delay
        self.cause = cause
        super().__init__(f"retry in {delay}s: {cause}")


class JobLeaseHeld(Exception):
    """Raised when a live worker already holds the lease of a delivered job."""

    def __init__(self, job_id: str, holder: Optional[str], retry_after: float):
        self.job_id = job_id
        self.holder = holder
        self.retry_after = retry_after
        super().__init__(f"job {job_id} is leased by {holder}, retry in {retry_after}s")


# =============================================================================
# Job Store
# =============================================================================

class JobStore:
    """
    Client handle for submitting jobs and tracking their lifecycle.

    Producers call `enqueue`; worker tasks call `dequeue` when Celery hands
    them a message and then exactly one of `ack` or `fail`.
    """

    KEY_PREFIX = "jobs"

    def __init__(
        self,
        celery_app: Celery,
        redis_client: Redis,
        default_options: Optional[JobOptions] = None,
        lease_timeout: int = 3600,
    ):
        self.celery_app = celery_app
        self.redis = redis_client
        self.default_options = default_options or JobOptions()
        self.lease_timeout = lease_timeout

    # -------------------------------------------------------------------------
    # Keys
    # -------------------------------------------------------------------------

    def _job_key(self, job_id: str) -> str:
        return f"{self.KEY_PREFIX}:{job_id}"

    def _lease_key(self, job_id: str) -> str:
        return f"{self.KEY_PREFIX}:{job_id}:lease"

    def _state_key(self, topic: Topic, state: JobState) -> str:
        return f"{self.KEY_PREFIX}:{topic.value}:{state.value}"

    # -------------------------------------------------------------------------
    # Producer side
    # -------------------------------------------------------------------------

    def enqueue(
        self,
        topic: Union[Topic, str],
        payload: Dict[str, Any],
        options: Optional[JobOptions] = None,
        job_id: Optional[str] = None,
    ) -> str:
        """
        Persist a job and hand it to the broker.

        Returns:
            The job ID, which is also the Celery task ID.

        Raises:
            JobStoreUnavailableError: Redis or the broker could not be reached;
                no job record is left behind.
        """
        topic = Topic(topic)
        options = options or self.default_options
        job = Job(
            job_id=job_id or str(uuid.uuid4()),
            topic=topic,
            payload=payload,
            max_attempts=options.attempts,
            options=options,
        )

        try:
            pipe = self.redis.pipeline()
            pipe.hset(self._job_key(job.job_id), mapping=job.to_mapping())
            pipe.sadd(self._state_key(topic, JobState.WAITING), job.job_id)
            pipe.execute()

            self.celery_app.send_task(
                TOPIC_TASKS[topic],
                kwargs={"payload": payload},
                task_id=job.job_id,
                queue=TOPIC_QUEUES[topic],
                retry=False,
            )
        except (RedisError, OperationalError, OSError) as exc:
            logger.error(
                f"Failed to enqueue {topic.value} job {job.job_id}: {exc}",
                extra={"job_id": job.job_id, "topic": topic.value},
            )
            self._discard(job)
            raise JobStoreUnavailableError(
                f"Job store unavailable, {topic.value} job was not enqueued"
            ) from exc

        logger.info(
            f"Enqueued {topic.value} job {job.job_id}",
            extra={"job_id": job.job_id, "topic": topic.value},
        )
        return job.job_id

    def _discard(self, job: Job) -> None:
        """Remove a job record whose message never reached the broker."""
        try:
            pipe = self.redis.pipeline()
            pipe.delete(self._job_key(job.job_id))
            pipe.srem(self._state_key(job.topic, JobState.WAITING), job.job_id)
            pipe.execute()
        except RedisError as exc:
            logger.warning(f"Could not discard job record {job.job_id}: {exc}")

    # -------------------------------------------------------------------------
    # Worker side
    # -------------------------------------------------------------------------

    def dequeue(
        self,
        topic: Union[Topic, str],
        job_id: str,
        payload: Dict[str, Any],
        attempt: int,
        redelivered: bool = False,
        owner: str = "",
    ) -> Optional[Job]:
        """
        Claim a delivered job for this worker.

        The lease records which attempt and which worker claimed the job.
        A first delivery that finds the lease held raises `JobLeaseHeld`, so
        the same job is never processed twice concurrently. A redelivered
        message takes the lease over: the broker only redelivers once the
        previous holder's connection is gone or its visibility timeout ran out.

        Returns:
            The claimed job, or None when the job already finished.

        Raises:
            JobLeaseHeld: Another worker holds the lease and this delivery
                is not a redelivery.
        """
        topic = Topic(topic)
        lease_key = self._lease_key(job_id)
        claim = f"{attempt}:{owner}"

        if not self.redis.set(lease_key, claim, nx=True, ex=self.lease_timeout):
            holder = self.redis.get(lease_key)
            if not redelivered:
                remaining = self.redis.ttl(lease_key)
                retry_after = min(max(remaining, 1), self.default_options.max_backoff)
                logger.warning(
                    f"Job {job_id} is leased by {holder}, deferring delivery by {retry_after}s",
                    extra={"job_id": job_id, "topic": topic.value, "lease_holder": holder},
                )
                raise JobLeaseHeld(job_id, holder, retry_after)

            self.redis.set(lease_key, claim, ex=self.lease_timeout)
            logger.warning(
                f"Job {job_id} redelivered, taking over lease held by {holder}",
                extra={"job_id": job_id, "topic": topic.value, "lease_holder": holder},
            )

        data = self.redis.hgetall(self._job_key(job_id))
        if data:
            job = Job.from_mapping(data)
            if job.state in (JobState.COMPLETED, JobState.FAILED):
                self.redis.delete(lease_key)
                logger.info(
                    f"Job {job_id} already {job.state.value}, skipping delivery",
                    extra={"job_id": job_id, "topic": topic.value},
                )
                return None
        else:
            # Record evicted or written by another deployment; rebuild from the message
            job = Job(
                job_id=job_id,
                topic=topic,
                payload=payload,
                max_attempts=self.default_options.attempts,
                options=self.default_options,
            )

        job.attempt = attempt
        job.state = JobState.ACTIVE
        job.updated_at = _now_iso()

        pipe = self.redis.pipeline()
        pipe.hset(self._job_key(job_id), mapping=job.to_mapping())
        for state in _OPEN_STATES:
            pipe.srem(self._state_key(topic, state), job_id)
        pipe.sadd(self._state_key(topic, JobState.ACTIVE), job_id)
        pipe.execute()

        logger.debug(f"Job {job_id} claimed (attempt {attempt}/{job.max_attempts})")
        return job

    def ack(self, job: Job) -> None:
        """Mark a job completed and apply the completed-retention limit."""
        job.state = JobState.COMPLETED
        job.error = None
        job.updated_at = _now_iso()
        self._finish(job, job.options.remove_on_complete)
        logger.info(
            f"Job {job.job_id} completed on attempt {job.attempt}",
            extra={"job_id": job.job_id, "topic": job.topic.value},
        )

    def fail(self, job: Job, error: BaseException, retryable: bool = True) -> Optional[float]:
        """
        Record a failed attempt.

        Returns:
            The backoff delay in seconds when another attempt is due, or None
            when the job is terminally failed.
        """
        job.error = str(error)
        job.updated_at = _now_iso()

        if retryable and not job.is_final_attempt:
            delay = job.options.retry_delay(job.attempt)
            job.state = JobState.DELAYED

            pipe = self.redis.pipeline()
            pipe.hset(self._job_key(job.job_id), mapping=job.to_mapping())
            pipe.srem(self._state_key(job.topic, JobState.ACTIVE), job.job_id)
            pipe.sadd(self._state_key(job.topic, JobState.DELAYED), job.job_id)
            pipe.delete(self._lease_key(job.job_id))
            pipe.execute()

            logger.warning(
                f"Job {job.job_id} attempt {job.attempt}/{job.max_attempts} failed, "
                f"retrying in {delay}s: {job.error}",
                extra={"job_id": job.job_id, "topic": job.topic.value, "retry_delay": delay},
            )
            return delay

        job.state = JobState.FAILED
        self._finish(job, job.options.remove_on_fail)
        logger.error(
            f"Job {job.job_id} failed after {job.attempt} attempt(s): {job.error}",
            extra={"job_id": job.job_id, "topic": job.topic.value},
        )
        return None

    def release(self, job: Job) -> None:
        """Drop the lease of a job whose outcome could not be recorded."""
        try:
            self.redis.delete(self._lease_key(job.job_id))
        except RedisError as exc:
            logger.warning(f"Could not release lease of job {job.job_id}: {exc}")

    def _finish(self, job: Job, keep: int) -> None:
        """Move a job into its terminal list, trimming the oldest records."""
        job_key = self._job_key(job.job_id)
        list_key = self._state_key(job.topic, job.state)

        pipe = self.redis.pipeline()
        for state in _OPEN_STATES:
            pipe.srem(self._state_key(job.topic, state), job.job_id)
        pipe.delete(self._lease_key(job.job_id))

        if keep <= 0:
            pipe.delete(job_key)
            pipe.execute()
            return

        pipe.hset(job_key, mapping=job.to_mapping())
        pipe.lpush(list_key, job.job_id)
        pipe.lrange(list_key, keep, -1)
        pipe.ltrim(list_key, 0, keep - 1)
        results = pipe.execute()

        evicted = results[-2]
        if evicted:
            self.redis.delete(*[self._job_key(job_id) for job_id in evicted])

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def get_job(self, job_id: str) -> Optional[Job]:
        """Look up a job record; None once it has been evicted."""
        data = self.redis.hgetall(self._job_key(job_id))
        if not data:
            return None
        return Job.from_mapping(data)

    def counts(self, topic: Union[Topic, str]) -> Dict[str, int]:
        """Number of jobs per state for one topic."""
        topic = Topic(topic)
        pipe = self.redis.pipeline()
        for state in _OPEN_STATES:
            pipe.scard(self._state_key(topic, state))
        pipe.llen(self._state_key(topic, JobState.COMPLETED))
        pipe.llen(self._state_key(topic, JobState.FAILED))
        results = pipe.execute()

        states = list(_OPEN_STATES) + [JobState.COMPLETED, JobState.FAILED]
        return {state.value: int(count) for state, count in zip(states, results)}


# =============================================================================
# Job Execution
# =============================================================================

JobHandler = Callable[[Job], Any]
FailureHandler = Callable[[Job, BaseException], None]


def run_job(
    store: JobStore,
    job: Job,
    handler: JobHandler,
    on_terminal_failure: Optional[FailureHandler] = None,
) -> Any:
    """
    Run one claimed job through handler, then ack or fail it.

    Validation errors are terminal on the first attempt. Any other error is
    retried with backoff until attempts run out; `RetryJob` tells the caller
    to reschedule. `on_terminal_failure` runs exactly once, when the job
    will not be attempted again.

    An outcome is only acted on once it is recorded. When Redis rejects the
    ack or fail, the lease is released and the job rescheduled so the next
    attempt records it.
    """
    try:
        result = handler(job)
    except JobValidationError as exc:
        _record_outcome(store, job, lambda: store.fail(job, exc, retryable=False))
        if on_terminal_failure is not None:
            on_terminal_failure(job, exc)
        raise
    except Exception as exc:
        delay = _record_outcome(store, job, lambda: store.fail(job, exc))
        if delay is not None:
            raise RetryJob(delay, exc) from exc
        if on_terminal_failure is not None:
            on_terminal_failure(job, exc)
        raise

    _record_outcome(store, job, lambda: store.ack(job))
    return result


def _record_outcome(store: JobStore, job: Job, record: Callable[[], Any]) -> Any:
    try:
        return record()
    except RedisError as exc:
        delay = job.options.retry_delay(job.attempt)
        logger.error(
            f"Could not record outcome of job {job.job_id} attempt {job.attempt}, "
            f"retrying in {delay}s: {exc}",
            extra={"job_id": job.job_id, "topic": job.topic.value, "retry_delay": delay},
        )
        store.release(job)
        raise RetryJob(delay, exc) from exc
