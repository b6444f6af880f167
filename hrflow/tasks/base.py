"""
Base Task Classes

Provides the base task for job store jobs with:
- Late acknowledgement so a crashed worker's job is redelivered
- Retry scheduling driven by the job store's backoff policy
- Error handling and logging
- Execution time metrics
"""

import logging
import time
from typing import Any, Callable, Dict, Optional

from celery import Task
from redis.exceptions import RedisError

from hrflow.container import AppContainer
from hrflow.services.job_store import FailureHandler, Job, JobLeaseHeld, RetryJob, Topic, run_job
from hrflow.tasks.celery_app import get_worker_container

logger = logging.getLogger(__name__)


class JobTask(Task):
    """
    Base task for messages sent by `JobStore.enqueue`.

    The Celery task ID is the job ID. Attempts are counted by the job
    store, so Celery's own retry limit is disabled.
    """

    # Set per task through the decorator
    topic: Optional[Topic] = None

    acks_late = True
    reject_on_worker_lost = True
    track_started = True
    max_retries = None

    _start_time: Optional[float] = None

    def before_start(self, task_id: str, args: tuple, kwargs: dict) -> None:
        """Called before task starts execution."""
        self._start_time = time.time()
        logger.info(
            f"Task {self.name}[{task_id}] starting (attempt {self.request.retries + 1})",
            extra={"task_id": task_id, "task_name": self.name},
        )

    def on_success(self, retval: Any, task_id: str, args: tuple, kwargs: dict) -> None:
        """Called when task succeeds."""
        execution_time = self._get_execution_time()
        logger.info(
            f"Task {self.name}[{task_id}] succeeded in {execution_time}ms",
            extra={
                "task_id": task_id,
                "task_name": self.name,
                "execution_time_ms": execution_time,
            },
        )

    def on_failure(
        self,
        exc: Exception,
        task_id: str,
        args: tuple,
        kwargs: dict,
        einfo: Any,
    ) -> None:
        """Called when task fails."""
        logger.error(
            f"Task {self.name}[{task_id}] failed: {str(exc)}",
            extra={
                "task_id": task_id,
                "task_name": self.name,
                "execution_time_ms": self._get_execution_time(),
                "error": str(exc),
            },
        )

    def _get_execution_time(self) -> Optional[int]:
        """Get execution time in milliseconds."""
        if self._start_time is None:
            return None
        return int((time.time() - self._start_time) * 1000)

    def get_container(self) -> AppContainer:
        """Dependencies of the worker process."""
        return get_worker_container()

    def is_redelivery(self) -> bool:
        """Whether the broker handed this message out before without an ack."""
        return bool((self.request.delivery_info or {}).get("redelivered"))

    def execute_job(
        self,
        payload: Dict[str, Any],
        handler: Callable[[Job], Any],
        on_terminal_failure: Optional[FailureHandler] = None,
    ) -> Any:
        """
        Claim the delivered job and run it through the job store cycle.

        A retryable failure reschedules this task after the store's backoff
        delay. A delivery that finds a live worker holding the job is
        rescheduled rather than acknowledged, and a job that already
        finished is skipped.
        """
        store = self.get_container().job_store
        attempt = self.request.retries + 1

        try:
            job = store.dequeue(
                self.topic,
                self.request.id,
                payload,
                attempt=attempt,
                redelivered=self.is_redelivery(),
                owner=self.request.hostname or "",
            )
        except JobLeaseHeld as held:
            raise self.retry(exc=held, countdown=held.retry_after, max_retries=None)
        except RedisError as exc:
            delay = store.default_options.retry_delay(attempt)
            raise self.retry(exc=exc, countdown=delay, max_retries=None)

        if job is None:
            return {"skipped": True, "jobId": self.request.id}

        try:
            return run_job(store, job, handler, on_terminal_failure)
        except RetryJob as retry:
            raise self.retry(exc=retry.cause, countdown=retry.delay, max_retries=None)
