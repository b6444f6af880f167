"""
Celery Configuration with Redis Broker

Configures Celery as the worker pool behind the job store: Redis is the
message broker, each job topic has its own queue, and unacknowledged
messages are redelivered after the broker visibility timeout.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from celery import Celery
from celery.signals import task_failure, task_retry
from kombu import Exchange, Queue

from hrflow.config.settings import QueueSettings

logger = logging.getLogger(__name__)


# =============================================================================
# Configuration
# =============================================================================

@dataclass
class CeleryConfig:
    """Celery configuration settings."""

    broker_url: str = "redis://localhost:6379/1"
    result_backend: str = "redis://localhost:6379/2"

    # Serialization
    task_serializer: str = "json"
    result_serializer: str = "json"
    accept_content: List[str] = field(default_factory=lambda: ["json"])

    # Timezone
    timezone: str = "UTC"
    enable_utc: bool = True

    # A job is acked only after its handler returns; a worker that dies
    # mid-job leaves the message to be redelivered.
    task_acks_late: bool = True
    task_reject_on_worker_lost: bool = True
    task_default_queue: str = "default"

    # Worker settings
    worker_prefetch_multiplier: int = 1
    worker_concurrency: int = 4

    # Lease: seconds before an unacked message is handed to another worker
    visibility_timeout: int = 3600

    # Result settings
    result_expires: int = 3600  # 1 hour

    # Task execution limits
    task_soft_time_limit: int = 300  # 5 minutes
    task_time_limit: int = 600  # 10 minutes

    @classmethod
    def from_settings(cls, settings: QueueSettings) -> "CeleryConfig":
        """Build Celery config from queue settings."""
        return cls(
            broker_url=settings.broker_url,
            result_backend=settings.result_backend,
            worker_concurrency=settings.worker_concurrency,
            visibility_timeout=settings.lease_timeout_seconds,
        )


# =============================================================================
# Queue Definitions
# =============================================================================

default_exchange = Exchange("default", type="direct")

EMPLOYEE_QUEUE = "employees"
IMPORT_QUEUE = "imports"

CELERY_QUEUES = [
    Queue("default", default_exchange, routing_key="default"),
    # Single employee creation
    Queue(EMPLOYEE_QUEUE, default_exchange, routing_key=EMPLOYEE_QUEUE),
    # CSV import batches
    Queue(IMPORT_QUEUE, default_exchange, routing_key=IMPORT_QUEUE),
]

# Task routing
CELERY_TASK_ROUTES: Dict[str, Dict[str, str]] = {
    "tasks.create_employee": {"queue": EMPLOYEE_QUEUE},
    "tasks.process_csv_batch": {"queue": IMPORT_QUEUE},
}


# =============================================================================
# Celery Application Factory
# =============================================================================

def create_celery_app(
    name: str = "hrflow",
    config: Optional[CeleryConfig] = None,
) -> Celery:
    """
    Create and configure Celery application.

    Args:
        name: Application name
        config: Optional configuration override

    Returns:
        Configured Celery application
    """
    config = config or CeleryConfig()

    app = Celery(name)

    app.conf.update(
        broker_url=config.broker_url,
        result_backend=config.result_backend,
        task_serializer=config.task_serializer,
        result_serializer=config.result_serializer,
        accept_content=config.accept_content,
        timezone=config.timezone,
        enable_utc=config.enable_utc,
        task_acks_late=config.task_acks_late,
        task_reject_on_worker_lost=config.task_reject_on_worker_lost,
        task_default_queue=config.task_default_queue,
        worker_prefetch_multiplier=config.worker_prefetch_multiplier,
        worker_concurrency=config.worker_concurrency,
        result_expires=config.result_expires,
        task_soft_time_limit=config.task_soft_time_limit,
        task_time_limit=config.task_time_limit,
        broker_transport_options={"visibility_timeout": config.visibility_timeout},
        broker_connection_retry_on_startup=True,
        # Submissions must fail fast when the broker is down
        task_publish_retry=False,
        task_queues=CELERY_QUEUES,
        task_routes=CELERY_TASK_ROUTES,
    )

    _register_signal_handlers()

    logger.info(f"Celery app '{name}' configured with broker: {config.broker_url}")

    return app


def _handle_task_failure(sender=None, task_id=None, exception=None, **kwargs):
    """Log terminal task failures."""
    logger.error(
        f"Task {sender.name}[{task_id}] failed: {str(exception)}",
        extra={
            "task_name": sender.name,
            "task_id": task_id,
            "exception": str(exception),
        },
    )


def _handle_task_retry(sender=None, reason=None, **kwargs):
    """Log scheduled retries."""
    logger.warning(
        f"Task {sender.name} retrying: {reason}",
        extra={"task_name": sender.name, "retry_reason": str(reason)},
    )


def _register_signal_handlers() -> None:
    """Register Celery signal handlers for monitoring."""
    task_failure.connect(_handle_task_failure, weak=False, dispatch_uid="hrflow.task_failure")
    task_retry.connect(_handle_task_retry, weak=False, dispatch_uid="hrflow.task_retry")
