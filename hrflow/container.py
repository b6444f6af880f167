"""
Application container.

Builds the client handles (Redis, database, Celery) once per process and
wires them into the stores, workers and the notification bridge. The API
and the Celery worker process each own one container.
"""

import logging
from dataclasses import dataclass, field
from typing import Optional

from celery import Celery
from redis import Redis
from sqlalchemy.orm import Session, sessionmaker

from hrflow.config.settings import Settings, get_settings
from hrflow.data.employee_repository import EmployeeRepository
from hrflow.database.database import DatabaseConfig, create_db_engine, create_session_factory
from hrflow.infrastructure.redis.celery_config import CeleryConfig, create_celery_app
from hrflow.infrastructure.redis.redis_client import RedisClientManager, RedisConfig
from hrflow.services.connection_registry import ConnectionRegistry
from hrflow.services.employee_queue import EmployeeCreationWorker, EmployeeQueue
from hrflow.services.event_bus import RedisPubSubBus
from hrflow.services.import_queue import ImportBatchWorker, ImportQueue
from hrflow.services.job_store import JobOptions, JobStore
from hrflow.services.notification_bridge import NotificationBridge
from hrflow.services.notification_service import NotificationService
from hrflow.services.progress_store import ProgressStore

logger = logging.getLogger(__name__)


@dataclass
class AppContainer:
    """Explicitly constructed dependencies shared by one process."""

    settings: Settings
    redis: Redis
    session_factory: sessionmaker[Session]
    celery_app: Celery

    job_store: JobStore = field(init=False)
    progress_store: ProgressStore = field(init=False)
    bus: RedisPubSubBus = field(init=False)
    notifications: NotificationService = field(init=False)
    employees: EmployeeRepository = field(init=False)
    employee_queue: EmployeeQueue = field(init=False)
    import_queue: ImportQueue = field(init=False)
    employee_worker: EmployeeCreationWorker = field(init=False)
    import_worker: ImportBatchWorker = field(init=False)
    registry: ConnectionRegistry = field(init=False)
    bridge: NotificationBridge = field(init=False)

    redis_manager: Optional[RedisClientManager] = None

    def __post_init__(self):
        queue = self.settings.queue
        channel = self.settings.notifications.channel

        self.job_store = JobStore(
            self.celery_app,
            self.redis,
            default_options=JobOptions.from_settings(queue),
            lease_timeout=queue.lease_timeout_seconds,
        )
        self.progress_store = ProgressStore(
            self.redis,
            ttl_seconds=self.settings.imports.progress_ttl_seconds,
        )
        self.bus = RedisPubSubBus(self.redis)
        self.notifications = NotificationService(self.session_factory)
        self.employees = EmployeeRepository(self.session_factory)

        self.employee_queue = EmployeeQueue(self.job_store)
        self.import_queue = ImportQueue(
            self.job_store,
            self.progress_store,
            batch_size=self.settings.imports.batch_size,
            delimiter=self.settings.imports.delimiter,
        )

        self.employee_worker = EmployeeCreationWorker(
            self.employees, self.bus, self.notifications, channel=channel
        )
        self.import_worker = ImportBatchWorker(
            self.employees, self.progress_store, self.bus, self.notifications, channel=channel
        )

        self.registry = ConnectionRegistry()
        self.bridge = NotificationBridge(self.bus, self.registry, channel=channel)

    @classmethod
    def from_settings(
        cls,
        settings: Optional[Settings] = None,
        celery_app: Optional[Celery] = None,
    ) -> "AppContainer":
        """Connect to the configured Redis, database and broker."""
        settings = settings or get_settings()

        redis_manager = RedisClientManager(RedisConfig.from_url(settings.redis_url))

        engine = create_db_engine(
            DatabaseConfig(
                pool_size=settings.database_pool_size,
                max_overflow=settings.database_max_overflow,
                echo=settings.debug,
                url_override=settings.database_url,
            )
        )

        if celery_app is None:
            celery_app = create_celery_app(config=CeleryConfig.from_settings(settings.queue))

        logger.info(f"Building application container for {settings.app_name}")
        return cls(
            settings=settings,
            redis=redis_manager.client,
            session_factory=create_session_factory(engine),
            celery_app=celery_app,
            redis_manager=redis_manager,
        )

    def close(self) -> None:
        """Stop background work and release connections."""
        self.bridge.stop()
        self.registry.close_all()
        if self.redis_manager is not None:
            self.redis_manager.close()
