"""Application configuration settings."""

import os
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Optional


@dataclass
class QueueSettings:
    """Job queue configuration."""

    broker_url: str = "redis://localhost:6379/1"
    result_backend: str = "redis://localhost:6379/2"

    # Retry policy
    max_attempts: int = 3
    backoff_delay_seconds: float = 2.0
    max_backoff_seconds: float = 300.0

    # Retention of finished job records
    keep_completed: int = 10
    keep_failed: int = 5

    # Unacked messages are redelivered after this many seconds
    lease_timeout_seconds: int = 3600
    worker_concurrency: int = 4


@dataclass
class ImportSettings:
    """CSV import configuration."""

    batch_size: int = 50
    progress_ttl_seconds: int = 86400
    delimiter: Optional[str] = None


@dataclass
class NotificationSettings:
    """Push notification configuration."""

    channel: str = "employee-notifications"
    heartbeat_seconds: float = 15.0
    connection_queue_size: int = 100


@dataclass
class Settings:
    """Main application settings."""

    # Application info
    app_name: str = "HR Records API"
    app_version: str = "1.0.0"
    debug: bool = False

    # Database
    database_url: str = ""
    database_pool_size: int = 5
    database_max_overflow: int = 10

    # Redis (progress store, job records, pub/sub)
    redis_url: str = "redis://localhost:6379/0"

    queue: QueueSettings = field(default_factory=QueueSettings)
    imports: ImportSettings = field(default_factory=ImportSettings)
    notifications: NotificationSettings = field(default_factory=NotificationSettings)

    @classmethod
    def from_env(cls) -> "Settings":
        """Create settings from environment variables."""
        redis_url = os.getenv("REDIS_URL", "redis://localhost:6379/0")
        return cls(
            app_name=os.getenv("APP_NAME", "HR Records API"),
            app_version=os.getenv("APP_VERSION", "1.0.0"),
            debug=os.getenv("DEBUG", "false").lower() == "true",
            database_url=os.getenv(
                "DATABASE_URL",
                f"postgresql://{os.getenv('DB_USER', 'postgres')}:{os.getenv('DB_PASSWORD', '')}@"
                f"{os.getenv('DB_HOST', 'localhost')}:{os.getenv('DB_PORT', '5432')}/"
                f"{os.getenv('DB_NAME', 'hrflow')}"
            ),
            database_pool_size=int(os.getenv("DB_POOL_SIZE", "5")),
            database_max_overflow=int(os.getenv("DB_MAX_OVERFLOW", "10")),
            redis_url=redis_url,
            queue=QueueSettings(
                broker_url=os.getenv("CELERY_BROKER_URL", "redis://localhost:6379/1"),
                result_backend=os.getenv("CELERY_RESULT_BACKEND", "redis://localhost:6379/2"),
                max_attempts=int(os.getenv("JOB_MAX_ATTEMPTS", "3")),
                backoff_delay_seconds=float(os.getenv("JOB_BACKOFF_DELAY", "2")),
                max_backoff_seconds=float(os.getenv("JOB_MAX_BACKOFF", "300")),
                keep_completed=int(os.getenv("JOB_KEEP_COMPLETED", "10")),
                keep_failed=int(os.getenv("JOB_KEEP_FAILED", "5")),
                lease_timeout_seconds=int(os.getenv("JOB_LEASE_TIMEOUT", "3600")),
                worker_concurrency=int(os.getenv("CELERY_CONCURRENCY", "4")),
            ),
            imports=ImportSettings(
                batch_size=int(os.getenv("IMPORT_BATCH_SIZE", "50")),
                progress_ttl_seconds=int(os.getenv("IMPORT_PROGRESS_TTL", "86400")),
                delimiter=os.getenv("IMPORT_CSV_DELIMITER") or None,
            ),
            notifications=NotificationSettings(
                channel=os.getenv("NOTIFICATION_CHANNEL", "employee-notifications"),
                heartbeat_seconds=float(os.getenv("SSE_HEARTBEAT_SECONDS", "15")),
                connection_queue_size=int(os.getenv("SSE_QUEUE_SIZE", "100")),
            ),
        )


# Singleton settings instance
_settings: Optional[Settings] = None


@lru_cache()
def get_settings() -> Settings:
    """Get application settings (cached)."""
    global _settings
    if _settings is None:
        _settings = Settings.from_env()
    return _settings


def reset_settings() -> None:
    """Reset settings (for testing)."""
    global _settings
    _settings = None
    get_settings.cache_clear()
