"""Redis infrastructure module."""

from hrflow.infrastructure.redis.redis_client import (
    RedisConfig,
    RedisClientManager,
)

from hrflow.infrastructure.redis.celery_config import (
    CeleryConfig,
    create_celery_app,
)

__all__ = [
    # Redis client
    "RedisConfig",
    "RedisClientManager",
    # Celery
    "CeleryConfig",
    "create_celery_app",
]
