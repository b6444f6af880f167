"""
Redis Client Configuration

Provides Redis connectivity with connection pooling and automatic
reconnection. One manager is built per process by the application container
and its client handed to the stores that need it.
"""

import logging
import time
from typing import Any, Dict, Optional
from urllib.parse import urlparse

import redis

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


# =============================================================================
# Configuration Models
# =============================================================================

class RedisConfig(BaseModel):
    """Redis connection configuration."""

    # Connection settings
    host: str = Field(default="localhost", description="Redis host")
    port: int = Field(default=6379, description="Redis port")
    password: Optional[str] = Field(default=None, description="Redis password")
    db: int = Field(default=0, description="Redis database number")

    # SSL/TLS
    ssl: bool = Field(default=False, description="Enable SSL/TLS")

    # Connection pool
    max_connections: int = Field(default=50, description="Max pool connections")
    socket_timeout: float = Field(default=5.0, description="Socket timeout in seconds")
    socket_connect_timeout: float = Field(default=5.0, description="Connect timeout")
    retry_on_timeout: bool = Field(default=True, description="Retry on timeout")

    # Health check
    health_check_interval: int = Field(default=30, description="Health check interval")

    @classmethod
    def from_url(cls, redis_url: str) -> "RedisConfig":
        """Build a config from a redis:// or rediss:// URL."""
        parsed = urlparse(redis_url)
        return cls(
            host=parsed.hostname or "localhost",
            port=parsed.port or 6379,
            password=parsed.password,
            db=int(parsed.path.lstrip("/") or 0),
            ssl=parsed.scheme == "rediss",
        )


# =============================================================================
# Redis Client Manager
# =============================================================================

class RedisClientManager:
    """
    Manages a pooled Redis connection.

    Connects lazily on first use of `client`.
    """

    def __init__(self, config: RedisConfig):
        self.config = config
        self._client: Optional[redis.Redis] = None
        self._pool: Optional[redis.ConnectionPool] = None
        self._is_connected = False

    def connect(self) -> None:
        """Establish connection to Redis."""
        try:
            self._connect_standalone()

            # Test connection
            self._client.ping()
            self._is_connected = True
            logger.info("Successfully connected to Redis")

        except redis.RedisError as e:
            self._is_connected = False
            logger.error(f"Failed to connect to Redis: {str(e)}")
            raise

    def _connect_standalone(self) -> None:
        """Connect to standalone Redis instance."""
        pool_class = redis.SSLConnection if self.config.ssl else redis.Connection
        self._pool = redis.ConnectionPool(
            connection_class=pool_class,
            host=self.config.host,
            port=self.config.port,
            password=self.config.password,
            db=self.config.db,
            max_connections=self.config.max_connections,
            socket_timeout=self.config.socket_timeout,
            socket_connect_timeout=self.config.socket_connect_timeout,
            retry_on_timeout=self.config.retry_on_timeout,
            decode_responses=True,
            health_check_interval=self.config.health_check_interval,
        )

        self._client = redis.Redis(connection_pool=self._pool)

    @property
    def client(self) -> redis.Redis:
        """Get Redis client, connecting if necessary."""
        if not self._is_connected or self._client is None:
            self.connect()
        return self._client

    def close(self) -> None:
        """Close Redis connection."""
        if self._client is not None:
            try:
                self._client.close()
            except redis.RedisError as e:
                logger.warning(f"Error closing Redis client: {str(e)}")
            finally:
                self._client = None
                self._is_connected = False

        if self._pool is not None:
            self._pool.disconnect()
            self._pool = None

    def health_check(self, timeout_seconds: float = 3.0) -> Dict[str, Any]:
        """
        Perform health check on Redis connection.

        Returns status within the specified timeout.
        """
        start_time = time.time()
        result = {
            "status": "unknown",
            "latency_ms": None,
            "connected": False,
            "error": None,
        }

        try:
            ping_start = time.time()
            pong = self.client.ping()
            ping_end = time.time()

            elapsed = time.time() - start_time
            if elapsed > timeout_seconds:
                result["status"] = "degraded"
                result["error"] = f"Health check took {elapsed:.2f}s (limit: {timeout_seconds}s)"
            else:
                result["status"] = "healthy"

            result["connected"] = pong
            result["latency_ms"] = round((ping_end - ping_start) * 1000, 2)

        except redis.RedisError as e:
            result["status"] = "unhealthy"
            result["connected"] = False
            result["error"] = str(e)

        return result
