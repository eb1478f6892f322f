"""
Redis Connection Management

Shared connection pool used by the conversion queue and progress tracking.
The URL comes from settings (REDIS_URL).
"""

import logging
import time
from dataclasses import dataclass
from typing import Optional

from redis import ConnectionPool, Redis
from redis.exceptions import ConnectionError, TimeoutError

from .config import get_settings

logger = logging.getLogger(__name__)

_connection_pool: Optional[ConnectionPool] = None


def get_connection_pool() -> ConnectionPool:
    """Get or lazily create the process-wide connection pool."""
    global _connection_pool

    if _connection_pool is None:
        _connection_pool = ConnectionPool.from_url(
            get_settings().redis_url,
            max_connections=10,
            decode_responses=True,
        )

    return _connection_pool


def get_redis_connection() -> Redis:
    """
    Get a Redis client backed by the shared pool.

    Example:
        >>> redis = get_redis_connection()
        >>> redis.hgetall("hlsforge:progress:convert:intro")
        {}
    """
    return Redis(connection_pool=get_connection_pool())


@dataclass
class RedisHealthStatus:
    """Result of a Redis PING."""

    healthy: bool
    latency_ms: Optional[float] = None
    error: Optional[str] = None


def check_redis_health(timeout: float = 2.0) -> RedisHealthStatus:
    """
    PING Redis on a dedicated short-timeout connection.

    Never raises; failures are reported in the returned status.
    """
    try:
        client = Redis.from_url(
            get_settings().redis_url,
            socket_timeout=timeout,
            socket_connect_timeout=timeout,
        )
        start = time.perf_counter()
        client.ping()
        latency_ms = (time.perf_counter() - start) * 1000
        return RedisHealthStatus(healthy=True, latency_ms=round(latency_ms, 2))

    except (ConnectionError, TimeoutError) as e:
        logger.warning(f"Redis health check failed: {e}")
        return RedisHealthStatus(healthy=False, error=str(e))


def close_connection_pool() -> None:
    """Disconnect and drop the shared pool (shutdown and tests)."""
    global _connection_pool

    if _connection_pool is not None:
        _connection_pool.disconnect()
        _connection_pool = None
