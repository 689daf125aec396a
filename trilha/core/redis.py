# ruff: noqa: PLW0603
"""Redis connection management.

Provides the async Redis client used for Pub/Sub delivery of enrollment
snapshots (the progression push feed).
"""

from uuid import UUID

import redis.asyncio as redis

from trilha.config import get_settings
from trilha.core.logging import get_logger


logger = get_logger(__name__)

# Global Redis client
_redis_client: redis.Redis | None = None


async def init_redis() -> redis.Redis:
    """Initialize Redis connection pool."""
    global _redis_client

    settings = get_settings()

    _redis_client = redis.from_url(
        settings.redis_url,
        max_connections=settings.redis_max_connections,
        socket_timeout=settings.redis_socket_timeout,
        socket_connect_timeout=settings.redis_socket_connect_timeout,
        retry_on_timeout=settings.redis_retry_on_timeout,
        health_check_interval=settings.redis_health_check_interval,
        decode_responses=True,
    )

    try:
        await _redis_client.ping()
        logger.info("redis_connected")
    except redis.ConnectionError as e:
        logger.warning("redis_connection_failed", error=str(e))
        _redis_client = None
        raise

    return _redis_client


async def shutdown_redis() -> None:
    """Close Redis connection."""
    global _redis_client

    if _redis_client:
        await _redis_client.aclose()
        logger.info("redis_disconnected")
        _redis_client = None


# Pub/Sub channel patterns
def enrollment_channel(course_id: UUID | str, user_id: UUID | str) -> str:
    """Get the channel carrying enrollment snapshots for one (course, learner)."""
    return f"enrollments:course:{course_id}:user:{user_id}"
