# ruff: noqa: PLW0603
"""Redis connection management.

Redis is optional: it only backs the grant cache, so the application keeps
serving (straight from Cassandra) when it is unreachable at startup.
"""

import redis.asyncio as redis

from src.config import get_settings
from src.core.logging import get_logger


logger = get_logger(__name__)

_redis_client: redis.Redis | None = None


async def init_redis() -> redis.Redis:
    """Initialize the Redis connection pool and verify it with a ping."""
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
        logger.info("redis_connected", url=settings.redis_url)
    except redis.ConnectionError as e:
        logger.warning("redis_connection_failed", error=str(e))
        _redis_client = None
        raise

    return _redis_client


async def shutdown_redis() -> None:
    global _redis_client

    if _redis_client:
        await _redis_client.aclose()
        logger.info("redis_disconnected")
        _redis_client = None


def grants_generation_key(user_id: object, course_id: object) -> str:
    """Counter bumped on every grant write of a user in a course."""
    return f"grants_gen:{user_id}:{course_id}"


def grants_cache_key(user_id: object, course_id: object, generation: object) -> str:
    """Cache key of the grant list of a user in a course at a generation."""
    return f"grants:{user_id}:{course_id}:{generation}"
