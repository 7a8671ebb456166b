"""
Redis client initialization and JSON cache helpers.

Redis only caches resolved access grants; the database stays the source of
truth, so every helper here degrades to a cache miss when Redis is down.
"""

import json
import logging
from typing import Any, Optional

import redis.asyncio as redis
from redis.exceptions import RedisError
from backoffice.app.core.config import settings

logger = logging.getLogger(__name__)

# Create async Redis client
redis_client = redis.from_url(
    settings.redis_url,
    decode_responses=settings.redis_decode_responses,
)


async def get_redis():
    """
    Get Redis client instance.

    Used as a FastAPI dependency by the section guards.
    """
    return redis_client


async def cache_get_json(client, key: str) -> Optional[Any]:
    """Decoded value stored at ``key``, or None on a miss or a Redis failure."""
    try:
        raw = await client.get(key)
    except RedisError as e:
        logger.warning("Cache read failed for %s: %s", key, e)
        return None
    if raw is None:
        return None
    try:
        return json.loads(raw)
    except ValueError:
        logger.warning("Discarding unreadable cache value at %s", key)
        return None


async def cache_set_json(client, key: str, value: Any, ttl_seconds: int) -> bool:
    """Store ``value`` as JSON with a TTL. Returns False when Redis refused it."""
    try:
        await client.set(key, json.dumps(value), ex=ttl_seconds)
    except RedisError as e:
        logger.warning("Cache write failed for %s: %s", key, e)
        return False
    return True


async def ping_redis() -> bool:
    """
    Test Redis connection.

    Returns:
        True if connection successful, False otherwise
    """
    try:
        return await redis_client.ping()
    except RedisError:
        return False
