"""
Redis client initialization.

Redis backs the local storage backend. The client connects lazily on first
command.
"""

import logging

import redis.asyncio as redis
from redis.exceptions import RedisError

from incident_backend.app.core.config import settings

logger = logging.getLogger(__name__)

redis_client = redis.from_url(
    settings.redis_url,
    decode_responses=settings.redis_decode_responses,
)


async def ping_redis(client=None) -> bool:
    """True if Redis answers PING."""
    try:
        return bool(await (client or redis_client).ping())
    except RedisError as exc:
        logger.warning("Redis ping failed: %s", exc)
        return False
