"""Redis client construction. Lifecycle belongs to the caller (app lifespan or worker)."""

import logging

import redis.asyncio as redis
from redis.asyncio import Redis
from redis.exceptions import RedisError

from filebox.config import Settings

log = logging.getLogger(__name__)


def create_redis(settings: Settings) -> Redis:
    """Return an async Redis client for sessions and job queues (str responses)."""
    log.debug("Connecting to Redis at %s", settings.redis_url)
    return redis.from_url(settings.redis_url, decode_responses=True)


async def redis_alive(client: Redis) -> bool:
    """True if the server answers PING."""
    try:
        return bool(await client.ping())
    except RedisError as e:
        log.warning("Redis ping failed: %s", e)
        return False
