"""Async Redis client used by the HTTP rate limiter.

Redis is optional: when ``REDIS_URL`` is empty or the server does not answer
at startup, the client stays unset and the rate limiter falls back to its
in-memory buckets.
"""

import logging

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from sgmi.core.config import settings

logger = logging.getLogger(__name__)

_client: aioredis.Redis | None = None


async def init_redis(app_state: object) -> aioredis.Redis | None:
    """Connect to Redis and expose the client on ``app.state.redis``."""
    global _client
    app_state.redis = None  # type: ignore[attr-defined]
    if not settings.REDIS_URL:
        logger.info("REDIS_URL not set, rate limiting stays in memory")
        return None

    client = aioredis.from_url(settings.REDIS_URL, decode_responses=True)
    try:
        await client.ping()
    except (RedisError, OSError) as exc:
        logger.warning("Redis unavailable at startup (%s), using in-memory rate limiting", exc)
        await client.aclose()
        return None

    _client = client
    app_state.redis = client  # type: ignore[attr-defined]
    return client


async def close_redis(app_state: object) -> None:
    """Close the client opened by ``init_redis``."""
    global _client
    client: aioredis.Redis | None = getattr(app_state, "redis", None)
    if client is not None:
        await client.aclose()
        app_state.redis = None  # type: ignore[attr-defined]
    _client = None


def get_redis() -> aioredis.Redis:
    """Return the shared client, or raise RuntimeError when Redis is not in use."""
    if _client is None:
        raise RuntimeError("Redis client not initialized")
    return _client
