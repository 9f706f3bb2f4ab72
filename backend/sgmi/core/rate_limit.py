"""Per-client request rate limiting for the HTTP API.

Counts requests in a Redis sorted-set sliding window keyed by client IP.
When Redis is not configured, unreachable, or errors mid-request, an
in-process token bucket enforces the same limit.
"""

import logging
import threading
import time
from dataclasses import dataclass, field

from fastapi import HTTPException, Request, status
from redis.exceptions import RedisError

from sgmi.core.config import settings
from sgmi.core.redis import get_redis

logger = logging.getLogger(__name__)


@dataclass
class _TokenBucket:
    tokens: float
    last_refill: float
    limit: int
    window: int

    def consume(self, now: float) -> tuple[bool, int]:
        """Try to take one token. Returns (allowed, retry_after_seconds)."""
        refill_rate = self.limit / self.window
        self.tokens = min(self.limit, self.tokens + (now - self.last_refill) * refill_rate)
        self.last_refill = now

        if self.tokens >= 1.0:
            self.tokens -= 1.0
            return True, 0

        retry_after = max(1, int((1.0 - self.tokens) / refill_rate))
        return False, retry_after


@dataclass
class InMemoryLimiter:
    """Token buckets per client key, safe to share across threads."""

    _buckets: dict[str, _TokenBucket] = field(default_factory=dict)
    _lock: threading.Lock = field(default_factory=threading.Lock)

    def check(self, key: str, limit: int, window: int, now: float | None = None) -> tuple[bool, int]:
        now = time.time() if now is None else now
        with self._lock:
            bucket = self._buckets.get(key)
            if bucket is None or bucket.limit != limit or bucket.window != window:
                bucket = _TokenBucket(tokens=float(limit), last_refill=now, limit=limit, window=window)
                self._buckets[key] = bucket
            return bucket.consume(now)


_memory_limiter = InMemoryLimiter()


def client_key(request: Request) -> str:
    """Identify the caller by IP, honouring X-Forwarded-For behind a proxy."""
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


def _too_many_requests(retry_after: int) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_429_TOO_MANY_REQUESTS,
        detail=f"Rate limit exceeded. Try again in {retry_after}s.",
        headers={"Retry-After": str(retry_after)},
    )


async def _redis_window(key: str, limit: int, window: int) -> tuple[bool, int]:
    redis = get_redis()
    now = time.time()

    pipe = redis.pipeline()
    pipe.zremrangebyscore(key, 0, now - window)
    pipe.zadd(key, {str(now): now})
    pipe.zcard(key)
    pipe.zrange(key, 0, 0, withscores=True)
    pipe.expire(key, window)
    results = await pipe.execute()

    if results[2] <= limit:
        return True, 0

    oldest = results[3]
    retry_after = max(1, int(oldest[0][1] + window - now)) if oldest else window
    return False, retry_after


async def rate_limit_default(request: Request) -> None:
    """FastAPI dependency enforcing ``RATE_LIMIT_MAX_REQUESTS`` per window."""
    limit = settings.RATE_LIMIT_MAX_REQUESTS
    window = settings.RATE_LIMIT_WINDOW_SECONDS
    key = f"ratelimit:api:{client_key(request)}"

    try:
        allowed, retry_after = await _redis_window(key, limit, window)
    except (RuntimeError, RedisError):
        allowed, retry_after = _memory_limiter.check(key, limit, window)

    if not allowed:
        logger.info("Rate limit exceeded for %s", key)
        raise _too_many_requests(retry_after)
