"""Sliding-window limit on requests per client IP.

Counts are kept in Redis when REDIS_URL is set, so every worker shares them;
otherwise each process counts on its own.
"""

import logging
import time
from collections import defaultdict, deque

from fastapi import HTTPException, Request

from relaybox.config import settings

logger = logging.getLogger(__name__)


def _reject(key: str, max_requests: int, window_seconds: int) -> None:
    logger.warning("Rate limit hit: %s (%d in %ds)", key, max_requests, window_seconds)
    raise HTTPException(
        status_code=429,
        detail=f"Too many requests. Try again in {window_seconds} seconds.",
    )


class _InMemoryLimiter:
    def __init__(self) -> None:
        self._hits: dict[str, deque[float]] = defaultdict(deque)

    def check(self, key: str, max_requests: int, window_seconds: int) -> None:
        now = time.monotonic()
        hits = self._hits[key]
        while hits and hits[0] <= now - window_seconds:
            hits.popleft()
        if len(hits) >= max_requests:
            _reject(key, max_requests, window_seconds)
        hits.append(now)

    def reset(self) -> None:
        self._hits.clear()


class _RedisLimiter:
    """One sorted set per client, scored by hit time."""

    def __init__(self, redis_url: str) -> None:
        import redis

        self._redis = redis.Redis.from_url(redis_url, decode_responses=True)
        self._redis.ping()
        logger.info("Rate limiter connected to Redis")

    def check(self, key: str, max_requests: int, window_seconds: int) -> None:
        now = time.time()
        rkey = f"rate:{key}"
        with self._redis.pipeline(transaction=True) as pipe:
            pipe.zremrangebyscore(rkey, "-inf", now - window_seconds)
            pipe.zcard(rkey)
            _, seen = pipe.execute()
        if seen >= max_requests:
            _reject(key, max_requests, window_seconds)
        with self._redis.pipeline(transaction=True) as pipe:
            pipe.zadd(rkey, {str(now): now})
            pipe.expire(rkey, window_seconds)
            pipe.execute()

    def reset(self) -> None:
        for rkey in self._redis.scan_iter(match="rate:*"):
            self._redis.delete(rkey)


def _create_limiter() -> _InMemoryLimiter | _RedisLimiter:
    if settings.redis_url:
        try:
            return _RedisLimiter(settings.redis_url)
        except Exception:
            logger.warning("Redis unavailable, counting requests in memory", exc_info=True)
    return _InMemoryLimiter()


limiter = _create_limiter()


def get_client_ip(request: Request) -> str:
    # Behind a proxy the real client is the rightmost X-Forwarded-For entry
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[-1].strip()
    return request.client.host if request.client else "unknown"


def rate_limit_client(request: Request) -> None:
    """Sync dependency: FastAPI runs it in the threadpool, off the event loop."""
    limiter.check(f"client:{get_client_ip(request)}", settings.rate_limit_max, settings.rate_limit_window)
