"""Sliding window throttling for unauthenticated auth endpoints."""

from __future__ import annotations

import logging
import math
import time
import uuid
from collections import defaultdict, deque
from threading import Lock
from typing import Callable, Protocol

from redis import Redis
from redis.exceptions import RedisError

from ..domain.errors import RateLimitedError

logger = logging.getLogger(__name__)


class RateLimiter(Protocol):
    def check(self, key: str) -> None:
        """Record a hit for ``key``; raise ``RateLimitedError`` once over the limit."""
        ...


class MemoryRateLimiter:
    """Per-process sliding window limiter."""

    def __init__(
        self, max_requests: int, window_seconds: int, clock: Callable[[], float] = time.monotonic
    ) -> None:
        self._max_requests = max_requests
        self._window = window_seconds
        self._clock = clock
        self._hits: defaultdict[str, deque[float]] = defaultdict(deque)
        self._lock = Lock()

    def check(self, key: str) -> None:
        now = self._clock()
        with self._lock:
            hits = self._hits[key]
            while hits and now - hits[0] >= self._window:
                hits.popleft()
            if len(hits) >= self._max_requests:
                retry_after = math.ceil(self._window - (now - hits[0]))
                raise RateLimitedError(retry_after=max(1, retry_after))
            hits.append(now)


class RedisRateLimiter:
    """Sliding window shared between replicas, kept in one Redis sorted set per key.

    The hit is added before counting so concurrent callers cannot both slip
    under the limit; a rejected hit is removed again.
    """

    def __init__(
        self,
        client: Redis,
        *,
        max_requests: int,
        window_seconds: int,
        key_prefix: str = "devidentity:rate",
    ) -> None:
        self._client = client
        self._max_requests = max_requests
        self._window_ms = window_seconds * 1000
        self._key_prefix = key_prefix

    def check(self, key: str) -> None:
        now_ms = int(time.time() * 1000)
        redis_key = f"{self._key_prefix}:{key}"
        member = f"{now_ms}:{uuid.uuid4().hex}"

        pipe = self._client.pipeline(transaction=True)
        pipe.zremrangebyscore(redis_key, 0, now_ms - self._window_ms)
        pipe.zadd(redis_key, {member: now_ms})
        pipe.zcard(redis_key)
        pipe.zrange(redis_key, 0, 0, withscores=True)
        pipe.pexpire(redis_key, self._window_ms)
        _, _, count, oldest, _ = pipe.execute()

        if count <= self._max_requests:
            return
        self._client.zrem(redis_key, member)
        oldest_ms = int(oldest[0][1]) if oldest else now_ms
        retry_after = math.ceil((oldest_ms + self._window_ms - now_ms) / 1000)
        raise RateLimitedError(retry_after=max(1, retry_after))


def build_rate_limiter(
    *, backend: str, max_requests: int, window_seconds: int, redis_url: str = ""
) -> RateLimiter:
    """Instantiate the configured limiter backend, falling back to memory when Redis is unreachable."""
    if backend == "redis" and redis_url:
        try:
            client = Redis.from_url(redis_url)
            client.ping()
        except (RedisError, ValueError) as exc:  # pragma: no cover - depends on live redis
            logger.warning("redis rate limiter unavailable, falling back to in-memory: %s", exc)
        else:
            logger.info("rate limiter configured for redis backend")
            return RedisRateLimiter(client, max_requests=max_requests, window_seconds=window_seconds)

    logger.info("rate limiter using in-memory backend")
    return MemoryRateLimiter(max_requests=max_requests, window_seconds=window_seconds)
