"""
Sliding-window rate limiting behind an injected store.

Limiter state must be consistent across API instances, so deployments use the
Redis store; the in-memory store exists for tests and single-process dev runs.
"""
from __future__ import annotations

import logging
import threading
import time
import uuid
from abc import ABC, abstractmethod
from collections import deque
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Deque, Dict

import redis

from ..core.config import get_settings

logger = logging.getLogger(__name__)


@dataclass
class RateLimitResult:
    allowed: bool
    remaining: int
    reset_at: datetime

    def retry_after_seconds(self, now: float | None = None) -> int:
        now = time.time() if now is None else now
        return max(1, int(self.reset_at.timestamp() - now + 0.999))


class RateLimitStore(ABC):
    @abstractmethod
    def hit(self, identifier: str, limit: int, window_seconds: int) -> RateLimitResult:
        """Record a request for `identifier` unless it is over `limit`."""

    @abstractmethod
    def reset(self, identifier: str) -> None:
        ...


class InMemoryRateLimitStore(RateLimitStore):
    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock
        self._lock = threading.Lock()
        self._hits: Dict[str, Deque[float]] = {}
        self._last_sweep = clock()

    def hit(self, identifier: str, limit: int, window_seconds: int) -> RateLimitResult:
        now = self._clock()
        window_start = now - window_seconds
        with self._lock:
            if now - self._last_sweep >= window_seconds:
                self._sweep(window_start)
                self._last_sweep = now

            timestamps = self._hits.setdefault(identifier, deque())
            while timestamps and timestamps[0] <= window_start:
                timestamps.popleft()

            if len(timestamps) >= limit:
                oldest = timestamps[0] if timestamps else now
                return RateLimitResult(
                    allowed=False,
                    remaining=0,
                    reset_at=datetime.fromtimestamp(oldest + window_seconds),
                )

            timestamps.append(now)
            return RateLimitResult(
                allowed=True,
                remaining=limit - len(timestamps),
                reset_at=datetime.fromtimestamp(timestamps[0] + window_seconds),
            )

    def _sweep(self, window_start: float) -> None:
        # Drop identifiers whose newest hit has left the window
        stale = [key for key, ts in self._hits.items() if not ts or ts[-1] <= window_start]
        for key in stale:
            del self._hits[key]

    def tracked_identifiers(self) -> int:
        with self._lock:
            return len(self._hits)

    def reset(self, identifier: str) -> None:
        with self._lock:
            self._hits.pop(identifier, None)


# Prune, count and conditionally add as one atomic server-side step.
SLIDING_WINDOW_LUA = """
local key = KEYS[1]
local now = tonumber(ARGV[1])
local window = tonumber(ARGV[2])
local limit = tonumber(ARGV[3])
redis.call('ZREMRANGEBYSCORE', key, 0, now - window)
local count = redis.call('ZCARD', key)
local oldest = redis.call('ZRANGE', key, 0, 0, 'WITHSCORES')
local oldest_ts = ARGV[1]
if oldest[2] then
  oldest_ts = oldest[2]
end
if count >= limit then
  return {0, count, oldest_ts}
end
redis.call('ZADD', key, now, ARGV[4])
redis.call('EXPIRE', key, window)
return {1, count + 1, oldest_ts}
"""


class RedisRateLimitStore(RateLimitStore):
    """
    One sorted set per identifier, scored by request time. Each hit is a
    single Lua script call, so the check and the add are atomic.

    Redis errors fail open: the request is allowed and a warning logged.
    """

    key_prefix = "ratelimit:"

    def __init__(self, client: redis.Redis | None = None, clock: Callable[[], float] = time.time) -> None:
        self._client = client
        self._clock = clock
        self._script = None

    def _get_client(self) -> redis.Redis:
        if self._client is None:
            self._client = redis.from_url(
                str(get_settings().REDIS_URL),
                decode_responses=True,
                socket_timeout=5,
                socket_connect_timeout=5,
            )
        return self._client

    def _get_script(self):
        if self._script is None:
            self._script = self._get_client().register_script(SLIDING_WINDOW_LUA)
        return self._script

    def hit(self, identifier: str, limit: int, window_seconds: int) -> RateLimitResult:
        now = self._clock()
        key = f"{self.key_prefix}{identifier}"
        member = f"{now}:{uuid.uuid4().hex}"
        try:
            allowed, count, oldest_ts = self._get_script()(
                keys=[key], args=[now, window_seconds, limit, member]
            )
        except redis.RedisError:
            logger.warning(
                "Rate limit store unavailable; allowing request",
                extra={"step": "rate_limit", "user_id": identifier},
            )
            return RateLimitResult(
                allowed=True,
                remaining=limit,
                reset_at=datetime.fromtimestamp(now + window_seconds),
            )

        reset_at = datetime.fromtimestamp(float(oldest_ts) + window_seconds)
        if not allowed:
            return RateLimitResult(allowed=False, remaining=0, reset_at=reset_at)
        return RateLimitResult(allowed=True, remaining=max(0, limit - int(count)), reset_at=reset_at)

    def reset(self, identifier: str) -> None:
        try:
            self._get_client().delete(f"{self.key_prefix}{identifier}")
        except redis.RedisError:
            logger.warning("Failed to reset rate limit", extra={"step": "rate_limit"})


class RateLimiter:
    def __init__(self, store: RateLimitStore, window_seconds: int | None = None) -> None:
        self.store = store
        self.window_seconds = window_seconds or get_settings().RATE_LIMIT_WINDOW_SECONDS

    def check(self, scope: str, identifier: str, limit: int) -> RateLimitResult:
        return self.store.hit(f"{scope}:{identifier}", limit, self.window_seconds)


_limiter: RateLimiter | None = None
_limiter_lock = threading.Lock()


def get_rate_limiter() -> RateLimiter:
    """
    Lazily built process limiter; the store it wraps is the shared state.
    """
    global _limiter
    if _limiter is None:
        with _limiter_lock:
            if _limiter is None:
                backend = get_settings().RATE_LIMIT_BACKEND.lower()
                store: RateLimitStore = (
                    InMemoryRateLimitStore() if backend == "memory" else RedisRateLimitStore()
                )
                _limiter = RateLimiter(store)
    return _limiter
