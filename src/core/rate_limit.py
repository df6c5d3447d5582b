"""Fixed-window request rate limiting.

Handlers depend on the ``RateLimiter`` protocol and never on a concrete
store. ``InMemoryRateLimiter`` keeps its counters on the instance and is only
correct when a single process serves traffic; ``RedisRateLimiter`` shares
counters across instances.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol

import structlog

if TYPE_CHECKING:
    from redis.asyncio import Redis
    from src.core.config import Settings

logger = structlog.get_logger(__name__)


class RateLimiter(Protocol):
    async def check_and_consume(self, key: str) -> bool:
        """Record one request for ``key`` and return whether it is allowed."""
        ...


@dataclass(slots=True)
class _Window:
    count: int
    reset_at: float


class InMemoryRateLimiter:
    """Per-process fixed-window counter; expired windows are dropped periodically."""

    def __init__(
        self,
        max_requests: int,
        window_seconds: float,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock
        self._windows: dict[str, _Window] = {}
        self._next_sweep = 0.0

    async def check_and_consume(self, key: str) -> bool:
        # no awaits below, so the read-modify-write is atomic on the event loop
        now = self._clock()
        if now >= self._next_sweep:
            self._sweep(now)
        window = self._windows.get(key)

        if window is None or now > window.reset_at:
            self._windows[key] = _Window(count=1, reset_at=now + self.window_seconds)
            return True

        if window.count >= self.max_requests:
            return False

        window.count += 1
        return True

    def _sweep(self, now: float) -> None:
        # runs at most once per window
        expired = [key for key, window in self._windows.items() if now > window.reset_at]
        for key in expired:
            del self._windows[key]
        self._next_sweep = now + self.window_seconds

    def reset(self) -> None:
        self._windows.clear()
        self._next_sweep = 0.0


class RedisRateLimiter:
    """Fixed-window counter stored in Redis (INCR, EXPIRE on first hit)."""

    def __init__(
        self,
        redis: Redis,
        max_requests: int,
        window_seconds: int,
        *,
        prefix: str = "ratelimit",
    ) -> None:
        self.redis = redis
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.prefix = prefix

    async def check_and_consume(self, key: str) -> bool:
        redis_key = f"{self.prefix}:{key}"
        count = await self.redis.incr(redis_key)
        if count == 1:
            await self.redis.expire(redis_key, self.window_seconds)
        return count <= self.max_requests


def build_rate_limiter(settings: Settings, *, max_requests: int, scope: str) -> RateLimiter:
    """Create the limiter configured by ``RATE_LIMIT_BACKEND``."""
    backend = settings.rate_limit_backend.lower()
    if backend == "redis":
        import redis.asyncio as aioredis

        client = aioredis.from_url(settings.redis_url)
        logger.info("rate_limiter_configured", backend="redis", scope=scope, limit=max_requests)
        return RedisRateLimiter(
            client,
            max_requests,
            settings.rate_limit_window_seconds,
            prefix=f"ratelimit:{scope}",
        )

    if backend != "memory":
        raise ValueError(f"Unsupported rate limit backend: {settings.rate_limit_backend}")

    logger.info("rate_limiter_configured", backend="memory", scope=scope, limit=max_requests)
    return InMemoryRateLimiter(max_requests, settings.rate_limit_window_seconds)


def client_identifier(headers: dict[str, str] | None, peer_host: str | None) -> str:
    """Best-effort client address, proxy headers first."""
    headers = headers or {}
    forwarded = headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    real_ip = headers.get("x-real-ip")
    if real_ip:
        return real_ip.strip()
    return peer_host or "unknown"
