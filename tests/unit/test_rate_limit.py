"""Unit tests for the fixed-window rate limiters."""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest
from src.core.config import Settings
from src.core.rate_limit import (
    InMemoryRateLimiter,
    RedisRateLimiter,
    build_rate_limiter,
    client_identifier,
)


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


class TestInMemoryRateLimiter:
    async def test_allows_up_to_limit_then_rejects(self) -> None:
        limiter = InMemoryRateLimiter(3, 60, clock=FakeClock())

        results = [await limiter.check_and_consume("10.0.0.1") for _ in range(5)]

        assert results == [True, True, True, False, False]

    async def test_window_resets_after_expiry(self) -> None:
        clock = FakeClock()
        limiter = InMemoryRateLimiter(2, 60, clock=clock)
        assert await limiter.check_and_consume("10.0.0.1")
        assert await limiter.check_and_consume("10.0.0.1")
        assert not await limiter.check_and_consume("10.0.0.1")

        clock.now += 61

        assert await limiter.check_and_consume("10.0.0.1")

    async def test_keys_are_independent(self) -> None:
        limiter = InMemoryRateLimiter(1, 60, clock=FakeClock())

        assert await limiter.check_and_consume("10.0.0.1")
        assert await limiter.check_and_consume("10.0.0.2")
        assert not await limiter.check_and_consume("10.0.0.1")

    async def test_instances_do_not_share_state(self) -> None:
        first = InMemoryRateLimiter(1, 60, clock=FakeClock())
        second = InMemoryRateLimiter(1, 60, clock=FakeClock())

        assert await first.check_and_consume("10.0.0.1")
        assert await second.check_and_consume("10.0.0.1")

    async def test_reset_clears_counters(self) -> None:
        limiter = InMemoryRateLimiter(1, 60, clock=FakeClock())
        await limiter.check_and_consume("10.0.0.1")

        limiter.reset()

        assert await limiter.check_and_consume("10.0.0.1")

    async def test_expired_windows_are_dropped(self) -> None:
        clock = FakeClock()
        limiter = InMemoryRateLimiter(1, 60, clock=clock)
        for n in range(500):
            await limiter.check_and_consume(f"10.0.{n // 256}.{n % 256}")
        clock.now += 30
        await limiter.check_and_consume("192.0.2.1")

        clock.now += 31
        assert await limiter.check_and_consume("192.0.2.2")

        assert set(limiter._windows) == {"192.0.2.1", "192.0.2.2"}
        assert not await limiter.check_and_consume("192.0.2.1")


class TestRedisRateLimiter:
    async def test_sets_expiry_on_first_hit_only(self) -> None:
        redis = AsyncMock()
        redis.incr.side_effect = [1, 2]
        limiter = RedisRateLimiter(redis, 5, 60, prefix="ratelimit:test")

        assert await limiter.check_and_consume("10.0.0.1")
        assert await limiter.check_and_consume("10.0.0.1")

        redis.incr.assert_awaited_with("ratelimit:test:10.0.0.1")
        redis.expire.assert_awaited_once_with("ratelimit:test:10.0.0.1", 60)

    async def test_rejects_over_limit(self) -> None:
        redis = AsyncMock()
        redis.incr.return_value = 6
        limiter = RedisRateLimiter(redis, 5, 60)

        assert await limiter.check_and_consume("10.0.0.1") is False
        redis.expire.assert_not_awaited()


class TestBuildRateLimiter:
    def test_memory_backend(self) -> None:
        limiter = build_rate_limiter(
            Settings(RATE_LIMIT_BACKEND="memory"), max_requests=7, scope="test"
        )

        assert isinstance(limiter, InMemoryRateLimiter)
        assert limiter.max_requests == 7

    def test_unknown_backend_rejected(self) -> None:
        with pytest.raises(ValueError):
            build_rate_limiter(Settings(RATE_LIMIT_BACKEND="memcached"), max_requests=1, scope="x")


class TestClientIdentifier:
    def test_first_forwarded_address_wins(self) -> None:
        headers = {"x-forwarded-for": "203.0.113.7, 10.0.0.1", "x-real-ip": "10.0.0.9"}

        assert client_identifier(headers, "127.0.0.1") == "203.0.113.7"

    def test_real_ip_then_peer_then_unknown(self) -> None:
        assert client_identifier({"x-real-ip": "198.51.100.2"}, "127.0.0.1") == "198.51.100.2"
        assert client_identifier({}, "127.0.0.1") == "127.0.0.1"
        assert client_identifier(None, None) == "unknown"
