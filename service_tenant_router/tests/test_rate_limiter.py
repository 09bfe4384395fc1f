"""
Unit tests for the hourly rate limiter.
"""

import asyncio
from datetime import datetime, timezone

import pytest
from unittest.mock import AsyncMock

from service_tenant_router.app.ratelimit.hourly_window import HourlyRateLimiter, RateLimitDecision
from shared.errors import CacheStoreError, RateLimitExceeded
from shared.kv_store import InMemoryKeyValueStore
from shared.test_helpers import ManualClock


class YieldingKeyValueStore(InMemoryKeyValueStore):
    """In-memory store that yields to the loop after each read, like a network store."""

    async def get(self, key):
        value = await super().get(key)
        await asyncio.sleep(0)
        return value


class TestHourlyRateLimiter:
    """Test cases for HourlyRateLimiter."""

    @pytest.fixture
    def clock(self):
        return ManualClock()

    @pytest.fixture
    def kv_store(self, clock):
        return InMemoryKeyValueStore(clock=clock)

    @pytest.fixture
    def rate_limiter(self, kv_store, clock):
        """Create HourlyRateLimiter instance."""
        return HourlyRateLimiter(kv_store, clock=clock)

    @pytest.mark.asyncio
    async def test_boundary(self, rate_limiter, clock):
        """Test limit=3 admits three requests and denies the fourth."""
        results = [await rate_limiter.check("tenant-kerala", "203.0.113.9", 3) for _ in range(4)]

        assert [r.allowed for r in results] == [True, True, True, False]
        assert [r.remaining for r in results] == [2, 1, 0, 0]

        denied = results[-1]
        now = datetime.fromtimestamp(clock.now, tz=timezone.utc)
        assert 0 <= (denied.reset_at - now).total_seconds() <= 3600 + 1

    @pytest.mark.asyncio
    async def test_denied_requests_do_not_increment(self, rate_limiter, kv_store):
        """Test denials leave the counter at the limit."""
        for _ in range(5):
            await rate_limiter.check("tenant-kerala", "203.0.113.9", 2)

        assert await kv_store.get("ratelimit:tenant-kerala:203.0.113.9") == "2"

    @pytest.mark.asyncio
    async def test_counter_key_and_ttl(self, rate_limiter, kv_store):
        """Test the counter lives under ratelimit:{tenant}:{ip} for one hour."""
        await rate_limiter.check("tenant-kerala", "203.0.113.9", 10)

        assert await kv_store.get("ratelimit:tenant-kerala:203.0.113.9") == "1"
        assert kv_store.ttl("ratelimit:tenant-kerala:203.0.113.9") == 3600

    @pytest.mark.asyncio
    async def test_window_expires(self, rate_limiter, clock):
        """Test the budget returns once the window key expires."""
        await rate_limiter.check("tenant-kerala", "203.0.113.9", 1)
        assert not (await rate_limiter.check("tenant-kerala", "203.0.113.9", 1)).allowed

        clock.advance(3600)

        assert (await rate_limiter.check("tenant-kerala", "203.0.113.9", 1)).allowed

    @pytest.mark.asyncio
    async def test_clients_and_tenants_are_isolated(self, rate_limiter):
        """Test each (tenant, ip) pair has its own budget."""
        await rate_limiter.check("tenant-kerala", "203.0.113.9", 1)

        assert (await rate_limiter.check("tenant-kerala", "198.51.100.7", 1)).allowed
        assert (await rate_limiter.check("tenant-goa", "203.0.113.9", 1)).allowed
        assert not (await rate_limiter.check("tenant-kerala", "203.0.113.9", 1)).allowed

    @pytest.mark.asyncio
    async def test_fail_open_on_read_error(self, clock):
        """Test a failing store read admits the request."""
        kv_store = AsyncMock()
        kv_store.get.side_effect = CacheStoreError("connection refused")
        rate_limiter = HourlyRateLimiter(kv_store, clock=clock)

        result = await rate_limiter.check("tenant-kerala", "203.0.113.9", 1)

        assert result.allowed is True
        assert result.error is not None
        kv_store.put.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_fail_open_on_write_error(self, clock):
        """Test a failing store write admits the request, whatever the count."""
        kv_store = AsyncMock()
        kv_store.get.return_value = "0"
        kv_store.put.side_effect = CacheStoreError("read only replica")
        rate_limiter = HourlyRateLimiter(kv_store, clock=clock)

        result = await rate_limiter.check("tenant-kerala", "203.0.113.9", 1)

        assert result.allowed is True

    @pytest.mark.asyncio
    async def test_fail_open_on_unexpected_error(self, clock):
        """Test a corrupt counter admits the request."""
        kv_store = AsyncMock()
        kv_store.get.return_value = "not-a-number"
        rate_limiter = HourlyRateLimiter(kv_store, clock=clock)

        assert (await rate_limiter.check("tenant-kerala", "203.0.113.9", 1)).allowed

    @pytest.mark.asyncio
    async def test_concurrent_burst_can_over_admit(self, clock):
        """Test the read-then-write race: concurrent requests may both pass the last slot."""
        kv_store = YieldingKeyValueStore(clock=clock)
        rate_limiter = HourlyRateLimiter(kv_store, clock=clock)

        results = await asyncio.gather(
            rate_limiter.check("tenant-kerala", "203.0.113.9", 1),
            rate_limiter.check("tenant-kerala", "203.0.113.9", 1),
        )

        assert all(result.allowed for result in results)
        assert await kv_store.get("ratelimit:tenant-kerala:203.0.113.9") == "1"
        assert not (await rate_limiter.check("tenant-kerala", "203.0.113.9", 1)).allowed

    @pytest.mark.asyncio
    async def test_reset(self, rate_limiter):
        """Test resetting a window restores the budget."""
        await rate_limiter.check("tenant-kerala", "203.0.113.9", 1)

        assert await rate_limiter.reset("tenant-kerala", "203.0.113.9") is True
        assert (await rate_limiter.check("tenant-kerala", "203.0.113.9", 1)).allowed


class TestRateLimitDecision:
    """Test cases for RateLimitDecision."""

    def test_headers(self):
        """Test admitted responses carry limit and remaining."""
        decision = RateLimitDecision(allowed=True, limit=100, remaining=42)
        assert decision.headers() == {"X-RateLimit-Limit": "100", "X-RateLimit-Remaining": "42"}

    def test_raise_for_denied(self):
        """Test denials raise RateLimitExceeded with limit and reset."""
        reset_at = datetime(2026, 1, 5, 12, 0, tzinfo=timezone.utc)
        decision = RateLimitDecision(allowed=False, limit=3, remaining=0, reset_at=reset_at)

        with pytest.raises(RateLimitExceeded) as exc_info:
            decision.raise_for_denied()

        body = exc_info.value.to_body()
        assert body["error"] == "Rate limit exceeded"
        assert body["limit"] == 3
        assert body["reset_at"] == "2026-01-05T12:00:00+00:00"
        assert exc_info.value.headers() == {
            "X-RateLimit-Limit": "3",
            "X-RateLimit-Remaining": "0",
            "X-RateLimit-Reset": str(int(reset_at.timestamp())),
        }

    def test_allowed_does_not_raise(self):
        """Test admitted decisions do not raise."""
        RateLimitDecision(allowed=True, limit=3, remaining=2).raise_for_denied()
