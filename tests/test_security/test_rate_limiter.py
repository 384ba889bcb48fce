"""
Tests for sliding window rate limiting.

Tests cover:
- SlidingWindowRateLimiter over both backends
- Window sliding and retry-after computation
- Fail-open behavior on store failures
- Concurrency
"""

from __future__ import annotations

import asyncio

import pytest

from phonoguard.exceptions import InvalidIdentifier, RateLimitExceeded
from phonoguard.security.rate_limiter import (
    InMemoryWindowBackend,
    SlidingWindowRateLimiter,
    StoreWindowBackend,
)
from phonoguard.types import MINUTE_MS, SECOND_MS


@pytest.fixture(params=["memory", "store"])
def limiter(request, store, clock, locks) -> SlidingWindowRateLimiter:
    """Limiter over each backend."""
    if request.param == "memory":
        backend = InMemoryWindowBackend()
    else:
        backend = StoreWindowBackend(store)
    return SlidingWindowRateLimiter(backend, clock, locks)


class TestSlidingWindowRateLimiter:
    """Tests for SlidingWindowRateLimiter."""

    @pytest.mark.asyncio
    async def test_allows_up_to_limit_then_denies(self, limiter):
        """Test that N requests pass and the N+1th is denied."""
        for i in range(5):
            result = await limiter.check("user@x.com", 5, MINUTE_MS)
            assert result.allowed is True
            assert result.remaining == 4 - i

        denied = await limiter.check("user@x.com", 5, MINUTE_MS)
        assert denied.allowed is False
        assert denied.remaining == 0
        assert denied.remaining_time_ms > 0

    @pytest.mark.asyncio
    async def test_remaining_time_counts_from_oldest_request(self, limiter, clock):
        """Test the retry-after value."""
        await limiter.check("k", 2, MINUTE_MS)
        clock.advance(10 * SECOND_MS)
        await limiter.check("k", 2, MINUTE_MS)
        clock.advance(5 * SECOND_MS)

        denied = await limiter.check("k", 2, MINUTE_MS)
        assert denied.remaining_time_ms == 45 * SECOND_MS

    @pytest.mark.asyncio
    async def test_window_slides(self, limiter, clock):
        """Test that requests are allowed again once old ones age out."""
        for _ in range(3):
            await limiter.check("k", 3, MINUTE_MS)
        assert (await limiter.check("k", 3, MINUTE_MS)).allowed is False

        clock.advance(MINUTE_MS)
        assert (await limiter.check("k", 3, MINUTE_MS)).allowed is True

    @pytest.mark.asyncio
    async def test_denied_requests_are_not_recorded(self, limiter, clock):
        """Test that hammering while denied does not extend the window."""
        await limiter.check("k", 1, MINUTE_MS)
        for _ in range(10):
            clock.advance(SECOND_MS)
            await limiter.check("k", 1, MINUTE_MS)

        clock.advance(MINUTE_MS - 10 * SECOND_MS)
        assert (await limiter.check("k", 1, MINUTE_MS)).allowed is True

    @pytest.mark.asyncio
    async def test_identifiers_are_independent(self, limiter):
        """Test that one identifier does not consume another's budget."""
        await limiter.check("a", 1, MINUTE_MS)
        assert (await limiter.check("a", 1, MINUTE_MS)).allowed is False
        assert (await limiter.check("b", 1, MINUTE_MS)).allowed is True

    @pytest.mark.asyncio
    async def test_get_remaining_does_not_record(self, limiter):
        """Test that peeking does not consume the budget."""
        assert await limiter.get_remaining("k", 3, MINUTE_MS) == 3
        await limiter.check("k", 3, MINUTE_MS)
        assert await limiter.get_remaining("k", 3, MINUTE_MS) == 2
        assert await limiter.get_remaining("k", 3, MINUTE_MS) == 2

    @pytest.mark.asyncio
    async def test_reset(self, limiter):
        """Test that reset restores the full budget."""
        await limiter.check("k", 1, MINUTE_MS)
        await limiter.reset("k")
        assert (await limiter.check("k", 1, MINUTE_MS)).allowed is True

    @pytest.mark.asyncio
    async def test_enforce_raises_when_denied(self, limiter):
        """Test the raising variant."""
        await limiter.enforce("k", 1, MINUTE_MS)
        with pytest.raises(RateLimitExceeded) as exc_info:
            await limiter.enforce("k", 1, MINUTE_MS)
        assert exc_info.value.limit_key == "k"
        assert exc_info.value.limit_value == 1
        assert exc_info.value.retry_after_ms > 0

    @pytest.mark.asyncio
    async def test_empty_identifier_rejected(self, limiter):
        """Test that blank identifiers raise."""
        with pytest.raises(InvalidIdentifier):
            await limiter.check("  ", 5, MINUTE_MS)

    @pytest.mark.asyncio
    async def test_invalid_limits_rejected(self, limiter):
        """Test that non-positive limits raise."""
        with pytest.raises(ValueError):
            await limiter.check("k", 0, MINUTE_MS)
        with pytest.raises(ValueError):
            await limiter.check("k", 5, 0)

    @pytest.mark.asyncio
    async def test_concurrent_checks_never_exceed_limit(self, yielding_store, clock, locks):
        """Test that checks interleaving inside store reads respect the limit exactly."""
        backend = StoreWindowBackend(yielding_store)
        limiter = SlidingWindowRateLimiter(backend, clock, locks)

        results = await asyncio.gather(
            *(limiter.check("k", 5, MINUTE_MS) for _ in range(20))
        )

        assert sum(1 for r in results if r.allowed) == 5
        assert len(await backend.load("k")) == 5

    @pytest.mark.asyncio
    async def test_locks_released_after_checks(self, limiter, locks):
        """Test that per-identifier mutexes do not outlive their checks."""
        for i in range(100):
            await limiter.check(f"user_{i}:/api/cart", 5, MINUTE_MS)
        assert locks.key_count == 0


class TestStoreWindowBackend:
    """Tests specific to persisted windows."""

    @pytest.mark.asyncio
    async def test_window_survives_new_limiter(self, store, clock):
        """Test that counts persist across limiter instances."""
        first = SlidingWindowRateLimiter(StoreWindowBackend(store), clock)
        await first.check("login:user@x.com", 2, MINUTE_MS)
        await first.check("login:user@x.com", 2, MINUTE_MS)

        second = SlidingWindowRateLimiter(StoreWindowBackend(store), clock)
        assert (await second.check("login:user@x.com", 2, MINUTE_MS)).allowed is False

    @pytest.mark.asyncio
    async def test_one_key_per_identifier(self, raw_store, store, clock):
        """Test the persisted layout."""
        limiter = SlidingWindowRateLimiter(StoreWindowBackend(store), clock)
        await limiter.check("a", 5, MINUTE_MS)
        await limiter.check("b", 5, MINUTE_MS)
        keys = set(raw_store.snapshot())
        assert keys == {"test:rate_limit:a", "test:rate_limit:b"}

    @pytest.mark.asyncio
    async def test_fails_open_when_store_unavailable(self, raw_store, store, clock):
        """Test that store failures allow the request."""
        limiter = SlidingWindowRateLimiter(StoreWindowBackend(store), clock)
        raw_store.fail_on.update({"get", "set"})

        for _ in range(10):
            result = await limiter.check("k", 1, MINUTE_MS)
            assert result.allowed is True
        assert await limiter.get_remaining("k", 1, MINUTE_MS) == 1


class TestInMemoryWindowBackend:
    """Tests for the in-memory backend."""

    @pytest.mark.asyncio
    async def test_prune_drops_idle_windows(self, clock):
        """Test pruning of windows with no recent requests."""
        backend = InMemoryWindowBackend()
        limiter = SlidingWindowRateLimiter(backend, clock)
        await limiter.check("old", 5, MINUTE_MS)
        clock.advance(2 * MINUTE_MS)
        await limiter.check("new", 5, MINUTE_MS)

        removed = backend.prune(clock() - MINUTE_MS)

        assert removed == 1
        assert len(backend) == 1
