"""
Tests for account lockouts and device blocks.
"""

from __future__ import annotations

import asyncio

import pytest

from phonoguard.exceptions import InvalidIdentifier, StoreUnavailable
from phonoguard.security.lockout import LOCKOUT_KEY, LockoutTracker
from phonoguard.types import MINUTE_MS


class TestLockoutTracker:
    """Tests for LockoutTracker."""

    @pytest.mark.asyncio
    async def test_unknown_identifier_not_locked(self, lockouts):
        """Test the default state."""
        assert await lockouts.is_locked_out("user@x.com") is False
        assert await lockouts.get_time_remaining("user@x.com") == 0

    @pytest.mark.asyncio
    async def test_set_lockout(self, lockouts, clock):
        """Test locking an identifier."""
        record = await lockouts.set_lockout("user@x.com")

        assert record.locked_at == clock()
        assert record.expires_at == clock() + 15 * MINUTE_MS
        assert record.reason == "Multiple failed login attempts"
        assert await lockouts.is_locked_out("user@x.com") is True
        assert await lockouts.get_time_remaining("user@x.com") == 15 * MINUTE_MS

    @pytest.mark.asyncio
    async def test_lockout_expires(self, lockouts, clock):
        """Test that the lock lifts after its duration."""
        await lockouts.set_lockout("user@x.com")

        clock.advance(15 * MINUTE_MS)
        assert await lockouts.is_locked_out("user@x.com") is True

        clock.advance(1)
        assert await lockouts.is_locked_out("user@x.com") is False
        assert await lockouts.get_record("user@x.com") is None

    @pytest.mark.asyncio
    async def test_expired_record_is_removed_on_check(self, raw_store, lockouts, clock):
        """Test lazy removal of expired records."""
        await lockouts.set_lockout("user@x.com")
        clock.advance(15 * MINUTE_MS + 1)
        await lockouts.is_locked_out("user@x.com")
        assert f"test:{LOCKOUT_KEY}" not in raw_store.snapshot()

    @pytest.mark.asyncio
    async def test_repeat_set_does_not_extend(self, lockouts, clock):
        """Test that an active lock keeps its original expiry."""
        first = await lockouts.set_lockout("user@x.com")
        clock.advance(5 * MINUTE_MS)
        second = await lockouts.set_lockout("user@x.com", reason="again")
        assert second.expires_at == first.expires_at
        assert second.reason == first.reason

    @pytest.mark.asyncio
    async def test_clear_single_and_all(self, lockouts):
        """Test clearing one identifier and then every identifier."""
        await lockouts.set_lockout("a@x.com")
        await lockouts.set_lockout("b@x.com")

        await lockouts.clear_lockout("a@x.com")
        assert await lockouts.is_locked_out("a@x.com") is False
        assert await lockouts.is_locked_out("b@x.com") is True

        await lockouts.clear_lockout()
        assert await lockouts.active_count() == 0

    @pytest.mark.asyncio
    async def test_cleanup_expired(self, lockouts, clock):
        """Test bulk removal of expired records."""
        await lockouts.set_lockout("old@x.com")
        clock.advance(10 * MINUTE_MS)
        await lockouts.set_lockout("new@x.com")
        clock.advance(6 * MINUTE_MS)

        assert await lockouts.cleanup_expired() == 1
        assert await lockouts.active_count() == 1

    @pytest.mark.asyncio
    async def test_blocks_use_separate_key(self, lockouts, blocks):
        """Test that device blocks do not affect account lockouts."""
        await blocks.set_lockout("device_1", reason="Suspicious activity detected")
        assert await blocks.is_locked_out("device_1") is True
        assert await lockouts.is_locked_out("device_1") is False
        assert await blocks.get_time_remaining("device_1") == 60 * MINUTE_MS

    @pytest.mark.asyncio
    async def test_concurrent_lockouts_all_kept(self, yielding_store, clock, locks):
        """Test that lockouts written while others are mid-update are not lost."""
        tracker = LockoutTracker(yielding_store, clock=clock, locks=locks)
        emails = [f"user{i}@x.com" for i in range(10)]

        await asyncio.gather(*(tracker.set_lockout(e) for e in emails))

        assert await tracker.active_count() == 10
        for email in emails:
            assert await tracker.is_locked_out(email) is True

    @pytest.mark.asyncio
    async def test_reads_fail_open(self, raw_store, lockouts):
        """Test that a broken store reads as not locked."""
        await lockouts.set_lockout("user@x.com")
        raw_store.fail_on.add("get")
        assert await lockouts.is_locked_out("user@x.com") is False
        assert await lockouts.get_time_remaining("user@x.com") == 0

    @pytest.mark.asyncio
    async def test_writes_propagate_errors(self, raw_store, lockouts):
        """Test that a failed lock is reported."""
        raw_store.fail_on.add("set")
        with pytest.raises(StoreUnavailable):
            await lockouts.set_lockout("user@x.com")

    @pytest.mark.asyncio
    async def test_malformed_record_is_dropped(self, store, lockouts):
        """Test that one bad record does not hide the others."""
        await store.set(
            LOCKOUT_KEY,
            '{"bad": {"nope": 1}, "good@x.com": {"locked_at": 1, "expires_at": 99999999999999}}',
        )
        assert await lockouts.is_locked_out("good@x.com") is True
        assert await lockouts.is_locked_out("bad") is False

    @pytest.mark.asyncio
    async def test_invalid_identifier(self, lockouts):
        """Test that blank identifiers raise."""
        with pytest.raises(InvalidIdentifier):
            await lockouts.is_locked_out("")

    def test_invalid_duration(self, store):
        """Test that a non-positive duration is rejected."""
        with pytest.raises(ValueError):
            LockoutTracker(store, duration_ms=0)
