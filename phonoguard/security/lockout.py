"""
Temporary deny-lists keyed by identifier.

A LockoutTracker stores a map ``identifier -> LockoutRecord`` under a single
store key. The same class backs account lockouts (keyed by email) and device
blocks (keyed by device or source id) under different keys and durations.

State per identifier::

    NOT_LOCKED --set_lockout--> LOCKED
    LOCKED --expires_at passes (checked lazily) / clear_lockout--> NOT_LOCKED
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from phonoguard.exceptions import StoreUnavailable
from phonoguard.storage.base import KeyedLock, KeyValueStore, load_json, save_json
from phonoguard.types import MINUTE_MS, Clock, system_clock, validate_identifier

logger = logging.getLogger(__name__)

LOCKOUT_KEY = "lockouts"
BLOCKED_DEVICES_KEY = "blocked_devices"

DEFAULT_LOCKOUT_REASON = "Multiple failed login attempts"


@dataclass
class LockoutRecord:
    """
    An active lockout.

    Attributes:
        locked_at: When the lockout started (epoch ms).
        expires_at: When it ends (epoch ms).
        reason: Why it was imposed.
    """

    locked_at: int
    expires_at: int
    reason: str = DEFAULT_LOCKOUT_REASON

    def is_expired(self, now: int) -> bool:
        return now > self.expires_at

    def remaining_ms(self, now: int) -> int:
        return max(0, self.expires_at - now)

    def to_dict(self) -> dict[str, Any]:
        return {
            "locked_at": self.locked_at,
            "expires_at": self.expires_at,
            "reason": self.reason,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> LockoutRecord:
        return cls(
            locked_at=int(data["locked_at"]),
            expires_at=int(data["expires_at"]),
            reason=data.get("reason", DEFAULT_LOCKOUT_REASON),
        )


class LockoutTracker:
    """
    Per-identifier temporary deny-list with fixed-duration expiry.

    Reads fail open (a store failure means "not locked") so a broken store
    cannot lock every user out; writes propagate StoreUnavailable.

    Attributes:
        duration_ms: Length of each lockout from the moment it is set.
        key: Store key holding the lockout map.

    Example:
        >>> tracker = LockoutTracker(store, duration_ms=15 * MINUTE_MS)
        >>> await tracker.set_lockout("user@x.com")
        >>> await tracker.is_locked_out("user@x.com")
        True
    """

    def __init__(
        self,
        store: KeyValueStore,
        duration_ms: int = 15 * MINUTE_MS,
        clock: Clock = system_clock,
        locks: KeyedLock | None = None,
        key: str = LOCKOUT_KEY,
        default_reason: str = DEFAULT_LOCKOUT_REASON,
    ) -> None:
        if duration_ms < 1:
            raise ValueError(f"duration_ms must be >= 1, got {duration_ms}")
        self._store = store
        self.duration_ms = duration_ms
        self._clock = clock
        self._locks = locks or KeyedLock()
        self.key = key
        self.default_reason = default_reason

    async def _load(self) -> dict[str, LockoutRecord]:
        raw = await load_json(self._store, self.key, {})
        records: dict[str, LockoutRecord] = {}
        if not isinstance(raw, dict):
            return records
        for identifier, data in raw.items():
            try:
                records[identifier] = LockoutRecord.from_dict(data)
            except (KeyError, TypeError, ValueError):
                logger.error(f"Dropping malformed lockout record for '{identifier}'")
        return records

    async def _save(self, records: dict[str, LockoutRecord]) -> None:
        if records:
            await save_json(
                self._store,
                self.key,
                {k: r.to_dict() for k, r in records.items()},
            )
        else:
            await self._store.remove(self.key)

    async def is_locked_out(self, identifier: str) -> bool:
        """
        Check whether an identifier is currently locked.

        An expired record is removed as a side effect.
        """
        validate_identifier(identifier)
        try:
            async with self._locks.hold(self.key):
                records = await self._load()
                record = records.get(identifier)
                if record is None:
                    return False
                if record.is_expired(self._clock()):
                    del records[identifier]
                    await self._save(records)
                    logger.debug(f"Lockout expired for '{identifier}' ({self.key})")
                    return False
                return True
        except StoreUnavailable as e:
            logger.error(f"Error checking lockout for '{identifier}': {e}")
            return False

    async def set_lockout(self, identifier: str, reason: str | None = None) -> LockoutRecord:
        """
        Lock an identifier for ``duration_ms``.

        An unexpired lockout is left as is, so calling this repeatedly does
        not extend the window.

        Returns:
            The active lockout record.

        Raises:
            StoreUnavailable: If the lockout cannot be persisted.
        """
        validate_identifier(identifier)
        async with self._locks.hold(self.key):
            records = await self._load()
            now = self._clock()
            existing = records.get(identifier)
            if existing is not None and not existing.is_expired(now):
                return existing

            record = LockoutRecord(
                locked_at=now,
                expires_at=now + self.duration_ms,
                reason=reason or self.default_reason,
            )
            records[identifier] = record
            await self._save(records)
            logger.warning(
                f"Locked '{identifier}' in {self.key} for "
                f"{self.duration_ms // MINUTE_MS} minutes: {record.reason}"
            )
            return record

    async def get_time_remaining(self, identifier: str) -> int:
        """Milliseconds until the identifier's lockout ends, 0 if not locked."""
        validate_identifier(identifier)
        try:
            records = await self._load()
        except StoreUnavailable as e:
            logger.error(f"Error getting lockout time for '{identifier}': {e}")
            return 0
        record = records.get(identifier)
        if record is None:
            return 0
        return record.remaining_ms(self._clock())

    async def get_record(self, identifier: str) -> LockoutRecord | None:
        """Return the unexpired lockout record for an identifier, if any."""
        validate_identifier(identifier)
        try:
            records = await self._load()
        except StoreUnavailable as e:
            logger.error(f"Error reading lockout for '{identifier}': {e}")
            return None
        record = records.get(identifier)
        if record is None or record.is_expired(self._clock()):
            return None
        return record

    async def clear_lockout(self, identifier: str | None = None) -> None:
        """
        Clear one identifier's lockout, or every lockout when None.

        Raises:
            StoreUnavailable: If the store write fails.
        """
        async with self._locks.hold(self.key):
            if identifier is None:
                await self._store.remove(self.key)
                return
            validate_identifier(identifier)
            records = await self._load()
            if records.pop(identifier, None) is not None:
                await self._save(records)

    async def cleanup_expired(self) -> int:
        """
        Remove all expired records.

        Returns:
            Number of records removed.
        """
        async with self._locks.hold(self.key):
            records = await self._load()
            now = self._clock()
            expired = [k for k, r in records.items() if r.is_expired(now)]
            for identifier in expired:
                del records[identifier]
            if expired:
                await self._save(records)
            return len(expired)

    async def active_count(self) -> int:
        """Number of unexpired lockouts."""
        try:
            records = await self._load()
        except StoreUnavailable as e:
            logger.error(f"Error counting lockouts: {e}")
            return 0
        now = self._clock()
        return sum(1 for r in records.values() if not r.is_expired(now))
