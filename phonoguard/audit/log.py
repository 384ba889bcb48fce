"""
Append-only security event log for phonoguard.

The log is a bounded list of checksummed events stored under one key. It is
instrumentation: ``log_event`` never raises, since a failed security log must
not block the operation being logged. Aggregation helpers are pure reads over
the stored list.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field, replace

from phonoguard.audit.events import EventType, SecurityEvent, Severity
from phonoguard.exceptions import StoreUnavailable
from phonoguard.storage.base import KeyedLock, KeyValueStore, load_json, save_json
from phonoguard.types import DAY_MS, HOUR_MS, Clock, system_clock

logger = logging.getLogger(__name__)

SECURITY_LOG_KEY = "security_log"
DEFAULT_CAPACITY = 1000
DEFAULT_RETENTION_MS = 30 * DAY_MS


@dataclass
class LogVerificationResult:
    """
    Result of checking every stored event's checksum.

    Attributes:
        valid: True when every event verified.
        verified_count: Number of events that verified.
        corrupted_indices: Positions (oldest first) of events that did not.
    """
    valid: bool
    verified_count: int = 0
    corrupted_indices: list[int] = field(default_factory=list)


class SecurityEventLog:
    """
    Bounded, checksummed security event log.

    Each appended event is stamped with the clock, the device id and the
    current session id, then checksummed. When the log grows past
    ``capacity`` the oldest entries are dropped.

    Attributes:
        capacity: Maximum number of events kept.
        key: Store key holding the log.

    Example:
        >>> log = SecurityEventLog(store)
        >>> await log.log_event(login_failure("user@x.com"))
        >>> await log.count_failed_logins("user@x.com")
        1
    """

    def __init__(
        self,
        store: KeyValueStore,
        clock: Clock = system_clock,
        locks: KeyedLock | None = None,
        capacity: int = DEFAULT_CAPACITY,
        device_id_provider: Callable[[], Awaitable[str]] | None = None,
        session_id_provider: Callable[[], Awaitable[str | None]] | None = None,
        checksum_key: bytes | None = None,
        key: str = SECURITY_LOG_KEY,
    ) -> None:
        """
        Initialize the event log.

        Args:
            store: Key-value store to persist into.
            clock: Millisecond clock.
            locks: Shared keyed mutex.
            capacity: Ring buffer size.
            device_id_provider: Coroutine returning the device id.
            session_id_provider: Coroutine returning the current session id.
            checksum_key: If set, checksums are HMACs under this key. Keep it
                out of the same store as the log.
            key: Store key for the log.
        """
        if capacity < 1:
            raise ValueError(f"capacity must be >= 1, got {capacity}")
        self._store = store
        self._clock = clock
        self._locks = locks or KeyedLock()
        self.capacity = capacity
        self._device_id_provider = device_id_provider
        self._session_id_provider = session_id_provider
        self._checksum_key = checksum_key
        self.key = key

    async def _stamp(self, event: SecurityEvent) -> SecurityEvent:
        device_id = event.device_id
        if not device_id and self._device_id_provider is not None:
            device_id = await self._device_id_provider()
        session_id = event.session_id
        if session_id is None and self._session_id_provider is not None:
            session_id = await self._session_id_provider()
        stamped = replace(
            event,
            timestamp=self._clock(),
            device_id=device_id or "unknown_device",
            session_id=session_id,
        )
        return stamped.with_checksum(self._checksum_key)

    async def _load(self) -> list[SecurityEvent]:
        raw = await load_json(self._store, self.key, [])
        if not isinstance(raw, list):
            return []
        events: list[SecurityEvent] = []
        for item in raw:
            try:
                events.append(SecurityEvent.from_dict(item))
            except (KeyError, TypeError, ValueError) as e:
                logger.error(f"Skipping unreadable security log entry: {e}")
        return events

    async def _load_or_empty(self) -> list[SecurityEvent]:
        try:
            return await self._load()
        except StoreUnavailable as e:
            logger.error(f"Error reading security log: {e}")
            return []

    async def log_event(self, event: SecurityEvent) -> SecurityEvent | None:
        """
        Append an event. Never raises.

        Returns:
            The stamped, checksummed event, or None if logging failed.
        """
        try:
            stamped = await self._stamp(event)
            async with self._locks.hold(self.key):
                raw = await load_json(self._store, self.key, [])
                if not isinstance(raw, list):
                    raw = []
                raw.append(stamped.to_dict())
                if len(raw) > self.capacity:
                    del raw[: len(raw) - self.capacity]
                await save_json(self._store, self.key, raw)
        except Exception as e:
            logger.error(f"Security logging failed for {event.type.value}: {e}")
            return None

        if stamped.severity == Severity.CRITICAL:
            logger.warning(
                f"CRITICAL SECURITY EVENT: {stamped.type.value} "
                f"identifier={stamped.identifier}"
            )
        else:
            logger.debug(
                f"Logged {stamped.type.value} ({stamped.severity.value}) "
                f"for {stamped.identifier}"
            )
        return stamped

    async def get_events(
        self,
        limit: int | None = 50,
        event_type: EventType | None = None,
    ) -> list[SecurityEvent]:
        """
        Return stored events, most recent first.

        Args:
            limit: Maximum number of events; None for all.
            event_type: Only return events of this type.
        """
        events = await self._load_or_empty()
        if event_type is not None:
            events = [e for e in events if e.type == event_type]
        events.reverse()
        if limit is not None:
            events = events[:limit]
        return events

    async def count_events(
        self,
        event_type: EventType,
        lookback_ms: int,
        identifier: str | None = None,
        user_id: str | None = None,
    ) -> int:
        """
        Count events of one type within the lookback window.

        Args:
            event_type: Type to count.
            lookback_ms: Only events newer than ``now - lookback_ms`` count.
            identifier: Restrict to this identifier; None matches all.
            user_id: Restrict to this user id; None matches all.
        """
        cutoff = self._clock() - lookback_ms
        return sum(
            1 for e in await self._load_or_empty()
            if e.type == event_type
            and e.timestamp > cutoff
            and (identifier is None or e.identifier == identifier)
            and (user_id is None or e.user_id == user_id)
        )

    async def count_failed_logins(
        self, identifier: str | None, lookback_ms: int = HOUR_MS
    ) -> int:
        """Failed logins for an identifier (or all) in the lookback window."""
        return await self.count_events(EventType.LOGIN_FAILURE, lookback_ms, identifier=identifier)

    async def count_suspicious(
        self, identifier: str | None, lookback_ms: int = HOUR_MS
    ) -> int:
        """Suspicious-activity events for an identifier (or all)."""
        return await self.count_events(
            EventType.SUSPICIOUS_ACTIVITY, lookback_ms, identifier=identifier
        )

    async def count_data_access(
        self, user_id: str | None, lookback_ms: int = HOUR_MS
    ) -> int:
        """Data-access events for a user id (or all)."""
        return await self.count_events(EventType.DATA_ACCESS, lookback_ms, user_id=user_id)

    async def count_by_severity(self, severity: Severity, lookback_ms: int) -> int:
        """Events of one severity within the lookback."""
        cutoff = self._clock() - lookback_ms
        return sum(
            1 for e in await self._load_or_empty()
            if e.severity == severity and e.timestamp > cutoff
        )

    async def size(self) -> int:
        """Number of stored events."""
        return len(await self._load_or_empty())

    async def verify(self) -> LogVerificationResult:
        """Recompute every checksum and report mismatches."""
        events = await self._load_or_empty()
        corrupted = [
            i for i, e in enumerate(events)
            if not e.verify_checksum(self._checksum_key)
        ]
        return LogVerificationResult(
            valid=not corrupted,
            verified_count=len(events) - len(corrupted),
            corrupted_indices=corrupted,
        )

    async def cleanup(self, retention_ms: int = DEFAULT_RETENTION_MS) -> int:
        """
        Drop events older than the retention period.

        Returns:
            Number of events removed.
        """
        try:
            async with self._locks.hold(self.key):
                events = await self._load()
                cutoff = self._clock() - retention_ms
                kept = [e for e in events if e.timestamp > cutoff]
                removed = len(events) - len(kept)
                if removed:
                    await save_json(self._store, self.key, [e.to_dict() for e in kept])
                return removed
        except StoreUnavailable as e:
            logger.error(f"Error cleaning up security log: {e}")
            return 0

    async def clear(self) -> None:
        async with self._locks.hold(self.key):
            await self._store.remove(self.key)
