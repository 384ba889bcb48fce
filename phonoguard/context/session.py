"""
Session tracking for phonoguard.

Provides the device's single "current session" record and its lifecycle::

    NONE --create_session--> ACTIVE
    ACTIVE --refresh_session--> ACTIVE (expires_at slides forward)
    ACTIVE --is_session_valid sees now > expires_at--> EXPIRED (record removed)
    ACTIVE | EXPIRED --clear_session--> NONE

Validity checking and garbage collection are the same call: observing an
expired record removes it.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any

from phonoguard.audit.events import EventType, SecurityEvent, SessionDetails, Severity
from phonoguard.exceptions import InvalidIdentifier, StoreUnavailable
from phonoguard.storage.base import KeyedLock, KeyValueStore, load_json, save_json
from phonoguard.types import HOUR_MS, MINUTE_MS, Clock, system_clock

if TYPE_CHECKING:
    from phonoguard.audit.log import SecurityEventLog
    from phonoguard.context.device import DeviceIdentity

logger = logging.getLogger(__name__)

SESSION_KEY = "session"


class SessionState(Enum):
    """State of the current session record."""

    NONE = "none"
    ACTIVE = "active"
    EXPIRED = "expired"


@dataclass
class SessionRecord:
    """
    The persisted session.

    Attributes:
        user_id: Authenticated user.
        created_at: When the session was created (epoch ms).
        last_activity: Last observed activity (epoch ms).
        expires_at: When the session stops being valid (epoch ms).
        device_id: Device the session belongs to.
        session_id: Random id, attached to security events.
    """

    user_id: str
    created_at: int
    last_activity: int
    expires_at: int
    device_id: str
    session_id: str = field(default_factory=lambda: str(uuid.uuid4()))

    def is_expired(self, now: int) -> bool:
        return now > self.expires_at

    def to_dict(self) -> dict[str, Any]:
        return {
            "user_id": self.user_id,
            "created_at": self.created_at,
            "last_activity": self.last_activity,
            "expires_at": self.expires_at,
            "device_id": self.device_id,
            "session_id": self.session_id,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SessionRecord:
        return cls(
            user_id=data["user_id"],
            created_at=int(data["created_at"]),
            last_activity=int(data["last_activity"]),
            expires_at=int(data["expires_at"]),
            device_id=data.get("device_id", "unknown_device"),
            session_id=data.get("session_id") or str(uuid.uuid4()),
        )


@dataclass
class SessionInfo:
    """
    Summary of the current session for the UI.

    Attributes:
        user_id: Authenticated user.
        time_remaining_ms: Milliseconds until expiry.
        is_expiring_soon: True when below the warning threshold, so the UI
            can prompt for re-authentication before silent expiry.
    """

    user_id: str
    time_remaining_ms: int
    is_expiring_soon: bool


@dataclass
class SecurityCheckResult:
    """Outcome of ``SessionManager.perform_security_checks``."""

    is_valid: bool
    issues: list[str] = field(default_factory=list)


class SessionManager:
    """
    Manages the device's current session.

    At most one session exists per device; creating a new one replaces the
    old (last writer wins). ``create_session`` propagates store failures,
    because a session that silently failed to persist would leave the app
    "logged in but not really". ``clear_session`` propagates as well. The
    read paths fail closed.

    Attributes:
        timeout_ms: Session lifetime from creation or last refresh.
        warning_ms: Remaining time below which the session is expiring soon.

    Example:
        >>> manager = SessionManager(store, timeout_ms=60 * MINUTE_MS)
        >>> await manager.create_session("user_123")
        >>> await manager.is_session_valid()
        True
    """

    def __init__(
        self,
        store: KeyValueStore,
        timeout_ms: int = 60 * MINUTE_MS,
        clock: Clock = system_clock,
        locks: KeyedLock | None = None,
        device: DeviceIdentity | None = None,
        event_log: SecurityEventLog | None = None,
        warning_ms: int = 5 * MINUTE_MS,
        failure_threshold: int = 5,
    ) -> None:
        """
        Initialize session manager.

        Args:
            store: Key-value store to persist into.
            timeout_ms: Session lifetime in milliseconds.
            clock: Millisecond clock.
            locks: Shared keyed mutex.
            device: Source of the device id stored in the record.
            event_log: Optional log for session lifecycle events.
            warning_ms: Expiring-soon threshold.
            failure_threshold: Recent failed logins that fail the
                security self-check.
        """
        if timeout_ms < 1:
            raise ValueError(f"timeout_ms must be >= 1, got {timeout_ms}")
        self._store = store
        self.timeout_ms = timeout_ms
        self._clock = clock
        self._locks = locks or KeyedLock()
        self._device = device
        self.event_log = event_log
        self.warning_ms = warning_ms
        self.failure_threshold = failure_threshold

    async def _load(self) -> SessionRecord | None:
        data = await load_json(self._store, SESSION_KEY, None)
        if not isinstance(data, dict):
            return None
        try:
            return SessionRecord.from_dict(data)
        except (KeyError, TypeError, ValueError) as e:
            logger.error(f"Discarding malformed session record: {e}")
            return None

    async def _log(self, event_type: EventType, record: SessionRecord, severity: Severity) -> None:
        if self.event_log is None:
            return
        await self.event_log.log_event(
            SecurityEvent(
                type=event_type,
                identifier=record.user_id,
                user_id=record.user_id,
                severity=severity,
                session_id=record.session_id,
                details=SessionDetails(
                    session_id=record.session_id,
                    expires_at=record.expires_at,
                ),
            )
        )

    async def create_session(self, user_id: str) -> SessionRecord:
        """
        Create a session for a user, replacing any existing one.

        Returns:
            The created session record.

        Raises:
            InvalidIdentifier: If ``user_id`` is empty.
            StoreUnavailable: If the session could not be persisted.
        """
        if not isinstance(user_id, str) or not user_id.strip():
            raise InvalidIdentifier(user_id, "user id must not be empty")

        device_id = (
            await self._device.get_device_id() if self._device is not None else "unknown_device"
        )
        async with self._locks.hold(SESSION_KEY):
            now = self._clock()
            record = SessionRecord(
                user_id=user_id,
                created_at=now,
                last_activity=now,
                expires_at=now + self.timeout_ms,
                device_id=device_id,
            )
            await save_json(self._store, SESSION_KEY, record.to_dict())

        logger.info(f"Session created for user '{user_id}'")
        await self._log(EventType.SESSION_CREATED, record, Severity.LOW)
        return record

    async def is_session_valid(self) -> bool:
        """
        Check the session, removing it if it has expired.

        A valid session has its ``last_activity`` updated.
        """
        expired: SessionRecord | None = None
        try:
            async with self._locks.hold(SESSION_KEY):
                record = await self._load()
                if record is None:
                    return False

                now = self._clock()
                if record.is_expired(now):
                    await self._store.remove(SESSION_KEY)
                    expired = record
                else:
                    record.last_activity = now
                    await save_json(self._store, SESSION_KEY, record.to_dict())
                    return True
        except StoreUnavailable as e:
            logger.error(f"Error checking session validity: {e}")
            return False

        logger.info(f"Session expired for user '{expired.user_id}'")
        await self._log(EventType.SESSION_EXPIRED, expired, Severity.LOW)
        return False

    async def refresh_session(self) -> bool:
        """
        Slide the session's expiry forward from now.

        Does nothing when there is no session. An already expired session is
        removed instead of being revived.

        Returns:
            True if a live session was refreshed.
        """
        expired: SessionRecord | None = None
        try:
            async with self._locks.hold(SESSION_KEY):
                record = await self._load()
                if record is None:
                    return False

                now = self._clock()
                if record.is_expired(now):
                    await self._store.remove(SESSION_KEY)
                    expired = record
                else:
                    record.last_activity = now
                    record.expires_at = now + self.timeout_ms
                    await save_json(self._store, SESSION_KEY, record.to_dict())
                    return True
        except StoreUnavailable as e:
            logger.error(f"Error refreshing session: {e}")
            return False

        await self._log(EventType.SESSION_EXPIRED, expired, Severity.LOW)
        return False

    async def clear_session(self) -> None:
        """
        Remove the session (explicit sign-out).

        Raises:
            StoreUnavailable: If the record could not be removed.
        """
        async with self._locks.hold(SESSION_KEY):
            record = await self._load()
            await self._store.remove(SESSION_KEY)

        if record is not None:
            logger.info(f"Session cleared for user '{record.user_id}'")
            await self._log(EventType.SESSION_CLEARED, record, Severity.LOW)

    async def get_session(self) -> SessionRecord | None:
        """Return the unexpired session record, without touching it."""
        try:
            record = await self._load()
        except StoreUnavailable as e:
            logger.error(f"Error reading session: {e}")
            return None
        if record is None or record.is_expired(self._clock()):
            return None
        return record

    async def get_session_info(self) -> SessionInfo | None:
        """Summary of the current session, or None when there is no live one."""
        record = await self.get_session()
        if record is None:
            return None
        remaining = record.expires_at - self._clock()
        return SessionInfo(
            user_id=record.user_id,
            time_remaining_ms=remaining,
            is_expiring_soon=remaining < self.warning_ms,
        )

    async def get_state(self) -> SessionState:
        """Current state, without the expiry side effect."""
        try:
            record = await self._load()
        except StoreUnavailable as e:
            logger.error(f"Error reading session state: {e}")
            return SessionState.NONE
        if record is None:
            return SessionState.NONE
        if record.is_expired(self._clock()):
            return SessionState.EXPIRED
        return SessionState.ACTIVE

    async def current_session_id(self) -> str | None:
        """Id of the live session, used to tag security events."""
        record = await self.get_session()
        return record.session_id if record is not None else None

    async def perform_security_checks(self) -> SecurityCheckResult:
        """
        Validate the session and look for recent brute-force activity.

        Returns:
            SecurityCheckResult listing any issues found.
        """
        issues: list[str] = []

        if not await self.is_session_valid():
            issues.append("Session has expired")

        if self.event_log is not None:
            recent_failures = await self.event_log.count_failed_logins(None, HOUR_MS)
            if recent_failures >= self.failure_threshold:
                issues.append("Multiple recent login failures detected")

        return SecurityCheckResult(is_valid=not issues, issues=issues)
