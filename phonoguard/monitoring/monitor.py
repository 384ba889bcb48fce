"""
Threshold monitoring over the security event log.

Every event passed to ``SecurityMonitor.monitor_event`` is logged first and
then evaluated against independent threshold rules:

    - failed logins for an identifier in the lookback window -> lockout
    - suspicious activity from an identifier -> device/source block
    - data access by a user -> alert only

A triggered rule stores a SecurityAlert and performs its response as two
separate writes. Responses are idempotent, so a crash between the two leaves
consistent state and repeating the response is harmless.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from phonoguard.audit.events import (
    AlertDetails,
    EventType,
    ResponseDetails,
    SecurityEvent,
    Severity,
)
from phonoguard.audit.log import DEFAULT_RETENTION_MS, SecurityEventLog
from phonoguard.exceptions import PhonoguardError, StoreUnavailable
from phonoguard.security.lockout import LockoutTracker
from phonoguard.storage.base import KeyedLock, KeyValueStore, load_json, save_json
from phonoguard.types import DAY_MS, HOUR_MS, Clock, system_clock

logger = logging.getLogger(__name__)

SECURITY_ALERTS_KEY = "security_alerts"
DEFAULT_ALERT_CAPACITY = 100
DASHBOARD_WINDOW_MS = DAY_MS
DASHBOARD_ALERT_LIMIT = 10

MONITOR_IDENTIFIER = "security_monitor"
RESPONSE_IDENTIFIER = "automated_response"
BLOCK_REASON = "Suspicious activity detected"


@dataclass
class AlertThresholds:
    """Counts at which each monitoring rule triggers."""

    failed_logins: int = 5
    """Failed logins per identifier before a lockout."""

    suspicious_activity: int = 10
    """Suspicious-activity events per identifier before a block."""

    data_access: int = 20
    """Data-access events per user before an alert."""

    lookback_ms: int = HOUR_MS
    """Window the counts are taken over."""


@dataclass
class SecurityAlert:
    """
    A stored alert.

    Attributes:
        timestamp: When the alert was raised (epoch ms).
        alerts: One message per triggered rule.
        triggering_event: The logged event that crossed a threshold.
        severity: Alert severity.
    """

    timestamp: int
    alerts: list[str]
    triggering_event: SecurityEvent
    severity: Severity = Severity.HIGH

    def to_dict(self) -> dict[str, Any]:
        return {
            "timestamp": self.timestamp,
            "alerts": list(self.alerts),
            "triggering_event": self.triggering_event.to_dict(),
            "severity": self.severity.value,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SecurityAlert:
        return cls(
            timestamp=int(data["timestamp"]),
            alerts=list(data.get("alerts", [])),
            triggering_event=SecurityEvent.from_dict(data["triggering_event"]),
            severity=Severity(data.get("severity", "high")),
        )


@dataclass
class SecurityDashboard:
    """Summary figures for the last 24 hours."""

    total_events: int = 0
    critical_events: int = 0
    recent_alerts: list[SecurityAlert] = field(default_factory=list)
    failed_logins: int = 0
    suspicious_activities: int = 0


@dataclass
class MonitorCleanupResult:
    """Records removed by ``SecurityMonitor.cleanup_expired_data``."""

    lockouts: int = 0
    blocks: int = 0
    events: int = 0
    alerts: int = 0


class SecurityMonitor:
    """
    Evaluates logged security events against alert thresholds.

    The monitor never raises from ``monitor_event``: failures while counting,
    storing alerts or applying responses are logged and the remaining rules
    still run.

    Example:
        >>> monitor = SecurityMonitor(event_log, lockouts, blocks, store)
        >>> for _ in range(5):
        ...     alert = await monitor.monitor_event(login_failure("user@x.com"))
        >>> alert.alerts
        ['Multiple failed login attempts detected for user@x.com']
        >>> await lockouts.is_locked_out("user@x.com")
        True
    """

    def __init__(
        self,
        event_log: SecurityEventLog,
        lockouts: LockoutTracker,
        blocks: LockoutTracker,
        store: KeyValueStore,
        clock: Clock = system_clock,
        locks: KeyedLock | None = None,
        thresholds: AlertThresholds | None = None,
        alert_capacity: int = DEFAULT_ALERT_CAPACITY,
    ) -> None:
        """
        Initialize the monitor.

        Args:
            event_log: Log the events are written to and counted from.
            lockouts: Account lockout tracker used by the failed-login rule.
            blocks: Device/source block tracker used by the suspicious rule.
            store: Store for the alert list.
            clock: Millisecond clock.
            locks: Shared keyed mutex.
            thresholds: Rule thresholds; defaults match AlertThresholds().
            alert_capacity: Maximum number of stored alerts.
        """
        self.event_log = event_log
        self.lockouts = lockouts
        self.blocks = blocks
        self._store = store
        self._clock = clock
        self._locks = locks or KeyedLock()
        self.thresholds = thresholds or AlertThresholds()
        self.alert_capacity = alert_capacity

    async def monitor_event(self, event: SecurityEvent) -> SecurityAlert | None:
        """
        Log an event, then evaluate the threshold rules against it.

        Returns:
            The stored alert if any rule triggered, else None.
        """
        logged = await self.event_log.log_event(event) or event

        alerts: list[str] = []
        responses: list[str] = []
        try:
            if logged.type == EventType.LOGIN_FAILURE:
                await self._check_failed_logins(logged, alerts, responses)
            elif logged.type == EventType.SUSPICIOUS_ACTIVITY:
                await self._check_suspicious(logged, alerts, responses)
            elif logged.type == EventType.DATA_ACCESS:
                await self._check_data_access(logged, alerts)
        except Exception as e:
            logger.error(f"Error evaluating security rules for {logged.type.value}: {e}")

        alert = None
        if alerts:
            alert = await self._trigger_alert(alerts, logged)
        if responses:
            await self.event_log.log_event(
                SecurityEvent(
                    type=EventType.AUTOMATED_RESPONSE,
                    identifier=RESPONSE_IDENTIFIER,
                    severity=Severity.HIGH,
                    user_id=logged.user_id,
                    details=ResponseDetails(
                        responses=responses,
                        triggering_type=logged.type.value,
                        triggering_identifier=logged.identifier,
                    ),
                )
            )
        return alert

    async def _check_failed_logins(
        self, event: SecurityEvent, alerts: list[str], responses: list[str]
    ) -> None:
        count = await self.event_log.count_failed_logins(
            event.identifier, self.thresholds.lookback_ms
        )
        if count < self.thresholds.failed_logins:
            return

        alerts.append(f"Multiple failed login attempts detected for {event.identifier}")
        if await self._apply(self.lockouts, event.identifier, None):
            responses.append(
                f"Account {event.identifier} locked due to multiple failed attempts"
            )

    async def _check_suspicious(
        self, event: SecurityEvent, alerts: list[str], responses: list[str]
    ) -> None:
        count = await self.event_log.count_suspicious(
            event.identifier, self.thresholds.lookback_ms
        )
        if count < self.thresholds.suspicious_activity:
            return

        alerts.append(f"Suspicious activity detected from {event.identifier}")
        if await self._apply(self.blocks, event.identifier, BLOCK_REASON):
            responses.append(f"{event.identifier} blocked due to suspicious activity")

    async def _check_data_access(self, event: SecurityEvent, alerts: list[str]) -> None:
        if not event.user_id:
            return
        count = await self.event_log.count_data_access(
            event.user_id, self.thresholds.lookback_ms
        )
        if count >= self.thresholds.data_access:
            alerts.append(f"Unusual data access pattern detected for user {event.user_id}")

    async def _apply(self, tracker: LockoutTracker, identifier: str, reason: str | None) -> bool:
        """
        Lock ``identifier`` in ``tracker``.

        Returns:
            True if a new lock was created, False if one was already active
            or the write failed.
        """
        try:
            if await tracker.get_record(identifier) is not None:
                return False
            await tracker.set_lockout(identifier, reason=reason)
            return True
        except PhonoguardError as e:
            logger.error(f"Automated response failed for '{identifier}' ({tracker.key}): {e}")
            return False

    async def _trigger_alert(self, alerts: list[str], event: SecurityEvent) -> SecurityAlert:
        alert = SecurityAlert(
            timestamp=self._clock(),
            alerts=alerts,
            triggering_event=event,
        )
        try:
            async with self._locks.hold(SECURITY_ALERTS_KEY):
                stored = await load_json(self._store, SECURITY_ALERTS_KEY, [])
                if not isinstance(stored, list):
                    stored = []
                stored.append(alert.to_dict())
                if len(stored) > self.alert_capacity:
                    del stored[: len(stored) - self.alert_capacity]
                await save_json(self._store, SECURITY_ALERTS_KEY, stored)
        except StoreUnavailable as e:
            logger.error(f"Error storing security alert: {e}")

        await self.event_log.log_event(
            SecurityEvent(
                type=EventType.SECURITY_ALERT,
                identifier=MONITOR_IDENTIFIER,
                severity=Severity.CRITICAL,
                user_id=event.user_id,
                details=AlertDetails(
                    alerts=alerts,
                    triggering_type=event.type.value,
                    triggering_identifier=event.identifier,
                ),
            )
        )
        logger.warning(f"SECURITY ALERTS: {alerts}")
        return alert

    async def _load_alerts(self) -> list[SecurityAlert]:
        raw = await load_json(self._store, SECURITY_ALERTS_KEY, [])
        if not isinstance(raw, list):
            return []
        alerts = []
        for item in raw:
            try:
                alerts.append(SecurityAlert.from_dict(item))
            except (KeyError, TypeError, ValueError) as e:
                logger.error(f"Skipping unreadable security alert: {e}")
        return alerts

    async def get_alerts(self, limit: int | None = None) -> list[SecurityAlert]:
        """Stored alerts, most recent first."""
        try:
            alerts = await self._load_alerts()
        except StoreUnavailable as e:
            logger.error(f"Error reading security alerts: {e}")
            return []
        alerts.reverse()
        return alerts if limit is None else alerts[:limit]

    async def get_security_dashboard(self) -> SecurityDashboard:
        """Summary of the last 24 hours of security activity."""
        cutoff = self._clock() - DASHBOARD_WINDOW_MS
        alerts = [a for a in await self.get_alerts() if a.timestamp > cutoff]
        return SecurityDashboard(
            total_events=await self.event_log.size(),
            critical_events=await self.event_log.count_by_severity(
                Severity.CRITICAL, DASHBOARD_WINDOW_MS
            ),
            recent_alerts=alerts[:DASHBOARD_ALERT_LIMIT],
            failed_logins=await self.event_log.count_failed_logins(None, DASHBOARD_WINDOW_MS),
            suspicious_activities=await self.event_log.count_suspicious(
                None, DASHBOARD_WINDOW_MS
            ),
        )

    async def is_account_locked(self, identifier: str) -> bool:
        return await self.lockouts.is_locked_out(identifier)

    async def is_blocked(self, identifier: str) -> bool:
        return await self.blocks.is_locked_out(identifier)

    async def cleanup_expired_data(
        self, retention_ms: int = DEFAULT_RETENTION_MS
    ) -> MonitorCleanupResult:
        """
        Remove expired lockouts and blocks, and events and alerts older than
        the retention period.
        """
        result = MonitorCleanupResult()
        try:
            result.lockouts = await self.lockouts.cleanup_expired()
            result.blocks = await self.blocks.cleanup_expired()
        except StoreUnavailable as e:
            logger.error(f"Error cleaning up expired lockouts: {e}")

        result.events = await self.event_log.cleanup(retention_ms)

        try:
            async with self._locks.hold(SECURITY_ALERTS_KEY):
                alerts = await self._load_alerts()
                cutoff = self._clock() - retention_ms
                kept = [a for a in alerts if a.timestamp > cutoff]
                result.alerts = len(alerts) - len(kept)
                if result.alerts:
                    await save_json(
                        self._store, SECURITY_ALERTS_KEY, [a.to_dict() for a in kept]
                    )
        except StoreUnavailable as e:
            logger.error(f"Error cleaning up security alerts: {e}")

        logger.debug(f"Security data cleanup: {result}")
        return result
