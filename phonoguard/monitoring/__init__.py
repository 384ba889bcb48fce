"""
Security monitoring for phonoguard.

Quick Start:
    >>> from phonoguard.monitoring import SecurityMonitor
    >>> monitor = SecurityMonitor(event_log, lockouts, blocks, store)
    >>> alert = await monitor.monitor_event(event)
    >>> dashboard = await monitor.get_security_dashboard()
"""

from phonoguard.monitoring.monitor import (
    SECURITY_ALERTS_KEY,
    AlertThresholds,
    MonitorCleanupResult,
    SecurityAlert,
    SecurityDashboard,
    SecurityMonitor,
)

__all__ = [
    "SECURITY_ALERTS_KEY",
    "AlertThresholds",
    "MonitorCleanupResult",
    "SecurityAlert",
    "SecurityDashboard",
    "SecurityMonitor",
]
