"""
Device and session context for phonoguard.

- DeviceIdentity: persisted per-device id.
- SessionManager: the device's current session and its expiry.
- AppLifecycle: foreground/background transitions and cleanup tasks.
"""

from phonoguard.context.device import DEVICE_ID_KEY, UNKNOWN_DEVICE, DeviceIdentity
from phonoguard.context.lifecycle import AppLifecycle, AppState
from phonoguard.context.session import (
    SESSION_KEY,
    SecurityCheckResult,
    SessionInfo,
    SessionManager,
    SessionRecord,
    SessionState,
)

__all__ = [
    "DEVICE_ID_KEY",
    "SESSION_KEY",
    "UNKNOWN_DEVICE",
    "AppLifecycle",
    "AppState",
    "DeviceIdentity",
    "SecurityCheckResult",
    "SessionInfo",
    "SessionManager",
    "SessionRecord",
    "SessionState",
]
