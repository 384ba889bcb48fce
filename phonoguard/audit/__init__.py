"""
Security event logging for phonoguard.

- SecurityEvent: typed, checksummed event records.
- SecurityEventLog: bounded append-only log with aggregation queries.

Example:
    >>> from phonoguard.audit import SecurityEventLog, login_failure
    >>> log = SecurityEventLog(store)
    >>> await log.log_event(login_failure("user@x.com", reason="bad password"))
    >>> result = await log.verify()
    >>> print(result.valid)
"""

from phonoguard.audit.events import (
    DETAILS_FOR_TYPE,
    AlertDetails,
    DataAccessDetails,
    EventType,
    LockoutDetails,
    LoginDetails,
    ResponseDetails,
    SecurityEvent,
    SessionDetails,
    Severity,
    SuspiciousActivityDetails,
    data_access,
    login_failure,
    parse_details,
    suspicious_activity,
)
from phonoguard.audit.log import (
    DEFAULT_CAPACITY,
    DEFAULT_RETENTION_MS,
    SECURITY_LOG_KEY,
    LogVerificationResult,
    SecurityEventLog,
)

__all__ = [
    "DEFAULT_CAPACITY",
    "DEFAULT_RETENTION_MS",
    "DETAILS_FOR_TYPE",
    "SECURITY_LOG_KEY",
    "AlertDetails",
    "DataAccessDetails",
    "EventType",
    "LockoutDetails",
    "LogVerificationResult",
    "LoginDetails",
    "ResponseDetails",
    "SecurityEvent",
    "SecurityEventLog",
    "SessionDetails",
    "Severity",
    "SuspiciousActivityDetails",
    "data_access",
    "login_failure",
    "parse_details",
    "suspicious_activity",
]
