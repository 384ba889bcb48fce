"""
Security event definitions for phonoguard.

Events carry a typed payload chosen from a closed set of pydantic models,
discriminated by their ``kind`` tag, and each event type admits exactly one
payload model. Checksums are computed over the canonical JSON form of every
field except the checksum itself.
"""

from __future__ import annotations

import hashlib
import hmac
import json
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter


class EventType(Enum):
    """Types of security events."""
    LOGIN_ATTEMPT = "login_attempt"
    LOGIN_SUCCESS = "login_success"
    LOGIN_FAILURE = "login_failure"
    LOCKOUT = "lockout"
    SESSION_CREATED = "session_created"
    SESSION_EXPIRED = "session_expired"
    SESSION_CLEARED = "session_cleared"
    SUSPICIOUS_ACTIVITY = "suspicious_activity"
    DATA_ACCESS = "data_access"
    SECURITY_ALERT = "security_alert"
    AUTOMATED_RESPONSE = "automated_response"


class Severity(Enum):
    """Severity classification, ordered from least to most severe."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]


_SEVERITY_RANK = {
    Severity.LOW: 0,
    Severity.MEDIUM: 1,
    Severity.HIGH: 2,
    Severity.CRITICAL: 3,
}


class _Details(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")


class LoginDetails(_Details):
    kind: Literal["login"] = "login"
    reason: str | None = None
    attempt: int | None = None


class LockoutDetails(_Details):
    kind: Literal["lockout"] = "lockout"
    reason: str
    duration_ms: int


class SessionDetails(_Details):
    kind: Literal["session"] = "session"
    session_id: str | None = None
    expires_at: int | None = None


class SuspiciousActivityDetails(_Details):
    kind: Literal["suspicious_activity"] = "suspicious_activity"
    reason: str
    source: str | None = None
    method: str | None = None
    endpoint: str | None = None
    errors: list[str] = Field(default_factory=list)


class DataAccessDetails(_Details):
    kind: Literal["data_access"] = "data_access"
    method: str
    endpoint: str


class AlertDetails(_Details):
    kind: Literal["alert"] = "alert"
    alerts: list[str]
    triggering_type: str
    triggering_identifier: str


class ResponseDetails(_Details):
    kind: Literal["automated_response"] = "automated_response"
    responses: list[str]
    triggering_type: str
    triggering_identifier: str


EventDetails = Annotated[
    Union[
        LoginDetails,
        LockoutDetails,
        SessionDetails,
        SuspiciousActivityDetails,
        DataAccessDetails,
        AlertDetails,
        ResponseDetails,
    ],
    Field(discriminator="kind"),
]

_details_adapter: TypeAdapter[Any] = TypeAdapter(EventDetails)

# Payload model admitted by each event type
DETAILS_FOR_TYPE: dict[EventType, type[_Details]] = {
    EventType.LOGIN_ATTEMPT: LoginDetails,
    EventType.LOGIN_SUCCESS: LoginDetails,
    EventType.LOGIN_FAILURE: LoginDetails,
    EventType.LOCKOUT: LockoutDetails,
    EventType.SESSION_CREATED: SessionDetails,
    EventType.SESSION_EXPIRED: SessionDetails,
    EventType.SESSION_CLEARED: SessionDetails,
    EventType.SUSPICIOUS_ACTIVITY: SuspiciousActivityDetails,
    EventType.DATA_ACCESS: DataAccessDetails,
    EventType.SECURITY_ALERT: AlertDetails,
    EventType.AUTOMATED_RESPONSE: ResponseDetails,
}


def parse_details(data: dict[str, Any] | None) -> Any:
    """Validate a details dict into its payload model."""
    if data is None:
        return None
    return _details_adapter.validate_python(data)


@dataclass(frozen=True)
class SecurityEvent:
    """
    A single entry in the security event log.

    Callers construct events with type, identifier, severity and optional
    user id and details; the log stamps timestamp, device id, session id and
    checksum when the event is appended.

    Attributes:
        type: What happened.
        identifier: Subject of the event (email, "METHOD:endpoint", device).
        severity: How serious it is.
        user_id: Authenticated user, if known.
        details: Typed payload matching ``type``.
        timestamp: Epoch milliseconds, set by the log.
        device_id: Device that recorded the event, set by the log.
        session_id: Session active when recorded, set by the log.
        checksum: Digest over every other field, set by the log.
    """
    type: EventType
    identifier: str
    severity: Severity = Severity.LOW
    user_id: str | None = None
    details: Any = None
    timestamp: int = 0
    device_id: str = ""
    session_id: str | None = None
    checksum: str = field(default="", compare=False)

    def __post_init__(self) -> None:
        expected = DETAILS_FOR_TYPE[self.type]
        if self.details is not None and not isinstance(self.details, expected):
            raise TypeError(
                f"{self.type.value} events take {expected.__name__} details, "
                f"got {type(self.details).__name__}"
            )

    def _canonical_dict(self) -> dict[str, Any]:
        return {
            "type": self.type.value,
            "identifier": self.identifier,
            "user_id": self.user_id,
            "details": self.details.model_dump() if self.details is not None else None,
            "severity": self.severity.value,
            "timestamp": self.timestamp,
            "device_id": self.device_id,
            "session_id": self.session_id,
        }

    def canonical_json(self) -> str:
        """Deterministic JSON of every field except the checksum."""
        return json.dumps(
            self._canonical_dict(),
            sort_keys=True,
            separators=(",", ":"),
            default=str,
        )

    def compute_checksum(self, key: bytes | None = None) -> str:
        """
        Compute the checksum for this event.

        Without a key this is a plain SHA-256 and detects accidental
        corruption only; anyone able to edit the store can recompute it.
        With a key it is an HMAC-SHA256.
        """
        data = self.canonical_json().encode("utf-8")
        if key:
            return "hmac-sha256:" + hmac.new(key, data, hashlib.sha256).hexdigest()
        return "sha256:" + hashlib.sha256(data).hexdigest()

    def with_checksum(self, key: bytes | None = None) -> SecurityEvent:
        return replace(self, checksum=self.compute_checksum(key))

    def verify_checksum(self, key: bytes | None = None) -> bool:
        if not self.checksum:
            return False
        return hmac.compare_digest(self.checksum, self.compute_checksum(key))

    def to_dict(self) -> dict[str, Any]:
        result = self._canonical_dict()
        result["checksum"] = self.checksum
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SecurityEvent:
        return cls(
            type=EventType(data["type"]),
            identifier=data["identifier"],
            severity=Severity(data.get("severity", "low")),
            user_id=data.get("user_id"),
            details=parse_details(data.get("details")),
            timestamp=int(data.get("timestamp", 0)),
            device_id=data.get("device_id", ""),
            session_id=data.get("session_id"),
            checksum=data.get("checksum", ""),
        )


def login_failure(identifier: str, reason: str | None = None, attempt: int | None = None) -> SecurityEvent:
    """Build a failed-login event."""
    return SecurityEvent(
        type=EventType.LOGIN_FAILURE,
        identifier=identifier,
        severity=Severity.MEDIUM,
        details=LoginDetails(reason=reason, attempt=attempt),
    )


def suspicious_activity(
    identifier: str,
    reason: str,
    source: str | None = None,
    user_id: str | None = None,
    severity: Severity = Severity.MEDIUM,
) -> SecurityEvent:
    """Build a suspicious-activity event."""
    return SecurityEvent(
        type=EventType.SUSPICIOUS_ACTIVITY,
        identifier=identifier,
        severity=severity,
        user_id=user_id,
        details=SuspiciousActivityDetails(reason=reason, source=source),
    )


def data_access(user_id: str | None, method: str, endpoint: str) -> SecurityEvent:
    """Build a data-access event for an accepted API request."""
    return SecurityEvent(
        type=EventType.DATA_ACCESS,
        identifier=f"{method}:{endpoint}",
        severity=Severity.LOW,
        user_id=user_id,
        details=DataAccessDetails(method=method, endpoint=endpoint),
    )
