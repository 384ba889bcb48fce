"""
Request gate in front of the remote data API.

Every outgoing request is rate limited per user and endpoint, checked
against method and endpoint whitelists, and has its body sanitized and
scanned before it may be forwarded. Accepted requests are reported to the
security monitor as data access; rejected ones as suspicious activity from
the requester.
"""

from __future__ import annotations

import json
import logging
import math
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any, TypeVar

from phonoguard.audit.events import (
    EventType,
    SecurityEvent,
    Severity,
    SuspiciousActivityDetails,
    data_access,
)
from phonoguard.exceptions import (
    InputValidationError,
    InvalidIdentifier,
    RateLimitExceeded,
    RequestRejected,
)
from phonoguard.guards.validators import contains_suspicious_content, sanitize_value
from phonoguard.monitoring.monitor import SecurityMonitor
from phonoguard.security.rate_limiter import SlidingWindowRateLimiter
from phonoguard.types import MINUTE_MS, SECOND_MS

logger = logging.getLogger(__name__)

T = TypeVar("T")

ANONYMOUS = "anonymous"
GATE_SOURCE = "api_gate"

DEFAULT_ALLOWED_METHODS = frozenset({"GET", "POST", "PUT", "DELETE", "PATCH"})
DEFAULT_ALLOWED_ENDPOINTS: tuple[str, ...] = (
    "/auth/login",
    "/auth/register",
    "/auth/logout",
    "/auth/forgot-password",
    "/auth/reset-password",
    "/api/repairs",
    "/api/repairs/create",
    "/api/repairs/update",
    "/api/repairs/delete",
    "/api/cart",
    "/api/products",
    "/api/feedback",
)
DEFAULT_MAX_REQUESTS = 20
DEFAULT_WINDOW_MS = MINUTE_MS
MAX_BODY_BYTES = 1024 * 1024
MAX_BODY_STRING_LENGTH = 10_000


@dataclass
class ApiRequest:
    """
    An outgoing API request awaiting validation.

    Attributes:
        method: HTTP method.
        endpoint: Path of the endpoint, e.g. "/api/repairs/create".
        body: JSON-like request body.
        headers: Request headers.
        user_id: Authenticated user, None for anonymous requests.
    """

    method: str
    endpoint: str
    body: Any = None
    headers: dict[str, str] = field(default_factory=dict)
    user_id: str | None = None

    @property
    def requester(self) -> str:
        return self.user_id or ANONYMOUS

    @property
    def rate_limit_key(self) -> str:
        return f"{self.requester}:{self.endpoint}"


@dataclass
class GateResult:
    """
    Outcome of request validation.

    Attributes:
        valid: True when the request may be forwarded.
        errors: Reasons for rejection.
        sanitized: The sanitized body.
        retry_after_ms: Set when the request was rate limited.
    """

    valid: bool
    errors: list[str] = field(default_factory=list)
    sanitized: Any = None
    retry_after_ms: int | None = None


class ApiGate:
    """
    Validates outgoing API requests.

    Example:
        >>> gate = ApiGate(limiter, monitor)
        >>> result = await gate.validate_request(
        ...     ApiRequest("POST", "/api/feedback", body={"text": "Great fix!"}, user_id="u1")
        ... )
        >>> result.valid
        True
    """

    def __init__(
        self,
        limiter: SlidingWindowRateLimiter,
        monitor: SecurityMonitor,
        max_requests: int = DEFAULT_MAX_REQUESTS,
        window_ms: int = DEFAULT_WINDOW_MS,
        allowed_methods: frozenset[str] = DEFAULT_ALLOWED_METHODS,
        allowed_endpoints: tuple[str, ...] = DEFAULT_ALLOWED_ENDPOINTS,
        max_body_bytes: int = MAX_BODY_BYTES,
        device_id_provider: Callable[[], Awaitable[str]] | None = None,
    ) -> None:
        """
        Initialize the gate.

        Args:
            limiter: Limiter for per-request throttling, normally in-memory.
            monitor: Where accepted and rejected requests are reported.
            max_requests: Requests allowed per user and endpoint per window.
            window_ms: Rate limit window.
            allowed_methods: Accepted HTTP methods (upper case).
            allowed_endpoints: Accepted endpoint prefixes.
            max_body_bytes: Largest accepted serialized body.
            device_id_provider: Names anonymous requesters in reports and
                block checks.
        """
        self.limiter = limiter
        self.monitor = monitor
        self.max_requests = max_requests
        self.window_ms = window_ms
        self.allowed_methods = allowed_methods
        self.allowed_endpoints = allowed_endpoints
        self.max_body_bytes = max_body_bytes
        self._device_id_provider = device_id_provider

    def is_valid_endpoint(self, endpoint: str) -> bool:
        return any(endpoint.startswith(prefix) for prefix in self.allowed_endpoints)

    async def _requester_identity(self, request: ApiRequest) -> str:
        if request.user_id:
            return request.user_id
        if self._device_id_provider is not None:
            return await self._device_id_provider()
        return ANONYMOUS

    def _check_body(self, body: Any, errors: list[str]) -> Any:
        try:
            sanitized = sanitize_value(body, MAX_BODY_STRING_LENGTH)
            raw_text = json.dumps(body, default=str)
            sanitized_text = json.dumps(sanitized, default=str)
        except (InputValidationError, TypeError, ValueError) as e:
            logger.debug(f"Unreadable request body: {e}")
            errors.append("Invalid request body format")
            return {}

        if contains_suspicious_content(raw_text):
            errors.append("Request contains potentially malicious content")
        if len(sanitized_text.encode("utf-8")) > self.max_body_bytes:
            errors.append("Request body too large")
        return sanitized

    async def validate_request(self, request: ApiRequest) -> GateResult:
        """
        Validate and sanitize a request, and report it to the monitor.

        Returns:
            GateResult with the sanitized body and any errors.
        """
        errors: list[str] = []
        retry_after_ms: int | None = None
        requester = await self._requester_identity(request)

        valid_requester = True
        try:
            if await self.monitor.is_blocked(requester):
                errors.append("Requests from this device are temporarily blocked")
        except InvalidIdentifier:
            valid_requester = False
            errors.append("Invalid requester")

        limit = None
        if valid_requester:
            try:
                limit = await self.limiter.check(
                    request.rate_limit_key, self.max_requests, self.window_ms
                )
            except InvalidIdentifier:
                errors.append("Invalid endpoint")
        if limit is not None and not limit.allowed:
            retry_after_ms = limit.remaining_time_ms
            seconds = math.ceil((retry_after_ms or 0) / SECOND_MS)
            errors.append(f"Rate limit exceeded. Try again in {seconds} seconds")

        if request.method.upper() not in self.allowed_methods:
            errors.append("Invalid HTTP method")
        if not self.is_valid_endpoint(request.endpoint):
            errors.append("Invalid endpoint")

        sanitized = request.body
        if request.body is not None:
            sanitized = self._check_body(request.body, errors)

        result = GateResult(
            valid=not errors,
            errors=errors,
            sanitized=sanitized,
            retry_after_ms=retry_after_ms,
        )
        await self._report(request, requester, result)
        return result

    async def _report(self, request: ApiRequest, requester: str, result: GateResult) -> None:
        method = request.method.upper()
        if result.valid:
            event = data_access(request.user_id, method, request.endpoint)
        else:
            logger.warning(
                f"Rejected {method} {request.endpoint} from {requester}: {result.errors}"
            )
            event = SecurityEvent(
                type=EventType.SUSPICIOUS_ACTIVITY,
                identifier=requester,
                severity=Severity.MEDIUM,
                user_id=request.user_id,
                details=SuspiciousActivityDetails(
                    reason="Request failed validation",
                    source=GATE_SOURCE,
                    method=method,
                    endpoint=request.endpoint,
                    errors=result.errors,
                ),
            )
        await self.monitor.monitor_event(event)

    async def forward(
        self,
        request: ApiRequest,
        handler: Callable[[Any], Awaitable[T]],
    ) -> T:
        """
        Validate a request and pass its sanitized body to ``handler``.

        Raises:
            RateLimitExceeded: If the request was rate limited.
            RequestRejected: If it failed any other check.
        """
        result = await self.validate_request(request)
        if result.retry_after_ms is not None:
            raise RateLimitExceeded(
                limit_key=request.rate_limit_key,
                limit_value=self.max_requests,
                retry_after_ms=result.retry_after_ms,
            )
        if not result.valid:
            raise RequestRejected(request.method, request.endpoint, result.errors)
        return await handler(result.sanitized)
