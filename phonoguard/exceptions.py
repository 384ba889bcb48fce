"""
Custom exceptions for phonoguard.

This module defines the exception hierarchy for the security engine. Store
and cipher failures inside instrumentation paths (event logging, rate
limiting, monitoring) are caught and logged by the engine itself; the
exceptions here reach callers only from operations that must not fail
silently, such as creating a session or initializing the engine.
"""

from __future__ import annotations

from typing import Any


class PhonoguardError(Exception):
    """
    Base exception for all phonoguard errors.

    Attributes:
        message: Human-readable error description.
        details: Additional context about the error.

    Example:
        >>> try:
        ...     await engine.sessions.create_session("user_123")
        ... except PhonoguardError as e:
        ...     logger.error(f"Security engine error: {e}")
    """

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary for logging/serialization."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "details": self.details,
        }


class StoreUnavailable(PhonoguardError):
    """
    Raised when the persistent key-value store fails.

    Attributes:
        operation: The store operation that failed (get, set, remove, ...).
        key: The key involved, if any.
        cause: String form of the underlying backend error.

    Example:
        >>> raise StoreUnavailable(operation="set", key="session", cause="disk full")
    """

    def __init__(
        self,
        operation: str,
        key: str | None = None,
        cause: str | None = None,
    ) -> None:
        self.operation = operation
        self.key = key
        self.cause = cause

        message = f"Key-value store unavailable during '{operation}'"
        if key:
            message += f" for key '{key}'"

        details = {
            "operation": operation,
            "key": key,
            "cause": cause,
        }
        super().__init__(message, details)


class CipherError(PhonoguardError):
    """
    Raised when values cannot be encrypted or decrypted.

    This includes failing to load or create the persisted encryption key,
    malformed ciphertext, and authentication failures of the AES-GCM backend.

    Attributes:
        operation: "encrypt", "decrypt" or "key".
        reason: Why the operation failed.
    """

    def __init__(self, operation: str, reason: str | None = None) -> None:
        self.operation = operation
        self.reason = reason or "unknown error"

        message = f"Cipher {operation} failed: {self.reason}"
        super().__init__(message, {"operation": operation, "reason": self.reason})


class InvalidIdentifier(PhonoguardError):
    """
    Raised when an identifier used as a rate-limit, lockout or log key is
    empty or malformed.

    Attributes:
        identifier: The rejected identifier (repr-safe).
        reason: Why it was rejected.
    """

    def __init__(self, identifier: Any, reason: str) -> None:
        self.identifier = identifier
        self.reason = reason

        message = f"Invalid identifier {identifier!r}: {reason}"
        super().__init__(message, {"identifier": str(identifier), "reason": reason})


class ConfigurationError(PhonoguardError):
    """
    Raised when there is a configuration error in engine setup.

    Attributes:
        config_key: The configuration key that has an issue.
        expected: What was expected for this configuration.
        received: What was actually provided.

    Example:
        >>> raise ConfigurationError(
        ...     config_key="PHONOGUARD_MAX_LOGIN_ATTEMPTS",
        ...     expected="a positive integer",
        ...     received="five",
        ... )
    """

    def __init__(
        self,
        config_key: str,
        expected: str | None = None,
        received: Any = None,
    ) -> None:
        self.config_key = config_key
        self.expected = expected
        self.received = received

        message = f"Configuration error for '{config_key}'"
        if expected:
            message += f": expected {expected}"
        if received is not None:
            message += f", got {received!r}"

        details = {
            "config_key": config_key,
            "expected": expected,
            "received": str(received) if received is not None else None,
        }
        super().__init__(message, details)


class ConfigMissing(ConfigurationError):
    """
    Raised when required configuration values are absent.

    This is fatal: the engine refuses to initialize without identity
    provider configuration.

    Attributes:
        missing: Names of the missing configuration values.
    """

    def __init__(self, missing: list[str]) -> None:
        self.missing = list(missing)
        super().__init__(
            config_key=", ".join(self.missing),
            expected="a value to be set",
        )
        self.message = (
            f"Missing required configuration: {', '.join(self.missing)}"
        )
        self.details["missing"] = self.missing


class InputValidationError(PhonoguardError):
    """
    Raised when user input fails validation before it reaches the engine.

    Attributes:
        field_name: The input that failed (if known).
        reason: Why validation failed.
    """

    def __init__(self, reason: str, field_name: str | None = None) -> None:
        self.field_name = field_name
        self.reason = reason

        message = "Input validation failed"
        if field_name:
            message += f" for '{field_name}'"
        message += f": {reason}"
        super().__init__(message, {"field_name": field_name, "reason": reason})


class RateLimitExceeded(PhonoguardError):
    """
    Raised when a rate limit has been exceeded.

    Attributes:
        limit_key: The key used for rate limiting (e.g., "user_123:/api/cart").
        limit_value: The configured limit value.
        retry_after_ms: Milliseconds until a request would be allowed again.

    Example:
        >>> raise RateLimitExceeded(
        ...     limit_key="anonymous:/api/repairs",
        ...     limit_value=20,
        ...     retry_after_ms=4_500,
        ... )
    """

    def __init__(
        self,
        limit_key: str,
        limit_value: int | None = None,
        retry_after_ms: int | None = None,
    ) -> None:
        self.limit_key = limit_key
        self.limit_value = limit_value
        self.retry_after_ms = retry_after_ms

        message = f"Rate limit exceeded for '{limit_key}'"
        if limit_value:
            message += f" (limit: {limit_value})"
        if retry_after_ms:
            message += f". Retry after {retry_after_ms / 1000:.1f} seconds"

        details = {
            "limit_key": limit_key,
            "limit_value": limit_value,
            "retry_after_ms": retry_after_ms,
        }
        super().__init__(message, details)


class AccountLockedError(PhonoguardError):
    """
    Raised when an identifier is temporarily locked out.

    Attributes:
        identifier: The locked identifier.
        remaining_ms: Milliseconds until the lockout expires.
    """

    def __init__(self, identifier: str, remaining_ms: int) -> None:
        self.identifier = identifier
        self.remaining_ms = remaining_ms

        message = f"Identifier '{identifier}' is locked out"
        super().__init__(
            message,
            {"identifier": identifier, "remaining_ms": remaining_ms},
        )


class RequestRejected(PhonoguardError):
    """
    Raised by the API gate when a request fails validation.

    Attributes:
        method: HTTP method of the rejected request.
        endpoint: Endpoint of the rejected request.
        errors: Validation errors collected for the request.
    """

    def __init__(self, method: str, endpoint: str, errors: list[str]) -> None:
        self.method = method
        self.endpoint = endpoint
        self.errors = list(errors)

        message = f"Request {method} {endpoint} rejected"
        if self.errors:
            message += f": {'; '.join(self.errors)}"
        super().__init__(
            message,
            {"method": method, "endpoint": endpoint, "errors": self.errors},
        )


class IdentityProviderError(PhonoguardError):
    """
    Raised when the identity provider reports a failure for an operation
    whose outcome the caller must know about, such as a password change.

    Attributes:
        operation: The provider operation ("update_password", ...).
        reason: Error text returned by the provider.
    """

    def __init__(self, operation: str, reason: str) -> None:
        self.operation = operation
        self.reason = reason

        message = f"Identity provider {operation} failed: {reason}"
        super().__init__(message, {"operation": operation, "reason": reason})
