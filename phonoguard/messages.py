"""
User-facing messages for engine failures.

Lockouts and rate limits tell the user how long to wait; every other
internal failure is shown as a generic retry message so raw error details
never reach the UI.
"""

from __future__ import annotations

from phonoguard.exceptions import (
    AccountLockedError,
    InputValidationError,
    RateLimitExceeded,
)
from phonoguard.types import minutes_ceil

GENERIC_ERROR_MESSAGE = "Something went wrong. Please try again."
MISSING_FIELDS_MESSAGE = "Please fill in all required fields"
INVALID_CREDENTIALS_MESSAGE = "Invalid email or password."
EMAIL_NOT_CONFIRMED_MESSAGE = "Please confirm your email address before signing in."
SIGN_IN_FAILED_MESSAGE = "Sign in failed. Please check your details and try again."


def _minutes(ms: int) -> str:
    n = max(1, minutes_ceil(ms))
    return f"{n} minute" if n == 1 else f"{n} minutes"


def lockout_message(remaining_ms: int) -> str:
    """
    Example:
        >>> lockout_message(14 * 60_000 + 1)
        'Too many failed attempts. Please try again in 15 minutes.'
    """
    return f"Too many failed attempts. Please try again in {_minutes(remaining_ms)}."


def rate_limit_message(retry_after_ms: int | None) -> str:
    return f"Too many requests. Please try again in {_minutes(retry_after_ms or 0)}."


def auth_error_message(provider_error: str) -> str:
    """Map an identity provider error to text safe to show the user."""
    lowered = provider_error.lower()
    if "invalid" in lowered and ("credential" in lowered or "password" in lowered):
        return INVALID_CREDENTIALS_MESSAGE
    if "not confirmed" in lowered:
        return EMAIL_NOT_CONFIRMED_MESSAGE
    return SIGN_IN_FAILED_MESSAGE


def user_message(exc: BaseException) -> str:
    """
    Render an exception for display.

    Example:
        >>> user_message(RateLimitExceeded("u1:/api/cart", 20, retry_after_ms=30_000))
        'Too many requests. Please try again in 1 minute.'
        >>> user_message(RuntimeError("db connection reset"))
        'Something went wrong. Please try again.'
    """
    if isinstance(exc, AccountLockedError):
        return lockout_message(exc.remaining_ms)
    if isinstance(exc, RateLimitExceeded):
        return rate_limit_message(exc.retry_after_ms)
    if isinstance(exc, InputValidationError):
        return exc.reason
    return GENERIC_ERROR_MESSAGE
