"""
Shared types and helpers for phonoguard.

All persisted timestamps are integer milliseconds since the Unix epoch. Every
component takes an injectable clock so tests can advance time without
sleeping.
"""

from __future__ import annotations

import time
from collections.abc import Callable

from phonoguard.exceptions import InvalidIdentifier

Clock = Callable[[], int]

SECOND_MS = 1000
MINUTE_MS = 60 * SECOND_MS
HOUR_MS = 60 * MINUTE_MS
DAY_MS = 24 * HOUR_MS

MAX_IDENTIFIER_LENGTH = 512


def system_clock() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


def validate_identifier(identifier: str) -> str:
    """
    Check that an identifier can be used as a store key component.

    Args:
        identifier: Email, device id, or composite key such as "user:/api/cart".

    Returns:
        The identifier unchanged.

    Raises:
        InvalidIdentifier: If the identifier is not a non-blank string of
            reasonable length without control characters.
    """
    if not isinstance(identifier, str):
        raise InvalidIdentifier(identifier, "must be a string")
    if not identifier.strip():
        raise InvalidIdentifier(identifier, "must not be empty")
    if len(identifier) > MAX_IDENTIFIER_LENGTH:
        raise InvalidIdentifier(
            identifier[:32] + "...",
            f"longer than {MAX_IDENTIFIER_LENGTH} characters",
        )
    if any(ord(ch) < 32 for ch in identifier):
        raise InvalidIdentifier(identifier, "contains control characters")
    return identifier


def minutes_ceil(ms: int) -> int:
    """Round a millisecond duration up to whole minutes (minimum 1)."""
    if ms <= 0:
        return 0
    return max(1, -(-ms // MINUTE_MS))
