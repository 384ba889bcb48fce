"""
Abuse controls for phonoguard.

- Rate Limiting: a sliding-window limiter with in-memory and persisted
  backends behind one interface.
- Lockout: per-identifier temporary deny-lists for accounts and devices.

Quick Start:
    >>> from phonoguard.security import (
    ...     InMemoryWindowBackend,
    ...     LockoutTracker,
    ...     SlidingWindowRateLimiter,
    ... )
    >>>
    >>> limiter = SlidingWindowRateLimiter(InMemoryWindowBackend())
    >>> result = await limiter.check("user_123", max_requests=5, window_ms=60_000)
    >>>
    >>> lockouts = LockoutTracker(store)
    >>> if await lockouts.is_locked_out("user@x.com"):
    ...     remaining = await lockouts.get_time_remaining("user@x.com")
"""

from phonoguard.security.lockout import (
    BLOCKED_DEVICES_KEY,
    LOCKOUT_KEY,
    LockoutRecord,
    LockoutTracker,
)
from phonoguard.security.rate_limiter import (
    InMemoryWindowBackend,
    RateLimitResult,
    SlidingWindowRateLimiter,
    StoreWindowBackend,
    WindowBackend,
)

__all__ = [
    "BLOCKED_DEVICES_KEY",
    "LOCKOUT_KEY",
    "InMemoryWindowBackend",
    "LockoutRecord",
    "LockoutTracker",
    "RateLimitResult",
    "SlidingWindowRateLimiter",
    "StoreWindowBackend",
    "WindowBackend",
]
