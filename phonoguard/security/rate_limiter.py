"""
Sliding-window rate limiting for phonoguard.

One limiter, two storage backends:

- InMemoryWindowBackend keeps windows for the lifetime of the process and
  suits per-request API throttling.
- StoreWindowBackend persists windows in the key-value store so login
  attempt counting survives an app restart.

Both backends sit behind the same SlidingWindowRateLimiter so the pruning,
deny and retry-after logic exists once.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass

from phonoguard.exceptions import RateLimitExceeded, StoreUnavailable
from phonoguard.storage.base import KeyedLock, KeyValueStore, load_json, save_json
from phonoguard.types import Clock, system_clock, validate_identifier

logger = logging.getLogger(__name__)

RATE_LIMIT_PREFIX = "rate_limit:"


@dataclass
class RateLimitResult:
    """
    Outcome of a rate limit check.

    Attributes:
        allowed: Whether the request may proceed.
        remaining_time_ms: When denied, milliseconds until the oldest request
            leaves the window. None when allowed.
        remaining: Requests still available in the current window.
    """

    allowed: bool
    remaining_time_ms: int | None = None
    remaining: int = 0


class WindowBackend(ABC):
    """Storage for per-identifier request timestamp lists."""

    @abstractmethod
    def lock_key(self, identifier: str) -> str:
        """Name of the mutex guarding this identifier's window."""

    @abstractmethod
    async def load(self, identifier: str) -> list[int]:
        """Return the stored timestamps (possibly stale) for an identifier."""

    @abstractmethod
    async def save(self, identifier: str, timestamps: list[int]) -> None:
        """Replace the stored timestamps for an identifier."""

    @abstractmethod
    async def delete(self, identifier: str) -> None:
        """Forget an identifier's window."""


class InMemoryWindowBackend(WindowBackend):
    """Process-lifetime windows held in a dict. Resets on restart."""

    def __init__(self) -> None:
        self._windows: dict[str, list[int]] = {}

    def lock_key(self, identifier: str) -> str:
        return f"memory:{RATE_LIMIT_PREFIX}{identifier}"

    async def load(self, identifier: str) -> list[int]:
        return list(self._windows.get(identifier, []))

    async def save(self, identifier: str, timestamps: list[int]) -> None:
        if timestamps:
            self._windows[identifier] = list(timestamps)
        else:
            self._windows.pop(identifier, None)

    async def delete(self, identifier: str) -> None:
        self._windows.pop(identifier, None)

    def prune(self, cutoff_ms: int) -> int:
        """
        Drop windows whose newest request is older than ``cutoff_ms``.

        Returns:
            Number of identifiers removed.
        """
        stale = [
            key for key, stamps in self._windows.items()
            if not stamps or max(stamps) <= cutoff_ms
        ]
        for key in stale:
            del self._windows[key]
        return len(stale)

    def __len__(self) -> int:
        return len(self._windows)


class StoreWindowBackend(WindowBackend):
    """Windows persisted in the key-value store, one key per identifier."""

    def __init__(self, store: KeyValueStore, prefix: str = RATE_LIMIT_PREFIX) -> None:
        self._store = store
        self.prefix = prefix

    def _key(self, identifier: str) -> str:
        return f"{self.prefix}{identifier}"

    def lock_key(self, identifier: str) -> str:
        return self._key(identifier)

    async def load(self, identifier: str) -> list[int]:
        stamps = await load_json(self._store, self._key(identifier), [])
        if not isinstance(stamps, list):
            return []
        return [int(t) for t in stamps if isinstance(t, (int, float))]

    async def save(self, identifier: str, timestamps: list[int]) -> None:
        if timestamps:
            await save_json(self._store, self._key(identifier), timestamps)
        else:
            await self._store.remove(self._key(identifier))

    async def delete(self, identifier: str) -> None:
        await self._store.remove(self._key(identifier))


class SlidingWindowRateLimiter:
    """
    Sliding window rate limiter.

    Counts requests within the trailing ``window_ms`` ending at now. Once the
    window holds ``max_requests`` timestamps further requests are denied, not
    recorded, so the window never grows beyond the limit.

    If the backend fails the limiter fails open: the request is allowed and
    the failure is logged.

    Example:
        >>> limiter = SlidingWindowRateLimiter(InMemoryWindowBackend())
        >>> result = await limiter.check("user_123:/api/cart", 20, 60_000)
        >>> if not result.allowed:
        ...     print(f"retry in {result.remaining_time_ms} ms")
    """

    def __init__(
        self,
        backend: WindowBackend,
        clock: Clock = system_clock,
        locks: KeyedLock | None = None,
    ) -> None:
        """
        Initialize the sliding window rate limiter.

        Args:
            backend: Where request timestamps are kept.
            clock: Millisecond clock.
            locks: Shared keyed mutex; a private one is created if omitted.
        """
        self.backend = backend
        self._clock = clock
        self._locks = locks or KeyedLock()

    @staticmethod
    def _validate_limits(max_requests: int, window_ms: int) -> None:
        if max_requests < 1:
            raise ValueError(f"max_requests must be >= 1, got {max_requests}")
        if window_ms < 1:
            raise ValueError(f"window_ms must be >= 1, got {window_ms}")

    async def check(
        self,
        identifier: str,
        max_requests: int,
        window_ms: int,
    ) -> RateLimitResult:
        """
        Check whether a request is allowed and record it if so.

        Args:
            identifier: The rate limit key (e.g., email, "user:endpoint").
            max_requests: Maximum requests allowed in the window.
            window_ms: Window size in milliseconds.

        Returns:
            RateLimitResult for this request.

        Raises:
            InvalidIdentifier: If the identifier is empty or malformed.
            ValueError: If the limits are not positive.
        """
        validate_identifier(identifier)
        self._validate_limits(max_requests, window_ms)

        try:
            async with self._locks.hold(self.backend.lock_key(identifier)):
                now = self._clock()
                cutoff = now - window_ms
                stamps = [t for t in await self.backend.load(identifier) if t > cutoff]

                if len(stamps) >= max_requests:
                    remaining_time = min(stamps) + window_ms - now
                    await self.backend.save(identifier, stamps)
                    logger.debug(
                        f"Rate limit exceeded: key={identifier}, "
                        f"count={len(stamps)}, retry_in_ms={remaining_time}"
                    )
                    return RateLimitResult(
                        allowed=False,
                        remaining_time_ms=max(1, remaining_time),
                        remaining=0,
                    )

                stamps.append(now)
                await self.backend.save(identifier, stamps)
                return RateLimitResult(
                    allowed=True,
                    remaining=max_requests - len(stamps),
                )
        except StoreUnavailable as e:
            logger.error(f"Rate limit check failed for '{identifier}', allowing: {e}")
            return RateLimitResult(allowed=True, remaining=max_requests)

    async def enforce(
        self,
        identifier: str,
        max_requests: int,
        window_ms: int,
    ) -> RateLimitResult:
        """
        Like ``check`` but raise when the request is denied.

        Raises:
            RateLimitExceeded: If the limit is exceeded.
        """
        result = await self.check(identifier, max_requests, window_ms)
        if not result.allowed:
            raise RateLimitExceeded(
                limit_key=identifier,
                limit_value=max_requests,
                retry_after_ms=result.remaining_time_ms,
            )
        return result

    async def get_remaining(
        self,
        identifier: str,
        max_requests: int,
        window_ms: int,
    ) -> int:
        """Requests still allowed in the current window, without recording one."""
        validate_identifier(identifier)
        self._validate_limits(max_requests, window_ms)
        try:
            cutoff = self._clock() - window_ms
            stamps = [t for t in await self.backend.load(identifier) if t > cutoff]
        except StoreUnavailable as e:
            logger.error(f"Rate limit lookup failed for '{identifier}': {e}")
            return max_requests
        return max(0, max_requests - len(stamps))

    async def reset(self, identifier: str) -> None:
        """Reset request history for an identifier."""
        validate_identifier(identifier)
        async with self._locks.hold(self.backend.lock_key(identifier)):
            await self.backend.delete(identifier)
