"""
Key-value store interface for phonoguard.

The engine persists all of its state through this single asynchronous
primitive. Stores offer no multi-key transactions; components serialize their
own read-modify-write sequences with a KeyedLock.
"""

from __future__ import annotations

import asyncio
import json
import logging
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from phonoguard.exceptions import StoreUnavailable

logger = logging.getLogger(__name__)


class KeyValueStore(ABC):
    """
    Abstract asynchronous key-value store over opaque string keys.

    Backends may raise any exception; NamespacedStore converts those into
    StoreUnavailable so engine components only need to handle one error type.

    Example:
        >>> store = InMemoryKeyValueStore()
        >>> await store.set("session", '{"user_id": "u1"}')
        >>> await store.get("session")
        '{"user_id": "u1"}'
    """

    @abstractmethod
    async def get(self, key: str) -> str | None:
        """Return the value for a key, or None if absent."""

    @abstractmethod
    async def set(self, key: str, value: str) -> None:
        """Store a value under a key, replacing any previous value."""

    @abstractmethod
    async def remove(self, key: str) -> None:
        """Remove a key. Removing a missing key is not an error."""

    @abstractmethod
    async def get_all_keys(self) -> list[str]:
        """Return every key currently held by the store."""

    async def multi_remove(self, keys: list[str]) -> None:
        """Remove several keys. Backends may override with a bulk operation."""
        for key in keys:
            await self.remove(key)


class KeyedLock:
    """
    In-process async mutex keyed by store key name.

    Every read-modify-write of a single key runs under ``hold(key)`` so that
    two interleaved coroutines cannot both read the old value and clobber
    each other's update.

    Example:
        >>> locks = KeyedLock()
        >>> async with locks.hold("lockouts"):
        ...     data = await store.get("lockouts")
        ...     await store.set("lockouts", updated)
    """

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}
        # Holders plus waiters per key; a lock is dropped when this reaches zero.
        self._users: dict[str, int] = {}

    def _acquire_ref(self, key: str) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        self._users[key] = self._users.get(key, 0) + 1
        return lock

    def _release_ref(self, key: str) -> None:
        self._users[key] -= 1
        if self._users[key] == 0:
            del self._users[key]
            del self._locks[key]

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        """Hold the mutex for ``key`` for the duration of the block."""
        lock = self._acquire_ref(key)
        try:
            async with lock:
                yield
        finally:
            self._release_ref(key)

    def locked(self, key: str) -> bool:
        """Whether the mutex for ``key`` is currently held."""
        lock = self._locks.get(key)
        return lock is not None and lock.locked()

    @property
    def key_count(self) -> int:
        """Number of keys with a live mutex."""
        return len(self._locks)


class NamespacedStore(KeyValueStore):
    """
    Prefix every key with a namespace and normalize backend failures.

    Components own disjoint key names inside the namespace, so races are
    confined to same-key access.

    Attributes:
        prefix: String prepended to every key, e.g. "phonoguard:".
    """

    def __init__(self, inner: KeyValueStore, prefix: str) -> None:
        self._inner = inner
        self.prefix = prefix

    def _full(self, key: str) -> str:
        return f"{self.prefix}{key}"

    async def get(self, key: str) -> str | None:
        try:
            return await self._inner.get(self._full(key))
        except Exception as e:
            raise StoreUnavailable("get", key, str(e)) from e

    async def set(self, key: str, value: str) -> None:
        try:
            await self._inner.set(self._full(key), value)
        except Exception as e:
            raise StoreUnavailable("set", key, str(e)) from e

    async def remove(self, key: str) -> None:
        try:
            await self._inner.remove(self._full(key))
        except Exception as e:
            raise StoreUnavailable("remove", key, str(e)) from e

    async def get_all_keys(self) -> list[str]:
        try:
            keys = await self._inner.get_all_keys()
        except Exception as e:
            raise StoreUnavailable("get_all_keys", None, str(e)) from e
        n = len(self.prefix)
        return [k[n:] for k in keys if k.startswith(self.prefix)]

    async def multi_remove(self, keys: list[str]) -> None:
        try:
            await self._inner.multi_remove([self._full(k) for k in keys])
        except Exception as e:
            raise StoreUnavailable("multi_remove", ",".join(keys), str(e)) from e

    def namespace(self, prefix: str) -> NamespacedStore:
        """Create a nested namespace under this one."""
        return NamespacedStore(self._inner, self._full(prefix))


async def load_json(store: KeyValueStore, key: str, default: Any) -> Any:
    """
    Read and decode a JSON value.

    A missing key returns ``default``. A corrupt value is logged and also
    treated as ``default`` so one damaged record cannot wedge a component.
    Store failures propagate as StoreUnavailable.
    """
    raw = await store.get(key)
    if raw is None:
        return default
    try:
        return json.loads(raw)
    except (json.JSONDecodeError, TypeError) as e:
        logger.error(f"Discarding corrupt JSON under key '{key}': {e}")
        return default


async def save_json(store: KeyValueStore, key: str, value: Any) -> None:
    """Encode a value as compact JSON and store it."""
    await store.set(key, json.dumps(value, separators=(",", ":"), default=str))
