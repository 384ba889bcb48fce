"""In-memory key-value store backend."""

from __future__ import annotations

from phonoguard.storage.base import KeyValueStore


class InMemoryKeyValueStore(KeyValueStore):
    """
    Dictionary-backed store. State lives only as long as the process.

    Useful for tests and for hosts that provide persistence elsewhere.

    Attributes:
        fail_on: Operation names that should raise, for exercising
            fail-open paths (e.g. {"get", "set"}).
    """

    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self._data: dict[str, str] = dict(initial or {})
        self.fail_on: set[str] = set()

    def _maybe_fail(self, operation: str) -> None:
        if operation in self.fail_on:
            raise OSError(f"simulated store failure on {operation}")

    async def get(self, key: str) -> str | None:
        self._maybe_fail("get")
        return self._data.get(key)

    async def set(self, key: str, value: str) -> None:
        self._maybe_fail("set")
        self._data[key] = value

    async def remove(self, key: str) -> None:
        self._maybe_fail("remove")
        self._data.pop(key, None)

    async def get_all_keys(self) -> list[str]:
        self._maybe_fail("get_all_keys")
        return list(self._data.keys())

    async def multi_remove(self, keys: list[str]) -> None:
        self._maybe_fail("multi_remove")
        for key in keys:
            self._data.pop(key, None)

    def snapshot(self) -> dict[str, str]:
        """Copy of the raw contents."""
        return dict(self._data)
