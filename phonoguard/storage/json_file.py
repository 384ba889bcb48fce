"""
File-backed key-value store.

Holds the whole key space as one JSON object on disk, rewritten atomically
(write to a temporary file then ``os.replace``) on every mutation. Disk I/O
runs in a worker thread so the event loop is never blocked.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import tempfile
from pathlib import Path

from phonoguard.storage.base import KeyValueStore

logger = logging.getLogger(__name__)


class JsonFileKeyValueStore(KeyValueStore):
    """
    Persistent store in a single JSON file.

    The file is loaded lazily on first access and cached; writes go through
    to disk before the call returns.

    Example:
        >>> store = JsonFileKeyValueStore("~/.phonoguard/state.json")
        >>> await store.set("device_id", "device_abc")
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path).expanduser()
        self._data: dict[str, str] | None = None
        self._write_lock = asyncio.Lock()
        self._load_lock = asyncio.Lock()

    def _read_file(self) -> dict[str, str]:
        if not self.path.exists():
            return {}
        with open(self.path, encoding="utf-8") as f:
            content = f.read()
        if not content.strip():
            return {}
        data = json.loads(content)
        if not isinstance(data, dict):
            raise ValueError(f"{self.path} does not contain a JSON object")
        return {str(k): str(v) for k, v in data.items()}

    def _write_file(self, data: dict[str, str]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(dir=self.path.parent, prefix=".kv-", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, separators=(",", ":"))
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp, self.path)
        except BaseException:
            if os.path.exists(tmp):
                os.unlink(tmp)
            raise

    async def _load(self) -> dict[str, str]:
        if self._data is not None:
            return self._data
        async with self._load_lock:
            # Another caller may have finished loading while we waited.
            if self._data is None:
                self._data = await asyncio.to_thread(self._read_file)
                logger.debug(f"Loaded {len(self._data)} keys from {self.path}")
        return self._data

    async def _commit(self, data: dict[str, str]) -> None:
        async with self._write_lock:
            await asyncio.to_thread(self._write_file, dict(data))

    async def get(self, key: str) -> str | None:
        data = await self._load()
        return data.get(key)

    async def set(self, key: str, value: str) -> None:
        data = await self._load()
        data[key] = value
        await self._commit(data)

    async def remove(self, key: str) -> None:
        data = await self._load()
        if key in data:
            del data[key]
            await self._commit(data)

    async def get_all_keys(self) -> list[str]:
        data = await self._load()
        return list(data.keys())

    async def multi_remove(self, keys: list[str]) -> None:
        data = await self._load()
        removed = False
        for key in keys:
            if key in data:
                del data[key]
                removed = True
        if removed:
            await self._commit(data)
