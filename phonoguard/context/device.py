"""Persistent per-device identifier."""

from __future__ import annotations

import logging
import secrets

from phonoguard.exceptions import StoreUnavailable
from phonoguard.storage.base import KeyedLock, KeyValueStore
from phonoguard.types import Clock, system_clock

logger = logging.getLogger(__name__)

DEVICE_ID_KEY = "device_id"
UNKNOWN_DEVICE = "unknown_device"


class DeviceIdentity:
    """
    Generates a device id on first use and persists it.

    Falls back to ``"unknown_device"`` (without caching it) when the store is
    unavailable, so event logging never fails because of the id lookup.
    """

    def __init__(
        self,
        store: KeyValueStore,
        locks: KeyedLock | None = None,
        clock: Clock = system_clock,
    ) -> None:
        self._store = store
        self._locks = locks or KeyedLock()
        self._clock = clock
        self._cached: str | None = None

    async def get_device_id(self) -> str:
        if self._cached is not None:
            return self._cached

        async with self._locks.hold(DEVICE_ID_KEY):
            if self._cached is not None:
                return self._cached
            try:
                device_id = await self._store.get(DEVICE_ID_KEY)
                if not device_id:
                    device_id = f"device_{secrets.token_hex(5)}_{self._clock()}"
                    await self._store.set(DEVICE_ID_KEY, device_id)
            except StoreUnavailable as e:
                logger.error(f"Error getting device ID: {e}")
                return UNKNOWN_DEVICE
            self._cached = device_id
            return device_id
