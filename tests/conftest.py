"""
Pytest fixtures for phonoguard tests.

Provides common fixtures used across all test modules.
"""

from __future__ import annotations

import asyncio

import pytest

from phonoguard.audit.log import SecurityEventLog
from phonoguard.auth.identity import AuthResponse, IdentityUser
from phonoguard.config import EngineConfig
from phonoguard.context.device import DeviceIdentity
from phonoguard.context.session import SessionManager
from phonoguard.crypto.cipher import StaticKeyProvider, XorCipher
from phonoguard.engine import SecurityEngine
from phonoguard.monitoring.monitor import SecurityMonitor
from phonoguard.security.lockout import BLOCKED_DEVICES_KEY, LockoutTracker
from phonoguard.storage.base import KeyedLock, NamespacedStore
from phonoguard.storage.memory import InMemoryKeyValueStore
from phonoguard.types import MINUTE_MS

START_MS = 1_700_000_000_000


# ============================================================================
# Test Doubles
# ============================================================================


class FakeClock:
    """Millisecond clock that only moves when told to."""

    def __init__(self, start: int = START_MS) -> None:
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


class FakeIdentityProvider:
    """In-memory identity provider with call recording."""

    def __init__(self) -> None:
        self.passwords: dict[str, str] = {}
        self.sign_in_calls: list[str] = []
        self.sign_out_calls = 0
        self.updated_passwords: list[str] = []
        self.current: IdentityUser | None = None
        self.raise_on_sign_in: Exception | None = None
        self.raise_on_sign_out: Exception | None = None
        self.update_error: str | None = None

    def register(self, email: str, password: str) -> None:
        self.passwords[email] = password

    async def sign_in(self, email: str, password: str) -> AuthResponse:
        self.sign_in_calls.append(email)
        if self.raise_on_sign_in is not None:
            raise self.raise_on_sign_in
        if self.passwords.get(email) != password:
            return AuthResponse(error="Invalid login credentials")
        self.current = IdentityUser(id=f"uid_{email.split('@')[0]}", email=email)
        return AuthResponse(user=self.current)

    async def sign_out(self) -> None:
        self.sign_out_calls += 1
        self.current = None
        if self.raise_on_sign_out is not None:
            raise self.raise_on_sign_out

    async def get_current_user(self) -> IdentityUser | None:
        return self.current

    async def update_password(self, password: str) -> AuthResponse:
        if self.update_error:
            return AuthResponse(error=self.update_error)
        self.updated_passwords.append(password)
        return AuthResponse()


class YieldingKeyValueStore(InMemoryKeyValueStore):
    """
    In-memory backend that gives up control inside every read and write.

    Reads capture the value before yielding, so interleaved callers see stale
    data unless they serialize themselves. Setting ``read_gate`` holds every
    read until the event is set.
    """

    def __init__(self) -> None:
        super().__init__()
        self.read_gate: asyncio.Event | None = None

    async def get(self, key: str) -> str | None:
        value = await super().get(key)
        await asyncio.sleep(0)
        if self.read_gate is not None:
            await self.read_gate.wait()
        return value

    async def set(self, key: str, value: str) -> None:
        await asyncio.sleep(0)
        await super().set(key, value)


# ============================================================================
# Storage Fixtures
# ============================================================================


@pytest.fixture
def clock() -> FakeClock:
    """Create a controllable clock."""
    return FakeClock()


@pytest.fixture
def raw_store() -> InMemoryKeyValueStore:
    """Create an empty in-memory backend."""
    return InMemoryKeyValueStore()


@pytest.fixture
def store(raw_store: InMemoryKeyValueStore) -> NamespacedStore:
    """Namespaced store that turns backend failures into StoreUnavailable."""
    return NamespacedStore(raw_store, "test:")


@pytest.fixture
def yielding_raw_store() -> YieldingKeyValueStore:
    """Create a backend that suspends inside reads and writes."""
    return YieldingKeyValueStore()


@pytest.fixture
def yielding_store(yielding_raw_store: YieldingKeyValueStore) -> NamespacedStore:
    """Namespaced view of the suspending backend."""
    return NamespacedStore(yielding_raw_store, "test:")


@pytest.fixture
def locks() -> KeyedLock:
    """Create a keyed lock."""
    return KeyedLock()


@pytest.fixture
def cipher() -> XorCipher:
    """XOR cipher with a fixed key."""
    return XorCipher(StaticKeyProvider("k1"))


# ============================================================================
# Component Fixtures
# ============================================================================


@pytest.fixture
def device(store: NamespacedStore, locks: KeyedLock, clock: FakeClock) -> DeviceIdentity:
    """Create a device identity."""
    return DeviceIdentity(store, locks, clock)


@pytest.fixture
def event_log(
    store: NamespacedStore, locks: KeyedLock, clock: FakeClock, device: DeviceIdentity
) -> SecurityEventLog:
    """Create an event log stamping the test device id."""
    return SecurityEventLog(
        store,
        clock=clock,
        locks=locks,
        device_id_provider=device.get_device_id,
    )


@pytest.fixture
def lockouts(store: NamespacedStore, locks: KeyedLock, clock: FakeClock) -> LockoutTracker:
    """Create an account lockout tracker (15 minutes)."""
    return LockoutTracker(store, duration_ms=15 * MINUTE_MS, clock=clock, locks=locks)


@pytest.fixture
def blocks(store: NamespacedStore, locks: KeyedLock, clock: FakeClock) -> LockoutTracker:
    """Create a device block tracker (60 minutes)."""
    return LockoutTracker(
        store,
        duration_ms=60 * MINUTE_MS,
        clock=clock,
        locks=locks,
        key=BLOCKED_DEVICES_KEY,
    )


@pytest.fixture
def monitor(
    event_log: SecurityEventLog,
    lockouts: LockoutTracker,
    blocks: LockoutTracker,
    store: NamespacedStore,
    clock: FakeClock,
    locks: KeyedLock,
) -> SecurityMonitor:
    """Create a monitor with default thresholds."""
    return SecurityMonitor(event_log, lockouts, blocks, store, clock=clock, locks=locks)


@pytest.fixture
def sessions(
    store: NamespacedStore,
    clock: FakeClock,
    locks: KeyedLock,
    device: DeviceIdentity,
    event_log: SecurityEventLog,
) -> SessionManager:
    """Create a session manager (60 minute timeout) logging to the event log."""
    return SessionManager(
        store,
        timeout_ms=60 * MINUTE_MS,
        clock=clock,
        locks=locks,
        device=device,
        event_log=event_log,
    )


# ============================================================================
# Engine Fixtures
# ============================================================================


@pytest.fixture
def config() -> EngineConfig:
    """Minimal valid engine configuration."""
    return EngineConfig(
        identity_url="https://auth.example.com",
        identity_anon_key="anon-key",
        admin_emails=("owner@shop.com",),
    )


@pytest.fixture
def identity() -> FakeIdentityProvider:
    """Identity provider with one registered user."""
    provider = FakeIdentityProvider()
    provider.register("user@x.com", "Secr3tPass")
    return provider


@pytest.fixture
def engine(
    config: EngineConfig,
    raw_store: InMemoryKeyValueStore,
    identity: FakeIdentityProvider,
    clock: FakeClock,
) -> SecurityEngine:
    """Fully wired engine over an in-memory store and a fake clock."""
    return SecurityEngine(config, raw_store, identity, clock=clock)
