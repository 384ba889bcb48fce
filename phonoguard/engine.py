"""
SecurityEngine: the explicit context object for phonoguard.

Constructed once at process start and passed to every consumer, instead of
module-level singletons. Tests build isolated engines over in-memory stores
with a fake clock.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping

from phonoguard.audit.log import SecurityEventLog
from phonoguard.auth.guard import AuthGuard
from phonoguard.auth.identity import IdentityProvider
from phonoguard.config import CIPHER_AES_GCM, EngineConfig
from phonoguard.context.device import DeviceIdentity
from phonoguard.context.lifecycle import AppLifecycle, AppState
from phonoguard.context.session import SessionManager
from phonoguard.crypto.cipher import AesGcmCipher, Cipher, PersistedKeyProvider, XorCipher
from phonoguard.guards.api_gate import ApiGate
from phonoguard.monitoring.monitor import (
    BLOCK_REASON,
    AlertThresholds,
    SecurityMonitor,
)
from phonoguard.security.lockout import BLOCKED_DEVICES_KEY, LockoutTracker
from phonoguard.security.rate_limiter import (
    InMemoryWindowBackend,
    SlidingWindowRateLimiter,
    StoreWindowBackend,
)
from phonoguard.storage.base import KeyedLock, KeyValueStore, NamespacedStore
from phonoguard.storage.secure import SecureStorage
from phonoguard.types import Clock, system_clock

logger = logging.getLogger(__name__)

STORE_NAMESPACE = "phonoguard:"


class SecurityEngine:
    """
    Wires every phonoguard component around one store and one keyed lock.

    Attributes:
        config: The validated configuration.
        store: The namespaced store all components persist through.
        locks: Keyed mutex shared by every component.
        device: Device identity.
        cipher: Cipher for values at rest.
        secure_storage: Encrypted credential/preference storage.
        sessions: Current-session manager.
        event_log: Security event log.
        lockouts: Account lockouts.
        blocks: Device/source blocks.
        api_limiter: In-memory limiter used by the API gate.
        login_limiter: Persisted limiter counting login attempts.
        monitor: Threshold monitor.
        api_gate: Outgoing request gate.
        auth: Sign-in/sign-out wrapper around the identity provider.
        lifecycle: Foreground/background handling.

    Example:
        >>> engine = SecurityEngine.from_env(JsonFileKeyValueStore("state.json"), provider)
        >>> result = await engine.auth.sign_in("user@x.com", "Secr3tPass")
        >>> await engine.sessions.is_session_valid()
        True
    """

    def __init__(
        self,
        config: EngineConfig,
        store: KeyValueStore,
        identity_provider: IdentityProvider,
        clock: Clock | None = None,
        namespace: str = STORE_NAMESPACE,
    ) -> None:
        """
        Build the engine.

        Args:
            config: Engine configuration; validated before anything is built.
            store: Backing key-value store.
            identity_provider: Hosted authentication backend.
            clock: Millisecond clock; wall clock if omitted.
            namespace: Prefix for every key the engine writes.

        Raises:
            ConfigMissing: If identity provider configuration is absent.
            ConfigurationError: If any other setting is invalid.
        """
        config.validate()
        self.config = config
        self.clock = clock or system_clock
        self.locks = KeyedLock()
        self.store = NamespacedStore(store, namespace)
        self.identity_provider = identity_provider

        self.device = DeviceIdentity(self.store, self.locks, self.clock)
        self.key_provider = PersistedKeyProvider(self.store, self.locks)
        self.cipher: Cipher
        if config.cipher == CIPHER_AES_GCM:
            self.cipher = AesGcmCipher(self.key_provider)
        else:
            self.cipher = XorCipher(self.key_provider)
        self.secure_storage = SecureStorage(self.store, self.cipher)

        self.sessions = SessionManager(
            self.store,
            timeout_ms=config.session_timeout_ms,
            clock=self.clock,
            locks=self.locks,
            device=self.device,
            failure_threshold=config.max_login_attempts,
        )
        self.event_log = SecurityEventLog(
            self.store,
            clock=self.clock,
            locks=self.locks,
            device_id_provider=self.device.get_device_id,
            session_id_provider=self.sessions.current_session_id,
            checksum_key=config.log_checksum_key,
        )
        self.sessions.event_log = self.event_log

        self.lockouts = LockoutTracker(
            self.store,
            duration_ms=config.lockout_duration_ms,
            clock=self.clock,
            locks=self.locks,
        )
        self.blocks = LockoutTracker(
            self.store,
            duration_ms=config.block_duration_ms,
            clock=self.clock,
            locks=self.locks,
            key=BLOCKED_DEVICES_KEY,
            default_reason=BLOCK_REASON,
        )

        self.api_windows = InMemoryWindowBackend()
        self.api_limiter = SlidingWindowRateLimiter(self.api_windows, self.clock, self.locks)
        self.login_limiter = SlidingWindowRateLimiter(
            StoreWindowBackend(self.store), self.clock, self.locks
        )

        self.monitor = SecurityMonitor(
            self.event_log,
            self.lockouts,
            self.blocks,
            self.store,
            clock=self.clock,
            locks=self.locks,
            thresholds=AlertThresholds(failed_logins=config.max_login_attempts),
        )
        self.api_gate = ApiGate(
            self.api_limiter,
            self.monitor,
            device_id_provider=self.device.get_device_id,
        )
        self.auth = AuthGuard(
            identity_provider,
            self.sessions,
            self.lockouts,
            self.login_limiter,
            self.monitor,
            secure_storage=self.secure_storage,
            max_login_attempts=config.max_login_attempts,
            attempt_window_ms=config.lockout_duration_ms,
            admin_emails=config.admin_emails,
        )

        self.lifecycle = AppLifecycle()
        self.lifecycle.add_cleanup_task(self._prune_api_windows, name="api-rate-windows")
        self.lifecycle.add_cleanup_task(
            self.secure_storage.clear_cache, name="secure-storage-cache"
        )
        self.lifecycle.add_foreground_hook(self._revalidate_session, name="session-revalidation")

        logger.debug(f"Security engine initialized: {config.to_dict()}")

    @classmethod
    def from_env(
        cls,
        store: KeyValueStore,
        identity_provider: IdentityProvider,
        clock: Clock | None = None,
        environ: Mapping[str, str] | None = None,
    ) -> SecurityEngine:
        """
        Build an engine configured from ``PHONOGUARD_*`` environment variables.

        Raises:
            ConfigMissing: If required variables are absent.
        """
        return cls(EngineConfig.from_env(environ), store, identity_provider, clock=clock)

    def _prune_api_windows(self) -> None:
        removed = self.api_windows.prune(self.clock() - self.api_gate.window_ms)
        if removed:
            logger.debug(f"Pruned {removed} idle API rate windows")

    async def _revalidate_session(self) -> None:
        if not await self.sessions.is_session_valid():
            logger.info("No valid session after returning to foreground")

    async def handle_app_state(self, state: AppState) -> None:
        """Forward an OS lifecycle change to the engine."""
        await self.lifecycle.handle_state_change(state)

    async def run_maintenance(self) -> None:
        """Drop expired lockouts, blocks, old events and old alerts."""
        await self.monitor.cleanup_expired_data()
