"""
phonoguard: on-device security state engine for a repair-shop booking app.

phonoguard keeps the client-side security bookkeeping of a mobile storefront
consistent: session lifecycle, sliding-window rate limiting, account lockout,
checksummed security-event logging with threshold monitoring, and at-rest
obfuscation of cached credentials and preferences. Everything persists
through an abstract asynchronous key-value store.

Basic Usage:
    >>> from phonoguard import SecurityEngine, EngineConfig, InMemoryKeyValueStore
    >>>
    >>> engine = SecurityEngine(
    ...     EngineConfig(identity_url="https://auth.example.com", identity_anon_key="anon"),
    ...     InMemoryKeyValueStore(),
    ...     identity_provider,
    ... )
    >>>
    >>> result = await engine.auth.sign_in("user@x.com", "Secr3tPass")
    >>> if not result.success:
    ...     print(result.error)
    >>>
    >>> info = await engine.sessions.get_session_info()
    >>> dashboard = await engine.monitor.get_security_dashboard()
"""

__version__ = "0.1.0"

from phonoguard.audit import (
    EventType,
    SecurityEvent,
    SecurityEventLog,
    Severity,
    data_access,
    login_failure,
    suspicious_activity,
)
from phonoguard.auth import AuthGuard, AuthResponse, IdentityProvider, IdentityUser, SignInResult
from phonoguard.config import EngineConfig
from phonoguard.context import (
    AppLifecycle,
    AppState,
    DeviceIdentity,
    SessionInfo,
    SessionManager,
)
from phonoguard.crypto import AesGcmCipher, StaticKeyProvider, XorCipher
from phonoguard.engine import SecurityEngine
from phonoguard.exceptions import (
    AccountLockedError,
    CipherError,
    ConfigMissing,
    ConfigurationError,
    IdentityProviderError,
    InputValidationError,
    InvalidIdentifier,
    PhonoguardError,
    RateLimitExceeded,
    RequestRejected,
    StoreUnavailable,
)
from phonoguard.guards import ApiGate, ApiRequest, GateResult
from phonoguard.messages import user_message
from phonoguard.monitoring import SecurityAlert, SecurityDashboard, SecurityMonitor
from phonoguard.security import (
    InMemoryWindowBackend,
    LockoutTracker,
    RateLimitResult,
    SlidingWindowRateLimiter,
    StoreWindowBackend,
)
from phonoguard.storage import (
    InMemoryKeyValueStore,
    JsonFileKeyValueStore,
    KeyedLock,
    KeyValueStore,
    NamespacedStore,
    SecureStorage,
)

__all__ = [
    "__version__",
    # Engine
    "SecurityEngine",
    "EngineConfig",
    # Storage
    "KeyValueStore",
    "InMemoryKeyValueStore",
    "JsonFileKeyValueStore",
    "NamespacedStore",
    "KeyedLock",
    "SecureStorage",
    # Crypto
    "XorCipher",
    "AesGcmCipher",
    "StaticKeyProvider",
    # Security
    "SlidingWindowRateLimiter",
    "InMemoryWindowBackend",
    "StoreWindowBackend",
    "RateLimitResult",
    "LockoutTracker",
    # Context
    "SessionManager",
    "SessionInfo",
    "DeviceIdentity",
    "AppLifecycle",
    "AppState",
    # Audit
    "SecurityEventLog",
    "SecurityEvent",
    "EventType",
    "Severity",
    "login_failure",
    "suspicious_activity",
    "data_access",
    # Monitoring
    "SecurityMonitor",
    "SecurityAlert",
    "SecurityDashboard",
    # Guards & auth
    "ApiGate",
    "ApiRequest",
    "GateResult",
    "AuthGuard",
    "AuthResponse",
    "IdentityProvider",
    "IdentityUser",
    "SignInResult",
    "user_message",
    # Exceptions
    "PhonoguardError",
    "StoreUnavailable",
    "CipherError",
    "InvalidIdentifier",
    "ConfigurationError",
    "ConfigMissing",
    "InputValidationError",
    "RateLimitExceeded",
    "AccountLockedError",
    "RequestRejected",
    "IdentityProviderError",
]
