"""
Authentication wrappers for phonoguard.

- IdentityProvider: protocol for the hosted auth backend.
- AuthGuard: lockout-aware, rate-limited sign-in/sign-out around it.
"""

from phonoguard.auth.guard import AuthGuard, SignInResult
from phonoguard.auth.identity import AuthResponse, IdentityProvider, IdentityUser

__all__ = [
    "AuthGuard",
    "AuthResponse",
    "IdentityProvider",
    "IdentityUser",
    "SignInResult",
]
