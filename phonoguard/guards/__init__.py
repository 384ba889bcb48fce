"""
Input guards for phonoguard.

- validators: sanitization, suspicious-content detection, email, phone and
  password checks, secure tokens.
- ApiGate: per-request rate limiting and validation before data API calls.
"""

from phonoguard.guards.api_gate import (
    DEFAULT_ALLOWED_ENDPOINTS,
    DEFAULT_ALLOWED_METHODS,
    ApiGate,
    ApiRequest,
    GateResult,
)
from phonoguard.guards.validators import (
    SUSPICIOUS_PATTERNS,
    PasswordCheck,
    PasswordStrength,
    contains_suspicious_content,
    generate_secure_token,
    is_valid_email,
    is_valid_phone,
    password_score,
    sanitize_input,
    sanitize_value,
    validate_password,
)

__all__ = [
    "DEFAULT_ALLOWED_ENDPOINTS",
    "DEFAULT_ALLOWED_METHODS",
    "SUSPICIOUS_PATTERNS",
    "ApiGate",
    "ApiRequest",
    "GateResult",
    "PasswordCheck",
    "PasswordStrength",
    "contains_suspicious_content",
    "generate_secure_token",
    "is_valid_email",
    "is_valid_phone",
    "password_score",
    "sanitize_input",
    "sanitize_value",
    "validate_password",
]
