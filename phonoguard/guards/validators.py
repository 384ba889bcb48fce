"""
Input sanitization and credential validation.

Pattern-based helpers used by the API gate and the auth guard: stripping
markup, script URLs, inline event handlers and SQL-ish tokens from user
input, detecting suspicious payloads, and validating emails, phone numbers
and passwords.

Example:
    >>> from phonoguard.guards import sanitize_input, validate_password
    >>>
    >>> sanitize_input("  <b>Screen</b> cracked; ")
    'bScreenb cracked'
    >>> check = validate_password("Tr1ckyHorse")
    >>> check.is_valid, check.strength
    (True, <PasswordStrength.STRONG: 'strong'>)
"""

from __future__ import annotations

import logging
import re
import secrets
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from phonoguard.exceptions import InputValidationError

logger = logging.getLogger(__name__)

DEFAULT_MAX_INPUT_LENGTH = 1000
MAX_EMAIL_LENGTH = 254
MIN_PASSWORD_LENGTH = 6
MAX_PASSWORD_LENGTH = 128

# Applied in order by sanitize_input
_SANITIZE_STEPS: list[re.Pattern[str]] = [
    re.compile(r"[<>]"),
    re.compile(r"javascript:", re.IGNORECASE),
    re.compile(r"on\w+=", re.IGNORECASE),
    re.compile(r"('|;|--|\s+(or|and)\s+)", re.IGNORECASE),
    re.compile(r"[^\w\s\-@.,]", re.ASCII),
]

SUSPICIOUS_PATTERNS: list[re.Pattern[str]] = [
    re.compile(r"<script\b[^<]*(?:(?!</script>)<[^<]*)*</script>", re.IGNORECASE),
    re.compile(r"javascript:", re.IGNORECASE),
    re.compile(r"on\w+\s*=", re.IGNORECASE),
    re.compile(r"union\s+select", re.IGNORECASE),
    re.compile(r"drop\s+table", re.IGNORECASE),
    re.compile(r"insert\s+into", re.IGNORECASE),
    re.compile(r"delete\s+from", re.IGNORECASE),
    re.compile(r"update\s+set", re.IGNORECASE),
]

_EMAIL_RE = re.compile(r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$")

_COMMON_PASSWORD_PATTERNS = [
    re.compile(r"123456"),
    re.compile(r"password", re.IGNORECASE),
    re.compile(r"qwerty", re.IGNORECASE),
    re.compile(r"admin", re.IGNORECASE),
    re.compile(r"letmein", re.IGNORECASE),
    re.compile(r"welcome", re.IGNORECASE),
]


def sanitize_input(text: str, max_length: int = DEFAULT_MAX_INPUT_LENGTH) -> str:
    """
    Strip markup, script URLs, event handlers and SQL-ish tokens from text.

    Args:
        text: Raw user input.
        max_length: Longest input accepted, measured before sanitizing.

    Returns:
        The sanitized text. Empty input returns an empty string.

    Raises:
        InputValidationError: If the input is longer than ``max_length``.
    """
    if not text:
        return ""
    if len(text) > max_length:
        raise InputValidationError(f"Input exceeds maximum length of {max_length}")

    result = text.strip()
    for pattern in _SANITIZE_STEPS:
        result = pattern.sub("", result)
    return result


def sanitize_value(value: Any, max_length: int = 10_000) -> Any:
    """
    Recursively sanitize every string in a JSON-like value.

    Dictionary keys are sanitized as well as values. Non-string scalars are
    returned unchanged.
    """
    if isinstance(value, str):
        return sanitize_input(value, max_length)
    if isinstance(value, list):
        return [sanitize_value(v, max_length) for v in value]
    if isinstance(value, dict):
        return {
            sanitize_input(str(k), max_length): sanitize_value(v, max_length)
            for k, v in value.items()
        }
    return value


def contains_suspicious_content(text: str) -> bool:
    """Whether text matches any known script or SQL injection pattern."""
    return any(pattern.search(text) for pattern in SUSPICIOUS_PATTERNS)


def is_valid_email(email: str) -> bool:
    if not email or len(email) > MAX_EMAIL_LENGTH:
        return False
    if not _EMAIL_RE.match(email):
        return False
    if ".." in email or email.startswith(".") or email.endswith("."):
        return False
    domain = email.split("@", 1)[1]
    return not (domain.startswith(".") or domain.endswith("."))


def is_valid_phone(phone: str) -> bool:
    """
    Loose international phone check: 10 to 15 digits once formatting is
    removed, not starting with 0.
    """
    if not phone:
        return False
    digits = re.sub(r"\D", "", phone)
    if not 10 <= len(digits) <= 15:
        return False
    return digits[0] != "0"


class PasswordStrength(Enum):
    """Strength classification for a password that passed validation."""

    WEAK = "weak"
    MEDIUM = "medium"
    STRONG = "strong"
    VERY_STRONG = "very_strong"


@dataclass
class PasswordCheck:
    """
    Result of password validation.

    Attributes:
        is_valid: True when no rule was violated.
        errors: One message per violated rule.
        strength: Strength class; always WEAK for invalid passwords.
    """

    is_valid: bool
    errors: list[str] = field(default_factory=list)
    strength: PasswordStrength = PasswordStrength.WEAK


def password_score(password: str) -> int:
    """Heuristic 0-100 score from length, character variety and entropy."""
    score = 0
    if len(password) >= 6:
        score += 20
    if len(password) >= 12:
        score += 10
    if len(password) >= 16:
        score += 10

    has_lower = re.search(r"[a-z]", password) is not None
    has_upper = re.search(r"[A-Z]", password) is not None
    has_digit = re.search(r"\d", password) is not None
    if has_lower:
        score += 10
    if has_upper:
        score += 10
    if has_digit:
        score += 10
    if re.search(r'[!@#$%^&*(),.?":{}|<>]', password):
        score += 5
    if has_lower and has_upper and has_digit:
        score += 15
    if len(set(password)) >= 8:
        score += 10

    return min(score, 100)


def validate_password(password: str) -> PasswordCheck:
    """
    Check a new password against length, character and pattern rules.

    Example:
        >>> validate_password("abc").errors[0]
        'Password must be at least 6 characters long'
    """
    errors: list[str] = []

    if len(password) < MIN_PASSWORD_LENGTH:
        errors.append(f"Password must be at least {MIN_PASSWORD_LENGTH} characters long")
    if len(password) > MAX_PASSWORD_LENGTH:
        errors.append(f"Password is too long (maximum {MAX_PASSWORD_LENGTH} characters)")

    if not re.search(r"[A-Z]", password):
        errors.append("Password must contain at least one uppercase letter")
    if not re.search(r"[a-z]", password):
        errors.append("Password must contain at least one lowercase letter")
    if not re.search(r"\d", password):
        errors.append("Password must contain at least one number")

    if any(p.search(password) for p in _COMMON_PASSWORD_PATTERNS):
        errors.append("Password contains common patterns that are easy to guess")
    if re.search(r"(.)\1{2,}", password):
        errors.append("Password cannot contain 3 or more consecutive identical characters")

    if errors:
        return PasswordCheck(is_valid=False, errors=errors)

    score = password_score(password)
    if score >= 90:
        strength = PasswordStrength.VERY_STRONG
    elif score >= 75:
        strength = PasswordStrength.STRONG
    elif score >= 60:
        strength = PasswordStrength.MEDIUM
    else:
        strength = PasswordStrength.WEAK
    return PasswordCheck(is_valid=True, strength=strength)


def generate_secure_token(length: int = 32) -> str:
    """Random hex token of ``length`` bytes (``2 * length`` characters)."""
    if length < 1:
        raise ValueError(f"length must be >= 1, got {length}")
    return secrets.token_hex(length)
