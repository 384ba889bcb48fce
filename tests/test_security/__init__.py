"""
Security control tests for phonoguard.

This package contains tests for:
- Sliding window rate limiting
- Account lockouts and device blocks
"""
