"""
phonoguard test suite.

This package contains tests for the phonoguard security engine:
- Storage and cipher tests
- Session and lifecycle tests
- Security event log and monitor tests
- Request gate, validator and sign-in tests
"""
