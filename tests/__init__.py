"""
Labelwise Test Suite
====================

Test organization:
- tests/unit/          - Unit tests (fake AI providers, in-memory SQLite)
- tests/services/      - Service routes through the ASGI app

Run tests:
    pytest                          # All tests
    pytest tests/unit               # Unit tests only
    pytest --cov=shared             # With coverage
"""
