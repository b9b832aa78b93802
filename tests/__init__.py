"""Dayline Test Suite

Test organization:
- unit/: Unit tests for individual modules
  - security/: Secret store (encryption, tamper detection, key rotation)
  - oauth/: PKCE flow, refresh and revocation
  - providers/: Google Calendar and iCal feed providers
  - cache/: Event cache repository
  - sync/: Sync orchestration, TTL and partial failure
  - timeline/: Column layout and event status
- integration/: HTTP API tests

Running tests:
    # All tests
    pytest

    # Specific module
    pytest tests/unit/timeline/
"""
