"""
Test Suite

Contains unit tests for the relay.

Structure:
- tests/unit/: Tests for individual components (normalization, fan-out,
  reconnection, sessions, HTTP/WebSocket surface). Network is always mocked.

Uses pytest with pytest-asyncio for testing async functionality.
"""
