"""
Test Suite

tests/unit/ holds one module per component. Upstream APIs are never called:
API clients are tested by monkeypatching their request layer, and the service,
stream and HTTP layers run against in-memory fake sources (tests/unit/conftest.py).

Uses pytest with pytest-asyncio for testing async functionality.
"""
