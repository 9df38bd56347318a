"""
Test Suite

Structure:
- tests/unit/: Tests for individual components (adapters, fetcher, stream
  manager, candle series, indicators, session orchestration, API)

Uses pytest with pytest-asyncio for testing async functionality. Nothing here
talks to a real exchange: HTTP and WebSocket seams are monkeypatched or faked.
"""
