"""
Shared test fixtures for the eventrelay library.

This module provides:
- InMemoryStreams: a shared in-memory broker speaking the Redis Streams
  commands eventrelay uses
- Test handlers (RecordingHandler, FailingHandler, FlakyHandler, ...)
- eventually(): poll a condition until it holds

Usage:
    from tests.fixtures import InMemoryStreams, RecordingHandler, eventually
"""

from tests.fixtures.handlers import (
    FailingHandler,
    FlakyHandler,
    RecordingHandler,
    SlowHandler,
    SyncRecordingHandler,
)
from tests.fixtures.streams import InMemoryStreams, PendingEntry, eventually

__all__ = [
    # Broker
    "InMemoryStreams",
    "PendingEntry",
    "eventually",
    # Handlers
    "FailingHandler",
    "FlakyHandler",
    "RecordingHandler",
    "SlowHandler",
    "SyncRecordingHandler",
]
