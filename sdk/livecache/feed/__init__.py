"""
Change feed layer for LiveCache.

A feed delivers change events, query results and raw subscription
payloads to the engine in order. The in-memory implementation backs
tests and local replay.
"""

from .base import (
    ChangeFeed,
    EnvelopeType,
    FeedConnectionError,
    FeedError,
    FeedRecord,
    FeedSerializationError,
    encode_envelope,
)
from .consumer import FeedConsumer
from .memory import InMemoryChangeFeed

__all__ = [
    "ChangeFeed",
    "EnvelopeType",
    "FeedConnectionError",
    "FeedConsumer",
    "FeedError",
    "FeedRecord",
    "FeedSerializationError",
    "InMemoryChangeFeed",
    "encode_envelope",
]
