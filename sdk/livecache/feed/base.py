"""
Base protocol and types for change feeds.

A change feed is the engine's view of the transport: an ordered stream of
records, each carrying one change event, one query result, or one raw
payload of a named server subscription. Establishing and re-establishing
the underlying connection is the transport's job, not the feed's.

Record values are JSON envelopes:

    {"type": "event", "event": {"kind": "added", "type": "Log", ...}}
    {"type": "hydration", "hydration": {"list_key": "logs:flowId=1", "items": [...]}}
    {"type": "subscription", "subscription": "flowCreated",
     "payload": {...}, "variables": {...}}

Invariants:
    - Records of one feed are delivered in publish order
    - Offsets increase by one per record
    - No ordering is promised between two different feeds

How to change safely:
    - Protocol changes require updating all implementations
    - Add new envelope types with a distinct "type" value
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, AsyncIterator, Dict, Optional, Protocol, runtime_checkable


class FeedError(Exception):
    """Base exception for change feed operations."""
    pass


class FeedConnectionError(FeedError):
    """The feed is not connected."""
    pass


class FeedSerializationError(FeedError):
    """Failed to serialize/deserialize a feed record."""
    pass


class EnvelopeType(Enum):
    """What a feed record carries."""

    EVENT = "event"
    HYDRATION = "hydration"
    SUBSCRIPTION = "subscription"


@dataclass
class FeedRecord:
    """A record from a change feed.

    Attributes:
        offset: Position of the record in its feed
        value: JSON-encoded envelope
        timestamp_ms: When the record was published (Unix ms)
        headers: Optional transport metadata
    """
    offset: int
    value: bytes
    timestamp_ms: int
    headers: Dict[str, bytes] = field(default_factory=dict)

    def value_json(self) -> Any:
        """Parse value as JSON.

        Raises:
            FeedSerializationError: If value is not valid JSON
        """
        try:
            return json.loads(self.value.decode('utf-8'))
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise FeedSerializationError(f"Failed to parse record value as JSON: {e}")

    def __str__(self) -> str:
        return f"FeedRecord(offset={self.offset})"


def encode_envelope(envelope_type: EnvelopeType, body: Dict[str, Any]) -> bytes:
    """Encode an envelope for publishing.

    Example:
        >>> encode_envelope(EnvelopeType.EVENT, {"event": {"kind": "deleted", "type": "Log", "id": "5"}})
        b'{"type": "event", "event": {...}}'
    """
    try:
        return json.dumps({"type": envelope_type.value, **body}).encode('utf-8')
    except (TypeError, ValueError) as e:
        raise FeedSerializationError(f"Failed to encode envelope: {e}")


@runtime_checkable
class ChangeFeed(Protocol):
    """Protocol for change feed implementations.

    Usage:
        >>> await feed.connect()
        >>> async for record in feed.subscribe():
        ...     consumer.process_record(record)
    """

    @property
    def is_connected(self) -> bool:
        """Whether the feed is connected."""
        ...

    async def connect(self) -> None:
        """Open the feed."""
        ...

    async def close(self) -> None:
        """Close the feed and end every subscription."""
        ...

    async def publish(
        self,
        value: bytes,
        headers: Optional[Dict[str, bytes]] = None,
    ) -> int:
        """Append a record and return its offset."""
        ...

    def subscribe(self, start_offset: int = 0) -> AsyncIterator[FeedRecord]:
        """Yield records in order, starting at start_offset."""
        ...
