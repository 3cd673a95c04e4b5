"""
In-memory change feed implementation.

This module provides a simple in-memory feed for:
- Unit and integration tests
- Local development without a live server connection
- Replaying recorded event sequences

Invariants:
    - All data is lost on process exit
    - Records are delivered in publish order, like a single connection

How to change safely:
    - Keep the interface compatible with the ChangeFeed protocol
    - Add features to help with testing scenarios
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, AsyncIterator, Dict, List, Optional

from .base import (
    EnvelopeType,
    FeedConnectionError,
    FeedRecord,
    encode_envelope,
)

logger = logging.getLogger(__name__)


class InMemoryChangeFeed:
    """In-memory implementation of ChangeFeed.

    Example:
        >>> feed = InMemoryChangeFeed()
        >>> await feed.connect()
        >>> await feed.publish_event({"kind": "added", "type": "Log", "id": "1"})
        >>> async for record in feed.subscribe():
        ...     print(record.value)
    """

    def __init__(self, poll_timeout: float = 1.0) -> None:
        """Initialize the feed.

        Args:
            poll_timeout: Seconds a subscriber waits before re-checking
                whether the feed was closed
        """
        self.poll_timeout = poll_timeout
        self._records: List[FeedRecord] = []
        self._connected = False
        self._lock = asyncio.Lock()
        self._new_record = asyncio.Event()

    @property
    def is_connected(self) -> bool:
        """Whether connected (true after connect(), until close())."""
        return self._connected

    async def connect(self) -> None:
        """Connect (no-op for in-memory)."""
        self._connected = True
        logger.debug("InMemoryChangeFeed connected")

    async def close(self) -> None:
        """Close the feed; active subscriptions end."""
        self._connected = False
        self._new_record.set()
        logger.debug("InMemoryChangeFeed closed")

    async def publish(
        self,
        value: bytes,
        headers: Optional[Dict[str, bytes]] = None,
    ) -> int:
        """Append a record.

        Args:
            value: JSON-encoded envelope
            headers: Optional headers

        Returns:
            Offset of the new record
        """
        if not self._connected:
            raise FeedConnectionError("Not connected")

        async with self._lock:
            offset = len(self._records)
            self._records.append(
                FeedRecord(
                    offset=offset,
                    value=value,
                    timestamp_ms=int(time.time() * 1000),
                    headers=headers or {},
                )
            )
            self._new_record.set()

        logger.debug("Record published to in-memory feed", extra={"offset": offset})
        return offset

    async def publish_event(self, event: Dict[str, Any]) -> int:
        """Publish a change event envelope."""
        return await self.publish(encode_envelope(EnvelopeType.EVENT, {"event": event}))

    async def publish_hydration(self, hydration: Dict[str, Any]) -> int:
        """Publish a query result envelope."""
        return await self.publish(
            encode_envelope(EnvelopeType.HYDRATION, {"hydration": hydration})
        )

    async def publish_subscription(
        self,
        subscription: str,
        payload: Dict[str, Any],
        variables: Optional[Dict[str, Any]] = None,
    ) -> int:
        """Publish a raw named-subscription payload envelope."""
        return await self.publish(
            encode_envelope(
                EnvelopeType.SUBSCRIPTION,
                {"subscription": subscription, "payload": payload, "variables": variables or {}},
            )
        )

    async def subscribe(self, start_offset: int = 0) -> AsyncIterator[FeedRecord]:
        """Yield records in publish order until the feed is closed.

        Args:
            start_offset: First offset to deliver

        Yields:
            FeedRecord for each published record
        """
        if not self._connected:
            raise FeedConnectionError("Not connected")

        position = start_offset
        while self._connected:
            if position < len(self._records):
                record = self._records[position]
                position += 1
                yield record
                continue

            self._new_record.clear()
            try:
                await asyncio.wait_for(self._new_record.wait(), timeout=self.poll_timeout)
            except asyncio.TimeoutError:
                pass

    # Testing helpers

    def get_all_records(self) -> List[FeedRecord]:
        """Get all published records (testing helper)."""
        return list(self._records)

    def get_record_count(self) -> int:
        """Get the number of published records (testing helper)."""
        return len(self._records)

    def clear(self) -> None:
        """Drop all records (testing helper)."""
        self._records.clear()
