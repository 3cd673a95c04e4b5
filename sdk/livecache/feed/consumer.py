"""
Change feed consumer for LiveCache.

The FeedConsumer drains a ChangeFeed into a CacheEngine. It:
1. Reads records from the feed in order
2. Decodes each record's envelope
3. Hands it to the engine (route, route_subscription or hydrate)
4. Periodically sweeps expired streaming buffers

Invariants:
    - Records are applied in feed order, one at a time, each to completion
    - A record that fails to decode or apply is counted and skipped;
      it never stops the loop
    - Sweeps run between records, never during one

How to change safely:
    - Add new envelope types to EnvelopeType and _dispatch together
    - Test with malformed records injected between valid ones
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import Any

from ..engine import CacheEngine
from ..errors import MalformedEventError
from ..router.router import RouteAction, RouteResult
from .base import ChangeFeed, EnvelopeType, FeedRecord, FeedSerializationError

logger = logging.getLogger(__name__)


class FeedConsumer:
    """Consumes a change feed and applies it to an engine.

    Thread safety:
        The consumer is designed to run as a single task per feed.

    Example:
        >>> consumer = FeedConsumer(feed, engine)
        >>> await consumer.start()  # Runs until stopped or the feed closes
    """

    def __init__(
        self,
        feed: ChangeFeed,
        engine: CacheEngine,
        sweep_interval_seconds: float | None = None,
        start_offset: int = 0,
    ) -> None:
        """Initialize the consumer.

        Args:
            feed: Change feed to consume from
            engine: Engine receiving the records
            sweep_interval_seconds: Seconds between streaming sweeps
                (engine config value if None, 0 disables sweeping)
            start_offset: First feed offset to consume
        """
        self.feed = feed
        self.engine = engine
        if sweep_interval_seconds is None:
            sweep_interval_seconds = engine.config.sweep_interval_seconds
        self.sweep_interval_seconds = sweep_interval_seconds
        self.start_offset = start_offset

        self._running = False
        self._processed_count = 0
        self._error_count = 0
        self._swept_count = 0
        self._last_offset: int | None = None

    async def start(self) -> None:
        """Start the consumer loop.

        This runs until stop() is called or the feed is closed.
        """
        if self._running:
            logger.warning("Feed consumer already running")
            return

        self._running = True
        logger.info("Starting feed consumer", extra={"start_offset": self.start_offset})

        sweeper = None
        if self.sweep_interval_seconds > 0:
            sweeper = asyncio.create_task(self._sweep_loop())

        try:
            async for record in self.feed.subscribe(self.start_offset):
                if not self._running:
                    break

                result = self.process_record(record)
                self._last_offset = record.offset

                if result.success:
                    self._processed_count += 1
                else:
                    self._error_count += 1
                    logger.debug(
                        "Skipped feed record",
                        extra={"offset": record.offset, "error": result.error},
                    )

        except asyncio.CancelledError:
            logger.info("Feed consumer cancelled")
        except Exception as e:
            logger.error(f"Feed consumer error: {e}", exc_info=True)
            raise

        finally:
            self._running = False
            if sweeper is not None:
                sweeper.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await sweeper

    async def stop(self) -> None:
        """Stop the consumer loop."""
        self._running = False
        logger.info("Stopping feed consumer")

    def process_record(self, record: FeedRecord) -> RouteResult:
        """Decode and apply a single feed record.

        Args:
            record: Feed record to process

        Returns:
            RouteResult; DROPPED if the record could not be decoded
        """
        try:
            envelope = record.value_json()
        except FeedSerializationError as e:
            return self.engine.router.reject(
                record.value, MalformedEventError(str(e), errors=["invalid json"])
            )

        try:
            return self._dispatch(envelope)
        except MalformedEventError as e:
            return self.engine.router.reject(envelope, e)
        except Exception as e:
            logger.error(f"Error processing record: {e}", exc_info=True)
            return RouteResult(action=RouteAction.DROPPED, error=str(e))

    def _dispatch(self, envelope: Any) -> RouteResult:
        if not isinstance(envelope, dict):
            raise MalformedEventError(
                "Feed record must be a JSON object", errors=["not an object"]
            )

        try:
            envelope_type = EnvelopeType(envelope.get("type"))
        except ValueError:
            raise MalformedEventError(
                f"Unknown envelope type: {envelope.get('type')!r}",
                errors=["type: unknown envelope type"],
            ) from None

        if envelope_type == EnvelopeType.EVENT:
            return self.engine.route(envelope.get("event"))
        if envelope_type == EnvelopeType.HYDRATION:
            return self.engine.hydrate(envelope.get("hydration") or {})

        subscription = envelope.get("subscription")
        payload = envelope.get("payload")
        if not isinstance(subscription, str) or not isinstance(payload, dict):
            raise MalformedEventError(
                "Subscription envelope needs 'subscription' and 'payload'",
                errors=["subscription or payload missing"],
            )
        return self.engine.route_subscription(subscription, payload, envelope.get("variables"))

    async def _sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(self.sweep_interval_seconds)
            dropped = self.engine.sweep()
            self._swept_count += dropped
            if dropped:
                logger.debug("Swept expired streaming buffers", extra={"dropped": dropped})

    @property
    def stats(self) -> dict[str, Any]:
        """Get consumer statistics."""
        return {
            "running": self._running,
            "processed_count": self._processed_count,
            "error_count": self._error_count,
            "swept_count": self._swept_count,
            "last_offset": self._last_offset,
        }
