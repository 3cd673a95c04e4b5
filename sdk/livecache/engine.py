"""
LiveCache engine - wiring of all cache components.

The engine constructs one entity store, one query result index, one
streaming accumulator, one router and one watch registry, and exposes
the read/subscribe interface the UI layer uses:

    ┌───────────────┐    ┌────────────┐    ┌──────────────────────┐
    │ change events │───▶│   Router   │───▶│ StreamingAccumulator │
    │ query results │    └─────┬──────┘    └──────────────────────┘
    └───────────────┘          │
                  ┌────────────┴───────────┐
                  ▼                        ▼
            ┌─────────────┐        ┌──────────────────┐
            │ EntityStore │◀───────│ QueryResultIndex │
            └──────┬──────┘        └────────┬─────────┘
                   └──────────┬─────────────┘
                              ▼
                       ┌───────────────┐
                       │ WatchRegistry │──▶ UI callbacks
                       └───────────────┘

One engine lives for one application session. Nothing is global: tests
and embedders construct as many engines as they need.

Invariants:
    - Reads are synchronous and never touch the network
    - Watch callbacks run after an event is fully applied
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from .config import EngineConfig
from .errors import MalformedEventError
from .router.events import QueryHydration
from .router.router import ChangeEventRouter, ErrorSink, RouteResult
from .router.routes import RouteTable
from .store.entity_store import Entity, EntityStore, Reference
from .store.query_index import ListDeclaration, MergePolicy, QueryResultIndex
from .streaming.accumulator import StreamingAccumulator
from .streaming.eviction import Clock, EvictionPolicy
from .watch import EntityCallback, ListCallback, Watch, WatchRegistry

logger = logging.getLogger(__name__)


class CacheEngine:
    """Client-side normalized cache kept in sync with a change stream.

    Example:
        >>> engine = CacheEngine()
        >>> engine.route({"kind": "added", "type": "Log", "id": "5",
        ...               "fields": {"text": "a"}, "listKey": "logs:flow1"})
        >>> engine.resolve("logs:flow1")
        (Reference(type='Log', id='5'),)
    """

    def __init__(
        self,
        config: EngineConfig | None = None,
        routes: RouteTable | None = None,
        error_sink: ErrorSink | None = None,
        clock: Clock | None = None,
    ) -> None:
        """Initialize the engine.

        Args:
            config: Engine configuration (defaults if not provided)
            routes: Subscription route table for route_subscription()
            error_sink: Receives dropped events; logs them if omitted
            clock: Monotonic clock for streaming TTLs (testing hook)
        """
        self.config = config or EngineConfig()
        streaming = self.config.streaming
        if clock is None:
            policy = streaming.eviction_policy()
        else:
            policy = EvictionPolicy.from_millis(
                streaming.max_streaming_entries, streaming.streaming_ttl_ms, clock
            )

        self.store = EntityStore()
        self.index = QueryResultIndex(self.store)
        self.accumulator = StreamingAccumulator(policy)
        self.router = ChangeEventRouter(self.store, self.index, self.accumulator, error_sink)
        self.watches = WatchRegistry(self.store, self.index)
        self.routes = routes

        if routes is not None:
            routes.declare_lists(self.index)

    # Write side

    def route(self, event: Any) -> RouteResult:
        """Apply one change event (typed or raw mapping)."""
        with self.watches.batch():
            return self.router.route(event)

    def route_subscription(
        self,
        subscription: str,
        payload: Mapping[str, Any],
        variables: Mapping[str, Any] | None = None,
    ) -> RouteResult:
        """Apply a raw payload pushed on a named server subscription.

        Unknown subscriptions and malformed payloads are dropped and
        reported like any malformed event.
        """
        if self.routes is None:
            return self.router.reject(
                payload,
                MalformedEventError(
                    f"No route table configured for subscription '{subscription}'",
                    errors=["no route table"],
                ),
            )
        try:
            event = self.routes.translate(subscription, payload, variables)
        except MalformedEventError as e:
            return self.router.reject(payload, e)
        return self.route(event)

    def hydrate(self, hydration: QueryHydration | Mapping[str, Any]) -> RouteResult:
        """Apply a point-in-time query result."""
        with self.watches.batch():
            return self.router.hydrate(hydration)

    def declare_list(
        self,
        name: str,
        policy: MergePolicy,
        sort_field: str | None = None,
    ) -> ListDeclaration:
        """Declare the merge policy of every list with this name."""
        return self.index.declare(name, policy, sort_field)

    def evict_list(self, key: str) -> bool:
        """Forget a list so it reads as NO_DATA until refetched."""
        with self.watches.batch():
            return self.index.evict(key)

    def sweep(self) -> int:
        """Drop expired streaming buffers; returns how many were dropped."""
        return len(self.accumulator.sweep())

    # Read side

    def read(self, type: str, id: str) -> Entity | None:
        """Get an entity, or None if absent."""
        return self.store.read(type, id)

    def resolve(self, key: str) -> Any:
        """Get the References of a list, or NO_DATA if never fetched."""
        return self.index.resolve(key)

    def resolve_entities(self, key: str) -> Any:
        """Get the entities of a list, or NO_DATA if never fetched."""
        return self.index.resolve_entities(key)

    def streaming_value(self, type: str, id: str) -> dict[str, Any] | None:
        """Cumulative fragment fields of an entity still streaming, or None."""
        return self.accumulator.peek(Reference(type, id))

    # Subscribe side

    def watch_entity(self, type: str, id: str, callback: EntityCallback) -> Watch:
        """Call callback(ref, entity_or_None) whenever the entity changes."""
        return self.watches.watch_entity(type, id, callback)

    def watch_list(self, key: str, callback: ListCallback) -> Watch:
        """Call callback(key, refs_or_NO_DATA) whenever the list view changes."""
        return self.watches.watch_list(key, callback)

    @property
    def stats(self) -> dict[str, Any]:
        """Get engine statistics."""
        return {
            "entities": len(self.store),
            "lists": len(self.index),
            "streaming": self.accumulator.stats,
            "router": self.router.stats,
            "watchers": self.watches.watcher_count,
        }
