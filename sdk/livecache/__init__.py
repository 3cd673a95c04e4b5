"""
LiveCache - client-side normalized cache kept in sync with a change stream.

A UI holds one engine per session. Server-pushed change events and
point-in-time query results flow through the router into a normalized
entity store and a query result index of keyed lists; the UI reads both
synchronously and watches them for changes:

    ┌─────────────┐     ┌─────────────┐     ┌───────────────────┐
    │ ChangeFeed  │────▶│FeedConsumer │────▶│ ChangeEventRouter │
    └─────────────┘     └─────────────┘     └─────────┬─────────┘
                                                      │
                        ┌─────────────────────────────┼─────────────────┐
                        ▼                             ▼                 ▼
                  ┌─────────────┐          ┌──────────────────┐  ┌─────────────┐
                  │ EntityStore │◀─────────│ QueryResultIndex │  │ Accumulator │
                  └──────┬──────┘          └────────┬─────────┘  └─────────────┘
                         └──────────┬───────────────┘
                                    ▼
                             ┌───────────────┐
                             │ WatchRegistry │──▶ UI
                             └───────────────┘

Invariants:
    - Each entity exists once, keyed by (type, id); lists hold References
    - An entity deleted from the store is absent from every list
    - Streaming fragments are bounded in count and lifetime
    - Malformed events are dropped and reported, never raised

How to change safely:
    - New event kinds go through events.py and the router dispatch together
    - New list behaviors are new MergePolicy values, never special cases
      in the router

Usage:
    >>> from sdk.livecache import CacheEngine, default_routes
    >>> engine = CacheEngine(routes=default_routes())
    >>> engine.route_subscription("flowCreated", {"id": "1", "title": "Scan"})
    >>> engine.resolve("flows")
"""

from ._version import __version__
from .config import EngineConfig, ObservabilityConfig, StreamingConfig
from .engine import CacheEngine
from .errors import (
    ConfigurationError,
    ContractViolationError,
    LiveCacheError,
    MalformedEventError,
)
from .feed import FeedConsumer, InMemoryChangeFeed
from .router import (
    ChangeEventRouter,
    EventRoute,
    RouteAction,
    RouteResult,
    RouteTable,
    default_routes,
)
from .store import (
    NO_DATA,
    Entity,
    EntityStore,
    MergePolicy,
    QueryResultIndex,
    Reference,
    list_key,
)
from .streaming import EvictionPolicy, StreamingAccumulator
from .watch import Watch, WatchRegistry

__all__ = [
    # Engine
    "CacheEngine",
    "EngineConfig",
    "StreamingConfig",
    "ObservabilityConfig",
    # Store
    "EntityStore",
    "Entity",
    "Reference",
    "QueryResultIndex",
    "MergePolicy",
    "NO_DATA",
    "list_key",
    # Streaming
    "StreamingAccumulator",
    "EvictionPolicy",
    # Routing
    "ChangeEventRouter",
    "RouteAction",
    "RouteResult",
    "RouteTable",
    "EventRoute",
    "default_routes",
    # Watches
    "WatchRegistry",
    "Watch",
    # Feed
    "InMemoryChangeFeed",
    "FeedConsumer",
    # Errors
    "LiveCacheError",
    "ContractViolationError",
    "MalformedEventError",
    "ConfigurationError",
    "__version__",
]
