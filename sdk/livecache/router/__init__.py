"""
Router module for LiveCache - change event classification and dispatch.

This module handles:
- Typed change events (added, updated, deleted, partial_update)
- Validation of raw transport payloads at the router boundary
- Dispatch to the entity store, query index and streaming accumulator
- Mapping named server subscriptions onto change events

Invariants:
    - Malformed events are dropped and reported, never raised
    - Duplicate Added events are idempotent
"""

from .events import (
    AddedEvent,
    DeletedEvent,
    EventKind,
    HydrationItem,
    PartialUpdateEvent,
    QueryHydration,
    UpdatedEvent,
    parse_event,
)
from .router import ChangeEventRouter, RouteAction, RouteResult, log_error_sink
from .routes import EventRoute, RouteTable, default_routes

__all__ = [
    "AddedEvent",
    "DeletedEvent",
    "EventKind",
    "HydrationItem",
    "PartialUpdateEvent",
    "QueryHydration",
    "UpdatedEvent",
    "parse_event",
    "ChangeEventRouter",
    "RouteAction",
    "RouteResult",
    "log_error_sink",
    "EventRoute",
    "RouteTable",
    "default_routes",
]
