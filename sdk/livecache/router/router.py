"""
Change event router for LiveCache.

The router classifies every inbound change event and applies it to the
entity store, the query result index and the streaming accumulator:

    event -> validate -> partial? -> accumulator -> store.write -> index.link
                      -> added    -> store.write (merge) -> index.link
                      -> updated  -> accumulator.close -> store.write
                      -> deleted  -> index.purge -> store.delete

It also consumes point-in-time query results (hydrations) the same way
as a batch of Added events.

Invariants:
    - Events are processed one at a time, each to completion
    - route() never raises for data-shape problems; malformed events are
      dropped and reported to the error sink
    - A duplicate Added never creates a second record or list entry
    - A non-partial event closes the entity's streaming buffer; its
      payload is authoritative
    - Nothing in route() blocks or performs I/O

How to change safely:
    - Test idempotency with duplicate event injection
    - Keep the error sink free of side effects on the stores
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from pydantic import ValidationError

from ..errors import MalformedEventError
from ..store.entity_store import EntityStore, Reference
from ..store.query_index import MergePolicy, QueryResultIndex
from ..streaming.accumulator import StreamingAccumulator
from .events import (
    AddedEvent,
    DeletedEvent,
    QueryHydration,
    UpdatedEvent,
    format_validation_errors,
    is_partial,
    parse_event,
)

logger = logging.getLogger(__name__)


ErrorSink = Callable[[MalformedEventError, Any], None]


def log_error_sink(error: MalformedEventError, raw: Any) -> None:
    """Default error sink: log the dropped event at WARNING."""
    logger.warning(
        "Dropped malformed change event",
        extra={"error": error.message, "errors": error.errors, "kind": error.event_kind},
    )


class RouteAction(Enum):
    """What the router did with an event."""

    CREATED = "created"
    UPDATED = "updated"
    DELETED = "deleted"
    BUFFERED = "buffered"
    HYDRATED = "hydrated"
    DROPPED = "dropped"


@dataclass
class RouteResult:
    """Result of routing one event.

    Attributes:
        action: What was done
        ref: The entity the event was about (None if dropped before validation)
        list_keys: Lists the entity was linked into or purged from
        fields: Fields written to the store (cumulative for fragments)
        error: Error message if dropped
    """

    action: RouteAction
    ref: Reference | None = None
    list_keys: list[str] = field(default_factory=list)
    fields: dict[str, Any] = field(default_factory=dict)
    error: str | None = None

    @property
    def success(self) -> bool:
        """Whether the event was applied."""
        return self.action != RouteAction.DROPPED


class ChangeEventRouter:
    """Dispatches change events to the store, index and accumulator.

    The three components are constructed by the caller and injected, so
    one router serves one application session.

    Example:
        >>> store = EntityStore()
        >>> router = ChangeEventRouter(store, QueryResultIndex(store), StreamingAccumulator())
        >>> router.route({"kind": "added", "type": "Log", "id": "5",
        ...               "fields": {"text": "a"}, "listKey": "logs:flow1"})
    """

    def __init__(
        self,
        store: EntityStore,
        index: QueryResultIndex,
        accumulator: StreamingAccumulator,
        error_sink: ErrorSink | None = None,
    ) -> None:
        """Initialize the router.

        Args:
            store: Entity store receiving writes
            index: Query result index receiving links
            accumulator: Streaming accumulator for partial events
            error_sink: Receives dropped events; logs them if omitted
        """
        self.store = store
        self.index = index
        self.accumulator = accumulator
        self.error_sink = error_sink or log_error_sink

        self._counts: dict[RouteAction, int] = {action: 0 for action in RouteAction}

    def route(self, event: Any) -> RouteResult:
        """Apply one change event.

        Args:
            event: Typed change event or raw mapping from the transport

        Returns:
            RouteResult describing what was done
        """
        try:
            typed = parse_event(event)
        except MalformedEventError as e:
            return self.reject(event, e)

        if is_partial(typed):
            result = self._apply_fragment(typed)
        elif isinstance(typed, DeletedEvent):
            result = self._apply_delete(typed)
        elif isinstance(typed, AddedEvent) and not self.store.contains(typed.type, typed.id):
            result = self._apply_create(typed)
        else:
            result = self._apply_update(typed)

        self._counts[result.action] += 1
        logger.debug(
            "Routed change event",
            extra={
                "kind": typed.kind,
                "ref": typed.ref.key,
                "action": result.action.value,
                "lists": result.list_keys,
            },
        )
        return result

    def route_many(self, events: Iterable[Any]) -> list[RouteResult]:
        """Apply events in order; a dropped event does not stop the rest."""
        return [self.route(event) for event in events]

    def hydrate(self, hydration: QueryHydration | Mapping[str, Any]) -> RouteResult:
        """Apply a point-in-time query result.

        Every item is merged into the store like an Added event, then the
        whole result is linked under the list key in one step, so a
        replace-wholesale list is swapped atomically.

        Args:
            hydration: Query result and the list it belongs to

        Returns:
            RouteResult with action HYDRATED, or DROPPED if malformed
        """
        if not isinstance(hydration, QueryHydration):
            try:
                hydration = QueryHydration.model_validate(hydration)
            except ValidationError as e:
                errors = format_validation_errors(e)
                return self.reject(
                    hydration,
                    MalformedEventError(
                        f"Malformed query result: {'; '.join(errors)}", errors=errors
                    ),
                )

        refs = []
        for item in hydration.items:
            # A query result is a terminal delivery, like a non-partial Added
            self.accumulator.close(item.ref)
            self.store.write(item.type, item.id, item.fields)
            refs.append(item.ref)

        policy = hydration.policy or self.index.policy_for(hydration.list_key)
        self.index.link(hydration.list_key, refs, policy)

        self._counts[RouteAction.HYDRATED] += 1
        logger.debug(
            "Hydrated list",
            extra={"list_key": hydration.list_key, "items": len(refs), "policy": policy.value},
        )
        return RouteResult(action=RouteAction.HYDRATED, list_keys=[hydration.list_key])

    def _apply_create(self, event: AddedEvent) -> RouteResult:
        self.accumulator.close(event.ref)
        self.store.write(event.type, event.id, event.fields)
        linked = self._link(event.ref, event.list_key)
        return RouteResult(
            action=RouteAction.CREATED,
            ref=event.ref,
            list_keys=linked,
            fields=dict(event.fields),
        )

    def _apply_update(self, event: AddedEvent | UpdatedEvent) -> RouteResult:
        self.accumulator.close(event.ref)
        self.store.write(event.type, event.id, event.fields)
        linked = self._link(event.ref, event.list_key)
        return RouteResult(
            action=RouteAction.UPDATED,
            ref=event.ref,
            list_keys=linked,
            fields=dict(event.fields),
        )

    def _apply_fragment(self, event: Any) -> RouteResult:
        ref = event.ref
        current = self.store.read(ref.type, ref.id)
        merged = self.accumulator.accumulate(
            ref,
            event.fields,
            seed=current.fields if current is not None else None,
        )
        # Readers see the best-effort cumulative value while streaming
        self.store.write(ref.type, ref.id, merged)
        linked = self._link(ref, event.list_key)
        return RouteResult(
            action=RouteAction.BUFFERED,
            ref=ref,
            list_keys=linked,
            fields=merged,
        )

    def _apply_delete(self, event: DeletedEvent) -> RouteResult:
        self.accumulator.close(event.ref)
        purged = self.index.purge(event.ref, hint=event.list_key)
        self.store.delete(event.type, event.id)
        return RouteResult(action=RouteAction.DELETED, ref=event.ref, list_keys=purged)

    def _link(self, ref: Reference, key: str | None) -> list[str]:
        """Link ref into key if it is not there yet."""
        if not key or self.index.contains(key, ref):
            return []
        policy = self.index.policy_for(key)
        if policy == MergePolicy.REPLACE_WHOLESALE:
            # Single events grow a replace-wholesale list; only query
            # results replace it
            policy = MergePolicy.APPEND_IF_ABSENT
        self.index.link(key, [ref], policy)
        return [key]

    def reject(self, raw: Any, error: MalformedEventError) -> RouteResult:
        """Drop an event that failed validation and report it to the error sink."""
        self._counts[RouteAction.DROPPED] += 1
        try:
            self.error_sink(error, raw)
        except Exception as e:
            logger.error(f"Error sink failed: {e}", exc_info=True)
        return RouteResult(action=RouteAction.DROPPED, error=error.message)

    @property
    def stats(self) -> dict[str, Any]:
        """Get router statistics."""
        return {
            "routed_count": sum(
                count for action, count in self._counts.items() if action != RouteAction.DROPPED
            ),
            "dropped_count": self._counts[RouteAction.DROPPED],
            "by_action": {action.value: count for action, count in self._counts.items()},
        }
