"""
Subscription route table for LiveCache.

The server pushes changes on named subscriptions ("flowCreated",
"assistantLogUpdated", ...) whose payloads are plain entity objects. The
route table maps each subscription name to the change event it stands
for: the event kind, the entity type, and the list the entity belongs to.

Example:
    >>> routes = RouteTable()
    >>> routes.register(EventRoute("logAdded", EventKind.ADDED, "Log", "logs", ("flowId",)))
    >>> routes.translate("logAdded", {"id": 5, "flowId": 1, "text": "a"})
    AddedEvent(type='Log', id='5', ...)

Invariants:
    - A subscription name maps to exactly one route
    - The table is frozen before the first event is routed
    - A payload flag (e.g. appendPart) turns an update into a fragment
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterator, Mapping
from dataclasses import dataclass
from typing import Any

from ..errors import ContractViolationError, MalformedEventError
from ..store.query_index import MergePolicy, QueryResultIndex, list_key
from .events import EventKind, parse_event

logger = logging.getLogger(__name__)


class RouteTableFrozenError(ContractViolationError):
    """Route table is frozen and cannot be modified."""

    def __init__(self, message: str) -> None:
        super().__init__(message, operation="register")


@dataclass(frozen=True)
class EventRoute:
    """How one server subscription maps onto a change event.

    Attributes:
        subscription: Subscription name as sent by the server
        kind: Change event kind produced
        entity_type: Entity type of the payload
        list_name: List the entity is linked into (None for no list)
        list_args: Payload fields that become the list key's filter args
        policy: Merge policy declared for the list
        sort_field: Entity field ordering an insert-sorted list
        partial_flag: Payload field marking the payload as a fragment
    """

    subscription: str
    kind: EventKind
    entity_type: str
    list_name: str | None = None
    list_args: tuple[str, ...] = ()
    policy: MergePolicy = MergePolicy.APPEND_IF_ABSENT
    sort_field: str | None = None
    partial_flag: str | None = None

    def list_key_for(
        self,
        payload: Mapping[str, Any],
        variables: Mapping[str, Any] | None = None,
    ) -> str | None:
        """Derive the list key for a payload.

        Filter args are read from the subscription variables first and
        from the payload second.
        """
        if self.list_name is None:
            return None
        variables = variables or {}
        args = {}
        for name in self.list_args:
            value = variables.get(name, payload.get(name))
            args[name] = value
        return list_key(self.list_name, **args)


class RouteTable:
    """Registry of subscription routes.

    Example:
        >>> table = RouteTable()
        >>> table.register(EventRoute("flowCreated", EventKind.ADDED, "Flow", "flows",
        ...                           policy=MergePolicy.PREPEND_IF_ABSENT))
        >>> table.freeze()
    """

    def __init__(self) -> None:
        self._routes: dict[str, EventRoute] = {}
        self._frozen = False
        self._lock = threading.Lock()

    @property
    def frozen(self) -> bool:
        """Whether the table is frozen."""
        return self._frozen

    def register(self, route: EventRoute) -> None:
        """Register a route.

        Raises:
            RouteTableFrozenError: If the table is frozen
            ContractViolationError: If the subscription is already routed
        """
        with self._lock:
            if self._frozen:
                raise RouteTableFrozenError("Cannot register: route table is frozen")
            if route.subscription in self._routes:
                raise ContractViolationError(
                    f"Subscription '{route.subscription}' is already routed", "register"
                )
            self._routes[route.subscription] = route

    def get(self, subscription: str) -> EventRoute | None:
        """Get the route for a subscription name."""
        return self._routes.get(subscription)

    def routes(self) -> Iterator[EventRoute]:
        """Iterate over all routes."""
        yield from self._routes.values()

    def freeze(self) -> None:
        """Prevent further registrations."""
        with self._lock:
            self._frozen = True

    def declare_lists(self, index: QueryResultIndex) -> None:
        """Declare every routed list's merge policy on the index."""
        declared: dict[str, EventRoute] = {}
        for route in self._routes.values():
            if route.list_name is None or route.kind == EventKind.DELETED:
                continue
            previous = declared.get(route.list_name)
            if previous is not None and previous.policy != route.policy:
                logger.warning(
                    "Conflicting list policies, keeping first",
                    extra={
                        "list_name": route.list_name,
                        "kept": previous.policy.value,
                        "ignored": route.policy.value,
                    },
                )
                continue
            declared[route.list_name] = route
            index.declare(route.list_name, route.policy, route.sort_field)

    def translate(
        self,
        subscription: str,
        payload: Mapping[str, Any],
        variables: Mapping[str, Any] | None = None,
    ) -> Any:
        """Turn a raw subscription payload into a typed change event.

        Args:
            subscription: Subscription name
            payload: Entity object pushed by the server
            variables: Subscription variables (e.g. {"flowId": 1})

        Returns:
            Typed change event

        Raises:
            MalformedEventError: If the subscription is unknown or the
                payload fails validation
        """
        route = self._routes.get(subscription)
        if route is None:
            raise MalformedEventError(
                f"No route for subscription '{subscription}'",
                errors=[f"unknown subscription {subscription}"],
            )
        if not isinstance(payload, Mapping):
            raise MalformedEventError(
                f"Payload of '{subscription}' must be a mapping",
                errors=["not a mapping"],
                event_kind=route.kind.value,
            )

        fields = {k: v for k, v in payload.items() if k not in ("id", "__typename")}
        kind = route.kind
        if route.partial_flag is not None:
            if fields.pop(route.partial_flag, False):
                kind = EventKind.PARTIAL_UPDATE

        return parse_event(
            {
                "kind": kind.value,
                "type": payload.get("__typename") or route.entity_type,
                "id": payload.get("id"),
                "fields": fields,
                "list_key": route.list_key_for(payload, variables),
            }
        )


def default_routes() -> RouteTable:
    """Routes for the flow dashboard's subscriptions.

    Log lists grow append-if-absent per flow; flows, tasks and
    assistants are most-recent-first; providers stay sorted by name.
    """
    table = RouteTable()

    def logs(prefix: str, entity_type: str, list_name: str, args: tuple[str, ...] = ("flowId",)):
        table.register(EventRoute(f"{prefix}Added", EventKind.ADDED, entity_type, list_name, args))

    logs("agentLog", "AgentLog", "agentLogs")
    logs("messageLog", "MessageLog", "messageLogs")
    logs("searchLog", "SearchLog", "searchLogs")
    logs("terminalLog", "TerminalLog", "terminalLogs")
    logs("vectorStoreLog", "VectorStoreLog", "vectorStoreLogs")
    logs("screenshot", "Screenshot", "screenshots")
    logs("assistantLog", "AssistantLog", "assistantLogs", ("flowId", "assistantId"))

    table.register(
        EventRoute("messageLogUpdated", EventKind.UPDATED, "MessageLog", "messageLogs", ("flowId",))
    )
    table.register(
        EventRoute(
            "assistantLogUpdated",
            EventKind.UPDATED,
            "AssistantLog",
            "assistantLogs",
            ("flowId", "assistantId"),
            partial_flag="appendPart",
        )
    )

    for name, entity_type, args in (
        ("flow", "Flow", ()),
        ("task", "Task", ("flowId",)),
        ("assistant", "Assistant", ("flowId",)),
    ):
        list_name = f"{name}s"
        table.register(
            EventRoute(
                f"{name}Created",
                EventKind.ADDED,
                entity_type,
                list_name,
                args,
                policy=MergePolicy.PREPEND_IF_ABSENT,
            )
        )
        table.register(
            EventRoute(
                f"{name}Updated",
                EventKind.UPDATED,
                entity_type,
                list_name,
                args,
                policy=MergePolicy.PREPEND_IF_ABSENT,
            )
        )
        if name != "task":
            table.register(
                EventRoute(f"{name}Deleted", EventKind.DELETED, entity_type, list_name, args)
            )

    for suffix, kind in (
        ("Created", EventKind.ADDED),
        ("Updated", EventKind.UPDATED),
        ("Deleted", EventKind.DELETED),
    ):
        table.register(
            EventRoute(
                f"provider{suffix}",
                kind,
                "Provider",
                "providers",
                policy=MergePolicy.INSERT_SORTED,
                sort_field="name",
            )
        )

    table.freeze()
    return table
