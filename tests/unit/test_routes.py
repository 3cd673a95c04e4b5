"""
Unit tests for the subscription route table.

Tests cover:
- Registration and freezing
- Translation of raw subscription payloads into change events
- The appendPart fragment flag
- List policy declarations
"""

import pytest

from sdk.livecache.errors import ContractViolationError, MalformedEventError
from sdk.livecache.router.events import (
    AddedEvent,
    DeletedEvent,
    PartialUpdateEvent,
    UpdatedEvent,
)
from sdk.livecache.router.routes import (
    EventKind,
    EventRoute,
    RouteTable,
    RouteTableFrozenError,
    default_routes,
)
from sdk.livecache.store.entity_store import EntityStore
from sdk.livecache.store.query_index import MergePolicy, QueryResultIndex


class TestEventRoute:
    """Tests for EventRoute."""

    def test_list_key_from_variables(self):
        route = EventRoute("terminalLogAdded", EventKind.ADDED, "TerminalLog", "terminalLogs", ("flowId",))

        assert route.list_key_for({"id": "1"}, {"flowId": 7}) == "terminalLogs:flowId=7"

    def test_list_key_falls_back_to_payload(self):
        route = EventRoute("taskCreated", EventKind.ADDED, "Task", "tasks", ("flowId",))

        assert route.list_key_for({"id": "1", "flowId": 3}) == "tasks:flowId=3"

    def test_no_list(self):
        route = EventRoute("settingsUpdated", EventKind.UPDATED, "Settings")

        assert route.list_key_for({"id": "1"}) is None


class TestRouteTable:
    """Tests for RouteTable."""

    @pytest.fixture
    def table(self):
        """Create a table with one route."""
        table = RouteTable()
        table.register(EventRoute("flowCreated", EventKind.ADDED, "Flow", "flows"))
        return table

    def test_get(self, table):
        assert table.get("flowCreated").entity_type == "Flow"
        assert table.get("missing") is None

    def test_duplicate_registration_raises(self, table):
        with pytest.raises(ContractViolationError, match="already routed"):
            table.register(EventRoute("flowCreated", EventKind.ADDED, "Flow"))

    def test_frozen_table_rejects_registration(self, table):
        table.freeze()

        assert table.frozen
        with pytest.raises(RouteTableFrozenError):
            table.register(EventRoute("flowUpdated", EventKind.UPDATED, "Flow"))

    def test_translate(self, table):
        event = table.translate("flowCreated", {"id": 1, "title": "Scan"})

        assert isinstance(event, AddedEvent)
        assert event.id == "1"
        assert event.fields == {"title": "Scan"}
        assert event.list_key == "flows"

    def test_translate_uses_typename(self, table):
        event = table.translate("flowCreated", {"id": "1", "__typename": "FlowV2"})

        assert event.type == "FlowV2"
        assert "__typename" not in event.fields

    def test_translate_unknown_subscription(self, table):
        with pytest.raises(MalformedEventError, match="No route"):
            table.translate("missing", {"id": "1"})

    def test_translate_missing_id(self, table):
        with pytest.raises(MalformedEventError):
            table.translate("flowCreated", {"title": "Scan"})

    def test_translate_non_mapping(self, table):
        with pytest.raises(MalformedEventError, match="must be a mapping"):
            table.translate("flowCreated", ["id"])

    def test_declare_lists(self):
        table = RouteTable()
        table.register(
            EventRoute("flowCreated", EventKind.ADDED, "Flow", "flows", policy=MergePolicy.PREPEND_IF_ABSENT)
        )
        table.register(EventRoute("flowDeleted", EventKind.DELETED, "Flow", "flows"))
        index = QueryResultIndex(EntityStore())

        table.declare_lists(index)

        assert index.policy_for("flows") == MergePolicy.PREPEND_IF_ABSENT


class TestDefaultRoutes:
    """Tests for default_routes()."""

    @pytest.fixture
    def routes(self):
        return default_routes()

    def test_frozen(self, routes):
        assert routes.frozen

    def test_append_part_marks_fragment(self, routes):
        """assistantLogUpdated with appendPart becomes a partial update."""
        event = routes.translate(
            "assistantLogUpdated",
            {"id": "9", "message": "tok", "appendPart": True},
            {"flowId": 1, "assistantId": 2},
        )

        assert isinstance(event, PartialUpdateEvent)
        assert event.fields == {"message": "tok"}
        assert event.list_key == "assistantLogs:assistantId=2,flowId=1"

    def test_without_append_part_is_update(self, routes):
        event = routes.translate(
            "assistantLogUpdated",
            {"id": "9", "message": "full", "appendPart": False},
            {"flowId": 1, "assistantId": 2},
        )

        assert isinstance(event, UpdatedEvent)
        assert "appendPart" not in event.fields

    def test_log_added(self, routes):
        event = routes.translate("terminalLogAdded", {"id": "1", "text": "$ ls"}, {"flowId": 4})

        assert isinstance(event, AddedEvent)
        assert event.type == "TerminalLog"
        assert event.list_key == "terminalLogs:flowId=4"

    def test_deleted(self, routes):
        event = routes.translate("flowDeleted", {"id": "1"})

        assert isinstance(event, DeletedEvent)
        assert event.list_key == "flows"

    def test_policies_declared(self, routes):
        index = QueryResultIndex(EntityStore())

        routes.declare_lists(index)

        assert index.policy_for("flows") == MergePolicy.PREPEND_IF_ABSENT
        assert index.policy_for("providers") == MergePolicy.INSERT_SORTED
        assert index.declaration_for("providers").sort_field == "name"
        assert index.policy_for("terminalLogs:flowId=1") == MergePolicy.APPEND_IF_ABSENT
