"""
Unit tests for the normalized entity store.

Tests cover:
- Field-level merge on write
- Read isolation (copies, not views)
- Delete semantics and listener notification
- Contract violations
"""

import pytest

from sdk.livecache.errors import ContractViolationError
from sdk.livecache.store.entity_store import (
    ChangeType,
    Entity,
    EntityStore,
    Reference,
)


class TestReference:
    """Tests for Reference."""

    def test_key_format(self):
        """Key is Type:id."""
        assert Reference("Log", "5").key == "Log:5"
        assert str(Reference("Log", "5")) == "Log:5"

    def test_references_are_hashable_values(self):
        """Equal references collapse in a set."""
        refs = {Reference("Log", "5"), Reference("Log", "5"), Reference("Flow", "5")}
        assert len(refs) == 2

    def test_to_dict(self):
        """Reference serializes to type and id."""
        assert Reference("Flow", "1").to_dict() == {"type": "Flow", "id": "1"}


class TestEntityStore:
    """Tests for EntityStore."""

    @pytest.fixture
    def store(self):
        """Create a fresh store."""
        return EntityStore()

    def test_write_creates_entity(self, store):
        """First write creates the record."""
        entity = store.write("Log", "1", {"text": "a"})

        assert entity.version == 1
        assert entity.fields == {"text": "a"}
        assert store.contains("Log", "1")
        assert len(store) == 1

    def test_write_merges_fields(self, store):
        """Sequential writes merge field by field."""
        store.write("T", "1", {"a": 1})
        store.write("T", "1", {"b": 2})

        assert store.read("T", "1").fields == {"a": 1, "b": 2}

    def test_write_overwrites_present_fields(self, store):
        """Fields present in a write replace stored values."""
        store.write("T", "1", {"a": 1, "b": 2})
        store.write("T", "1", {"a": 3})

        assert store.read("T", "1").fields == {"a": 3, "b": 2}

    def test_write_bumps_version(self, store):
        """Every write increments the version."""
        store.write("T", "1", {"a": 1})
        store.write("T", "1", {"a": 1})
        entity = store.write("T", "1", {})

        assert entity.version == 3

    def test_write_is_idempotent_for_identical_fields(self, store):
        """Writing the same fields twice leaves the same data."""
        store.write("T", "1", {"a": 1})
        store.write("T", "1", {"a": 1})

        assert store.read("T", "1").fields == {"a": 1}

    def test_disjoint_writes_commute(self):
        """Writes of disjoint fields give the same result in either order."""
        first, second = EntityStore(), EntityStore()

        first.write("T", "1", {"a": 1})
        first.write("T", "1", {"b": 2})
        second.write("T", "1", {"b": 2})
        second.write("T", "1", {"a": 1})

        assert first.read("T", "1").fields == second.read("T", "1").fields

    def test_numeric_id_reads_back(self, store):
        """Ids are compared as strings on both the write and read paths."""
        store.write("Log", 5, {"text": "a"})

        assert store.read("Log", 5).fields == {"text": "a"}
        assert store.read("Log", "5").id == "5"
        assert store.contains("Log", 5)

    def test_read_absent_returns_none(self, store):
        """Reading an unknown entity returns None."""
        assert store.read("T", "missing") is None

    def test_read_returns_copy(self, store):
        """Mutating a read result does not change the store."""
        store.write("T", "1", {"a": 1})

        entity = store.read("T", "1")
        entity.fields["a"] = 99

        assert store.read("T", "1").fields == {"a": 1}

    def test_write_result_is_copy(self, store):
        """Mutating a write result does not change the store."""
        entity = store.write("T", "1", {"a": 1})
        entity.fields["b"] = 2

        assert store.read("T", "1").fields == {"a": 1}

    def test_write_does_not_alias_input(self, store):
        """The caller's field mapping is not stored by reference."""
        fields = {"a": 1}
        store.write("T", "1", fields)
        fields["a"] = 2

        assert store.read("T", "1").fields == {"a": 1}

    def test_delete_removes_entity(self, store):
        """Deleted entities read as absent."""
        store.write("T", "1", {"a": 1})

        assert store.delete("T", "1") is True
        assert store.read("T", "1") is None
        assert not store.contains("T", "1")

    def test_delete_unknown_returns_false(self, store):
        """Deleting an unknown entity is not an error."""
        assert store.delete("T", "nope") is False

    def test_write_after_delete_is_fresh(self, store):
        """An id may be reused after deletion."""
        store.write("T", "1", {"a": 1})
        store.delete("T", "1")

        entity = store.write("T", "1", {"b": 2})

        assert entity.version == 1
        assert entity.fields == {"b": 2}

    def test_listeners_notified_on_write(self, store):
        """Listeners see created and updated changes."""
        changes = []
        store.add_listener(changes.append)

        store.write("T", "1", {"a": 1})
        store.write("T", "1", {"b": 2})

        assert [c.change_type for c in changes] == [ChangeType.CREATED, ChangeType.UPDATED]
        assert changes[1].entity.fields == {"a": 1, "b": 2}

    def test_listeners_notified_before_delete_returns(self, store):
        """Delete listeners already see the record gone."""
        seen = []
        store.write("T", "1", {"a": 1})
        store.add_listener(lambda change: seen.append(store.contains("T", "1")))

        store.delete("T", "1")

        assert seen == [False]

    def test_delete_notifies_for_unknown_entity(self, store):
        """Listeners are told about deletes of unknown records too."""
        changes = []
        store.add_listener(changes.append)

        store.delete("T", "1")

        assert len(changes) == 1
        assert changes[0].change_type == ChangeType.DELETED
        assert changes[0].entity is None

    def test_remove_listener(self, store):
        """Removed listeners are no longer called."""
        changes = []
        store.add_listener(changes.append)
        store.remove_listener(changes.append)
        store.remove_listener(changes.append)

        store.write("T", "1", {})

        assert changes == []

    def test_write_without_id_raises(self, store):
        """Writing with no id is a contract violation."""
        with pytest.raises(ContractViolationError) as exc_info:
            store.write("T", "", {"a": 1})

        assert exc_info.value.code == "CONTRACT_VIOLATION"
        assert exc_info.value.operation == "write"

    def test_write_without_type_raises(self, store):
        """Writing with no type is a contract violation."""
        with pytest.raises(ContractViolationError):
            store.write("", "1", {"a": 1})

    def test_refs_filters_by_type(self, store):
        """refs() can be restricted to one type."""
        store.write("Log", "1", {})
        store.write("Log", "2", {})
        store.write("Flow", "1", {})

        assert sorted(r.id for r in store.refs("Log")) == ["1", "2"]
        assert len(list(store.refs())) == 3

    def test_snapshot(self, store):
        """snapshot() returns copies of every entity."""
        store.write("T", "1", {"a": 1})

        snapshot = store.snapshot()

        assert len(snapshot) == 1
        assert isinstance(snapshot[0], Entity)
        assert snapshot[0].to_dict()["fields"] == {"a": 1}
