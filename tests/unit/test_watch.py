"""
Unit tests for entity and list watchers.

Tests cover:
- Entity watchers on write and delete
- List watchers on link, purge and member writes
- Batched (deferred) notifications
- Cancellation and failing callbacks
"""

import pytest

from sdk.livecache.store.entity_store import EntityStore, Reference
from sdk.livecache.store.query_index import NO_DATA, QueryResultIndex
from sdk.livecache.watch import WatchRegistry


class TestWatchRegistry:
    """Tests for WatchRegistry."""

    @pytest.fixture
    def store(self):
        return EntityStore()

    @pytest.fixture
    def index(self, store):
        return QueryResultIndex(store)

    @pytest.fixture
    def watches(self, store, index):
        return WatchRegistry(store, index)

    def test_entity_watch_on_write(self, store, watches):
        seen = []
        watches.watch_entity("Log", "1", lambda ref, entity: seen.append(entity.fields))

        store.write("Log", "1", {"text": "a"})
        store.write("Log", "1", {"text": "ab"})

        assert seen == [{"text": "a"}, {"text": "ab"}]

    def test_entity_watch_on_delete(self, store, watches):
        seen = []
        store.write("Log", "1", {})
        watches.watch_entity("Log", "1", lambda ref, entity: seen.append((ref, entity)))

        store.delete("Log", "1")

        assert seen == [(Reference("Log", "1"), None)]

    def test_other_entities_not_reported(self, store, watches):
        seen = []
        watches.watch_entity("Log", "1", lambda ref, entity: seen.append(ref))

        store.write("Log", "2", {})

        assert seen == []

    def test_list_watch_on_link(self, index, watches):
        seen = []
        watches.watch_list("logs", lambda key, refs: seen.append(refs))

        index.link("logs", [Reference("Log", "1")])

        assert seen == [(Reference("Log", "1"),)]

    def test_list_watch_on_member_write(self, store, index, watches):
        """Writing a member entity notifies lists holding it."""
        seen = []
        index.link("logs", [Reference("Log", "1")])
        watches.watch_list("logs", lambda key, refs: seen.append(key))

        store.write("Log", "1", {"text": "a"})

        assert seen == ["logs"]

    def test_list_watch_on_delete(self, store, index, watches):
        seen = []
        store.write("Log", "1", {})
        index.link("logs", [Reference("Log", "1")])
        watches.watch_list("logs", lambda key, refs: seen.append(refs))

        store.delete("Log", "1")

        assert seen == [()]

    def test_list_watch_on_evict(self, index, watches):
        seen = []
        index.link("logs", [Reference("Log", "1")])
        watches.watch_list("logs", lambda key, refs: seen.append(refs))

        index.evict("logs")

        assert seen == [NO_DATA]

    def test_batch_defers_and_coalesces(self, store, index, watches):
        seen = []
        watches.watch_entity("Log", "1", lambda ref, entity: seen.append(entity.fields))
        watches.watch_list("logs", lambda key, refs: seen.append(refs))

        with watches.batch():
            store.write("Log", "1", {"text": "a"})
            index.link("logs", [Reference("Log", "1")])
            store.write("Log", "1", {"level": "info"})
            assert seen == []

        assert seen == [{"text": "a", "level": "info"}, (Reference("Log", "1"),)]

    def test_nested_batches_flush_once(self, store, watches):
        seen = []
        watches.watch_entity("Log", "1", lambda ref, entity: seen.append(entity.version))

        with watches.batch():
            with watches.batch():
                store.write("Log", "1", {})
            assert seen == []
            store.write("Log", "1", {})

        assert seen == [2]

    def test_cancel(self, store, watches):
        seen = []
        watch = watches.watch_entity("Log", "1", lambda ref, entity: seen.append(ref))
        assert watches.watcher_count == 1

        watch.cancel()
        watch.cancel()
        store.write("Log", "1", {})

        assert seen == []
        assert watches.watcher_count == 0
        assert not watch.active

    def test_failing_callback_does_not_stop_others(self, store, watches):
        seen = []

        def broken(ref, entity):
            raise RuntimeError("boom")

        watches.watch_entity("Log", "1", broken)
        watches.watch_entity("Log", "1", lambda ref, entity: seen.append(ref))

        store.write("Log", "1", {})

        assert seen == [Reference("Log", "1")]
        assert watches.notification_count == 2
