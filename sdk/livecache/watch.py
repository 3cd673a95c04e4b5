"""
Read-side change notifications for LiveCache.

Consumers register callbacks on a single entity or on a list key and
are called whenever what they would read changes. A write to an entity
fans out to every list that references it, since the materialized list
view changed even though its References did not.

Notifications raised while a batch is open are deferred until the batch
closes, so a consumer never observes an event half-applied.
"""

from __future__ import annotations

import itertools
import logging
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from typing import Any

from .store.entity_store import Entity, EntityStore, Reference, StoreChange
from .store.query_index import QueryResultIndex

logger = logging.getLogger(__name__)

EntityCallback = Callable[[Reference, "Entity | None"], None]
ListCallback = Callable[[str, Any], None]


class Watch:
    """Handle of a registered callback."""

    def __init__(self, registry: WatchRegistry, watch_id: int) -> None:
        self._registry = registry
        self.id = watch_id
        self.active = True

    def cancel(self) -> None:
        """Stop receiving notifications."""
        if self.active:
            self._registry._cancel(self.id)
            self.active = False


class WatchRegistry:
    """Entity and list watchers over a store and its index."""

    def __init__(self, store: EntityStore, index: QueryResultIndex) -> None:
        self.store = store
        self.index = index
        self._ids = itertools.count(1)
        self._entity_watchers: dict[Reference, dict[int, EntityCallback]] = {}
        self._list_watchers: dict[str, dict[int, ListCallback]] = {}
        self._depth = 0
        self._pending_entities: dict[Reference, None] = {}
        self._pending_lists: dict[str, None] = {}
        self._notification_count = 0

        store.add_listener(self._on_store_change)
        index.add_listener(self._on_list_change)

    def watch_entity(self, type: str, id: str, callback: EntityCallback) -> Watch:
        """Call callback(ref, entity_or_None) whenever the entity changes."""
        watch_id = next(self._ids)
        self._entity_watchers.setdefault(Reference(type, id), {})[watch_id] = callback
        return Watch(self, watch_id)

    def watch_list(self, key: str, callback: ListCallback) -> Watch:
        """Call callback(key, refs_or_NO_DATA) whenever the list view changes."""
        watch_id = next(self._ids)
        self._list_watchers.setdefault(key, {})[watch_id] = callback
        return Watch(self, watch_id)

    @contextmanager
    def batch(self) -> Iterator[None]:
        """Defer notifications until the outermost batch exits."""
        self._depth += 1
        try:
            yield
        finally:
            self._depth -= 1
            if self._depth == 0:
                self._flush()

    @property
    def watcher_count(self) -> int:
        """Number of active watches."""
        return sum(len(w) for w in self._entity_watchers.values()) + sum(
            len(w) for w in self._list_watchers.values()
        )

    @property
    def notification_count(self) -> int:
        """Number of callbacks invoked so far."""
        return self._notification_count

    def _on_store_change(self, change: StoreChange) -> None:
        self._pending_entities[change.ref] = None
        for key in self.index.lists_containing(change.ref):
            self._pending_lists[key] = None
        if self._depth == 0:
            self._flush()

    def _on_list_change(self, key: str) -> None:
        self._pending_lists[key] = None
        if self._depth == 0:
            self._flush()

    def _flush(self) -> None:
        entities, self._pending_entities = self._pending_entities, {}
        lists, self._pending_lists = self._pending_lists, {}

        for ref in entities:
            callbacks = self._entity_watchers.get(ref)
            if not callbacks:
                continue
            entity = self.store.read_ref(ref)
            for callback in list(callbacks.values()):
                self._invoke(callback, ref, entity)

        for key in lists:
            callbacks = self._list_watchers.get(key)
            if not callbacks:
                continue
            refs = self.index.resolve(key)
            for callback in list(callbacks.values()):
                self._invoke(callback, key, refs)

    def _invoke(self, callback: Callable[..., None], *args: Any) -> None:
        self._notification_count += 1
        try:
            callback(*args)
        except Exception as e:
            # A failing consumer must not stop the others
            logger.error(f"Watch callback failed: {e}", exc_info=True)

    def _cancel(self, watch_id: int) -> None:
        for watchers in (self._entity_watchers, self._list_watchers):
            for key, callbacks in list(watchers.items()):
                if callbacks.pop(watch_id, None) is not None:
                    if not callbacks:
                        del watchers[key]
                    return
