"""
Normalized entity store for LiveCache.

This module holds the ground truth for all entity data:
- Entities keyed by (type, id)
- Field-level merge on every write
- Synchronous change notifications to registered listeners

Every other view (list indices, streaming buffers, watchers) refers to
entities through lightweight References and looks them up here.

Invariants:
    - An entity's identity (type, id) never changes once created
    - write() merges fields; absent fields are preserved, never cleared
    - Records are removed only by delete(), never for cache pressure
    - Listeners are notified before write()/delete() returns
    - Callers never receive a mutable view of stored state

How to change safely:
    - Keep write() a merge; a replacing write breaks commutativity of
      query results racing subscription events
    - Listener callbacks must not call back into write()/delete()
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Iterator, Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from ..errors import ContractViolationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Reference:
    """Pointer to an entity inside list indices.

    A Reference never owns entity data; it is only a lookup key into
    the EntityStore. A Reference whose entity has been deleted resolves
    to absent.

    Attributes:
        type: Entity type name (e.g. "Log", "Flow")
        id: Entity identifier, unique within its type
    """

    type: str
    id: str

    @property
    def key(self) -> str:
        """Stable string form, "Type:id"."""
        return f"{self.type}:{self.id}"

    def to_dict(self) -> dict[str, str]:
        """Convert to dictionary representation."""
        return {"type": self.type, "id": self.id}

    def __str__(self) -> str:
        return self.key


@dataclass
class Entity:
    """A normalized record in the store.

    Attributes:
        type: Entity type name
        id: Entity identifier
        fields: Current field values
        version: Number of writes applied since creation
        created_at: Creation timestamp (Unix ms)
        updated_at: Last write timestamp (Unix ms)
    """

    type: str
    id: str
    fields: dict[str, Any] = field(default_factory=dict)
    version: int = 1
    created_at: int = 0
    updated_at: int = 0

    @property
    def ref(self) -> Reference:
        """Reference pointing at this entity."""
        return Reference(self.type, self.id)

    def copy(self) -> Entity:
        """Return a copy whose fields can be mutated freely."""
        return Entity(
            type=self.type,
            id=self.id,
            fields=dict(self.fields),
            version=self.version,
            created_at=self.created_at,
            updated_at=self.updated_at,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "type": self.type,
            "id": self.id,
            "fields": dict(self.fields),
            "version": self.version,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }


class ChangeType(Enum):
    """Kinds of change the store reports to listeners."""

    CREATED = "created"
    UPDATED = "updated"
    DELETED = "deleted"


@dataclass(frozen=True)
class StoreChange:
    """A change applied to the store.

    Attributes:
        change_type: What happened to the entity
        ref: The affected entity
        entity: Copy of the entity after the change (None on delete)
    """

    change_type: ChangeType
    ref: Reference
    entity: Entity | None = None


StoreListener = Callable[[StoreChange], None]


class EntityStore:
    """In-memory normalized entity store.

    The store is constructed once per application session and injected
    into the components that need it. All processing is single-threaded,
    so no locking is done here.

    Example:
        >>> store = EntityStore()
        >>> store.write("Log", "1", {"text": "a"})
        >>> store.write("Log", "1", {"level": "info"})
        >>> store.read("Log", "1").fields
        {'text': 'a', 'level': 'info'}
    """

    def __init__(self) -> None:
        self._records: dict[Reference, Entity] = {}
        self._listeners: list[StoreListener] = []

    def add_listener(self, listener: StoreListener) -> None:
        """Register a callback invoked after every write and delete."""
        self._listeners.append(listener)

    def remove_listener(self, listener: StoreListener) -> None:
        """Unregister a previously added callback."""
        try:
            self._listeners.remove(listener)
        except ValueError:
            pass

    def write(self, type: str, id: str, fields: Mapping[str, Any] | None = None) -> Entity:
        """Merge fields into the entity identified by (type, id).

        Creates the entity if absent. Fields present in the write
        overwrite stored values; fields absent are preserved.

        Args:
            type: Entity type name
            id: Entity identifier
            fields: Field values to merge

        Returns:
            Copy of the entity after the write

        Raises:
            ContractViolationError: If type or id is empty
        """
        ref = self._ref(type, id, "write")
        now = int(time.time() * 1000)

        entity = self._records.get(ref)
        if entity is None:
            entity = Entity(
                type=ref.type,
                id=ref.id,
                fields=dict(fields or {}),
                version=1,
                created_at=now,
                updated_at=now,
            )
            self._records[ref] = entity
            change_type = ChangeType.CREATED
        else:
            entity.fields.update(fields or {})
            entity.version += 1
            entity.updated_at = now
            change_type = ChangeType.UPDATED

        logger.debug(
            "Entity written",
            extra={"ref": ref.key, "version": entity.version, "change": change_type.value},
        )

        snapshot = entity.copy()
        self._notify(StoreChange(change_type, ref, snapshot))
        return snapshot

    def read(self, type: str, id: str) -> Entity | None:
        """Get a copy of the entity, or None if absent."""
        entity = self._records.get(Reference(str(type), str(id)))
        return entity.copy() if entity is not None else None

    def read_ref(self, ref: Reference) -> Entity | None:
        """Get a copy of the entity a Reference points at, or None."""
        return self.read(ref.type, ref.id)

    def contains(self, type: str, id: str) -> bool:
        """Whether an entity with this identity exists."""
        return Reference(str(type), str(id)) in self._records

    def delete(self, type: str, id: str) -> bool:
        """Remove the entity and notify listeners.

        Listeners run before this method returns, so no consumer can
        observe a dangling reference afterwards.

        Args:
            type: Entity type name
            id: Entity identifier

        Returns:
            True if an entity was removed

        Raises:
            ContractViolationError: If type or id is empty
        """
        ref = self._ref(type, id, "delete")
        removed = self._records.pop(ref, None)

        # Listeners are told even when the record was unknown so that
        # list entries linked before hydration are still purged
        self._notify(StoreChange(ChangeType.DELETED, ref, None))

        if removed is not None:
            logger.debug("Entity deleted", extra={"ref": ref.key})
        return removed is not None

    def refs(self, type: str | None = None) -> Iterator[Reference]:
        """Iterate over stored references, optionally of a single type."""
        for ref in list(self._records):
            if type is None or ref.type == type:
                yield ref

    def snapshot(self) -> list[Entity]:
        """Copies of all stored entities."""
        return [entity.copy() for entity in self._records.values()]

    def clear(self) -> None:
        """Drop every record without notifying listeners (testing helper)."""
        self._records.clear()

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, ref: object) -> bool:
        return ref in self._records

    def _ref(self, type: str, id: str, operation: str) -> Reference:
        if not type:
            raise ContractViolationError(f"{operation}() requires an entity type", operation)
        if id is None or id == "":
            raise ContractViolationError(f"{operation}() requires an entity id", operation)
        return Reference(str(type), str(id))

    def _notify(self, change: StoreChange) -> None:
        for listener in list(self._listeners):
            listener(change)
