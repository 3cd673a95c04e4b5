"""
Query result index for LiveCache.

This module maintains derived, keyed lists of entity References, such as
"all log records for flow 7". Each list is stored under a deterministic
list key and grows according to its merge policy:
- append-if-absent: logs and events appended over time
- prepend-if-absent: most-recent-first feeds
- replace-wholesale: list queries refreshed from the network
- insert-sorted: lists kept ordered by an entity field

Lists hold References only. Entity data is always read through the
EntityStore, so an update to an entity is visible in every list that
references it without relinking.

Invariants:
    - A list never holds two References to the same entity
    - An existing Reference keeps its position under the *-if-absent policies
    - resolve() on a key that was never linked returns NO_DATA, not ()
    - The reverse index (Reference -> list keys) matches the list contents

How to change safely:
    - New policies must preserve the no-duplicates invariant
    - Keep list_key() deterministic; persisted UI state may hold keys
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from enum import Enum
from typing import Any

from ..errors import ContractViolationError
from .entity_store import ChangeType, Entity, EntityStore, Reference, StoreChange

logger = logging.getLogger(__name__)


class MergePolicy(Enum):
    """How incoming References are merged into an existing list."""

    APPEND_IF_ABSENT = "append-if-absent"
    PREPEND_IF_ABSENT = "prepend-if-absent"
    REPLACE_WHOLESALE = "replace-wholesale"
    INSERT_SORTED = "insert-sorted"

    @classmethod
    def from_str(cls, value: str) -> MergePolicy:
        """Convert string representation to MergePolicy.

        Raises:
            ValueError: If value is not a known policy
        """
        for policy in cls:
            if policy.value == value or policy.name == value.upper():
                return policy
        valid = [p.value for p in cls]
        raise ValueError(f"Invalid merge policy '{value}'. Valid policies: {valid}")


class _NoData:
    """Marker for a list that has never been fetched."""

    _instance: _NoData | None = None

    def __new__(cls) -> _NoData:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "NO_DATA"


NO_DATA = _NoData()

LIST_KEY_SEPARATOR = ":"


def list_key(name: str, **filter_args: Any) -> str:
    """Build the key a list is stored under.

    Filter arguments are sorted by name so that identical filters
    always produce the identical key. Arguments whose value is None
    are left out.

    Example:
        >>> list_key("logs", flowId=1)
        'logs:flowId=1'
        >>> list_key("flows")
        'flows'
    """
    if not name:
        raise ContractViolationError("list_key() requires a list name", "list_key")
    args = [(k, v) for k, v in sorted(filter_args.items()) if v is not None]
    if not args:
        return name
    encoded = ",".join(f"{k}={v}" for k, v in args)
    return f"{name}{LIST_KEY_SEPARATOR}{encoded}"


def list_name(key: str) -> str:
    """Extract the list name from a list key."""
    return key.split(LIST_KEY_SEPARATOR, 1)[0]


@dataclass(frozen=True)
class ListDeclaration:
    """Default merge behavior for every list sharing a name.

    Attributes:
        name: List name (the part of the key before ':')
        policy: Merge policy applied when link() gets no explicit policy
        sort_field: Entity field ordering an INSERT_SORTED list
    """

    name: str
    policy: MergePolicy
    sort_field: str | None = None


ListListener = Callable[[str], None]


class QueryResultIndex:
    """Keyed lists of References with per-list merge policies.

    When constructed with an EntityStore, the index subscribes to store
    deletions and drops deleted entities from every list before the
    store's delete() returns.

    Example:
        >>> index = QueryResultIndex(store)
        >>> index.link("logs:flowId=1", [Reference("Log", "1")], MergePolicy.APPEND_IF_ABSENT)
        >>> index.resolve("logs:flowId=1")
        (Reference(type='Log', id='1'),)
    """

    def __init__(
        self,
        store: EntityStore | None = None,
        default_policy: MergePolicy = MergePolicy.APPEND_IF_ABSENT,
    ) -> None:
        """Initialize the index.

        Args:
            store: Entity store used for sorted inserts and delete signals
            default_policy: Policy for lists that were never declared
        """
        self.store = store
        self.default_policy = default_policy
        self._lists: dict[str, list[Reference]] = {}
        self._reverse: dict[Reference, set[str]] = {}
        self._declarations: dict[str, ListDeclaration] = {}
        self._listeners: list[ListListener] = []

        if store is not None:
            store.add_listener(self._on_store_change)

    def declare(
        self,
        name: str,
        policy: MergePolicy,
        sort_field: str | None = None,
    ) -> ListDeclaration:
        """Declare the default policy for lists with this name."""
        if policy == MergePolicy.INSERT_SORTED and not sort_field:
            raise ContractViolationError(
                f"List '{name}' uses insert-sorted but has no sort_field", "declare"
            )
        declaration = ListDeclaration(name=name, policy=policy, sort_field=sort_field)
        self._declarations[name] = declaration
        return declaration

    def declaration_for(self, key: str) -> ListDeclaration:
        """Get the declaration governing a list key."""
        name = list_name(key)
        declared = self._declarations.get(name)
        if declared is not None:
            return declared
        return ListDeclaration(name=name, policy=self.default_policy)

    def policy_for(self, key: str) -> MergePolicy:
        """Get the merge policy governing a list key."""
        return self.declaration_for(key).policy

    def add_listener(self, listener: ListListener) -> None:
        """Register a callback invoked with the key of every changed list."""
        self._listeners.append(listener)

    def remove_listener(self, listener: ListListener) -> None:
        """Unregister a previously added callback."""
        try:
            self._listeners.remove(listener)
        except ValueError:
            pass

    def link(
        self,
        key: str,
        references: Iterable[Reference],
        policy: MergePolicy | None = None,
    ) -> list[Reference]:
        """Merge References into a list under a merge policy.

        Args:
            key: List key (see list_key())
            references: Incoming References, in delivery order
            policy: Merge policy; the list's declared policy if omitted

        Returns:
            References that were newly added to the list

        Raises:
            ContractViolationError: If the key is empty
        """
        if not key:
            raise ContractViolationError("link() requires a list key", "link")

        declaration = self.declaration_for(key)
        policy = policy or declaration.policy
        incoming = _dedupe(references)

        if policy == MergePolicy.REPLACE_WHOLESALE:
            added = self._replace(key, incoming)
        else:
            existing = self._lists.setdefault(key, [])
            fresh = [ref for ref in incoming if key not in self._reverse.get(ref, ())]

            if policy == MergePolicy.APPEND_IF_ABSENT:
                existing.extend(fresh)
            elif policy == MergePolicy.PREPEND_IF_ABSENT:
                existing[:0] = fresh
            elif policy == MergePolicy.INSERT_SORTED:
                sort_field = declaration.sort_field
                if not sort_field:
                    raise ContractViolationError(
                        f"List '{key}' has no sort_field for insert-sorted", "link"
                    )
                for ref in fresh:
                    self._insert_sorted(existing, ref, sort_field)
            else:
                raise ContractViolationError(f"Unknown merge policy: {policy}", "link")

            for ref in fresh:
                self._reverse.setdefault(ref, set()).add(key)
            added = fresh

        logger.debug(
            "List linked",
            extra={"list_key": key, "policy": policy.value, "added": len(added)},
        )
        self._notify(key)
        return added

    def resolve(self, key: str) -> tuple[Reference, ...] | _NoData:
        """Get the References of a list.

        Returns:
            Tuple of References, or NO_DATA if the list was never linked.
            Test for NO_DATA with `is`; an empty tuple means "fetched,
            zero results".
        """
        refs = self._lists.get(key)
        if refs is None:
            return NO_DATA
        return tuple(refs)

    def resolve_entities(
        self,
        key: str,
        store: EntityStore | None = None,
    ) -> list[Entity] | _NoData:
        """Get materialized entities of a list, skipping dangling References."""
        store = store or self.store
        if store is None:
            raise ContractViolationError("resolve_entities() needs an entity store", "resolve")
        refs = self.resolve(key)
        if refs is NO_DATA:
            return NO_DATA
        entities = []
        for ref in refs:
            entity = store.read_ref(ref)
            if entity is not None:
                entities.append(entity)
        return entities

    def contains(self, key: str, ref: Reference) -> bool:
        """Whether the list holds a Reference to the entity."""
        return key in self._reverse.get(ref, ())

    def lists_containing(self, ref: Reference) -> set[str]:
        """Keys of every list holding the Reference."""
        return set(self._reverse.get(ref, ()))

    def list_keys(self) -> list[str]:
        """Keys of every list that has been linked."""
        return list(self._lists)

    def unlink(self, key: str, ref: Reference) -> bool:
        """Remove a Reference from one list.

        Returns:
            True if the list held the Reference
        """
        if not self.contains(key, ref):
            return False
        self._lists[key].remove(ref)
        self._forget(ref, key)
        self._notify(key)
        return True

    def purge(self, ref: Reference, hint: str | None = None) -> list[str]:
        """Remove a Reference from every list that holds it.

        Args:
            ref: Reference to remove
            hint: List key checked first when the caller knows it

        Returns:
            Keys of the lists the Reference was removed from
        """
        purged = []
        if hint is not None and self.unlink(hint, ref):
            purged.append(hint)
        for key in sorted(self._reverse.get(ref, ())):
            if self.unlink(key, ref):
                purged.append(key)
        if purged:
            logger.debug("Reference purged", extra={"ref": ref.key, "lists": purged})
        return purged

    def evict(self, key: str) -> bool:
        """Drop a list back to NO_DATA so the next read triggers a refetch.

        Returns:
            True if the list existed
        """
        refs = self._lists.pop(key, None)
        if refs is None:
            return False
        for ref in refs:
            self._forget(ref, key)
        logger.debug("List evicted", extra={"list_key": key})
        self._notify(key)
        return True

    def clear(self) -> None:
        """Drop every list (testing helper)."""
        self._lists.clear()
        self._reverse.clear()

    def __len__(self) -> int:
        return len(self._lists)

    def _replace(self, key: str, incoming: list[Reference]) -> list[Reference]:
        previous = self._lists.get(key, [])
        for ref in previous:
            self._forget(ref, key)
        self._lists[key] = list(incoming)
        for ref in incoming:
            self._reverse.setdefault(ref, set()).add(key)
        return list(incoming)

    def _insert_sorted(self, refs: list[Reference], ref: Reference, sort_field: str) -> None:
        key = _sort_key(self._sort_value(ref, sort_field))
        for index, other in enumerate(refs):
            if _sort_key(self._sort_value(other, sort_field)) > key:
                refs.insert(index, ref)
                return
        refs.append(ref)

    def _sort_value(self, ref: Reference, sort_field: str) -> Any:
        if self.store is None:
            return None
        entity = self.store.read_ref(ref)
        return entity.fields.get(sort_field) if entity is not None else None

    def _forget(self, ref: Reference, key: str) -> None:
        keys = self._reverse.get(ref)
        if keys is None:
            return
        keys.discard(key)
        if not keys:
            del self._reverse[ref]

    def _on_store_change(self, change: StoreChange) -> None:
        if change.change_type == ChangeType.DELETED:
            self.purge(change.ref)

    def _notify(self, key: str) -> None:
        for listener in list(self._listeners):
            listener(key)


def _dedupe(references: Iterable[Reference]) -> list[Reference]:
    seen: set[Reference] = set()
    unique = []
    for ref in references:
        if ref not in seen:
            seen.add(ref)
            unique.append(ref)
    return unique


def _sort_key(value: Any) -> tuple[int, Any]:
    """Total ordering over sort field values of any type.

    Numbers sort before strings, strings before other values (compared by
    their text), and entities without the sort field go last.
    """
    if value is None:
        return (3, "")
    if isinstance(value, (int, float)):
        return (0, value)
    if isinstance(value, str):
        return (1, value)
    return (2, str(value))
