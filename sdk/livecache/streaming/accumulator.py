"""
Streaming accumulator for LiveCache.

Some entity fields arrive as a sequence of fragments, for example a
long-running log message delivered token by token, followed by a final
delivery carrying the complete value. The accumulator concatenates the
fragments per entity and field so observers always see the cumulative
value, never a shorter one than before.

Invariants:
    - A buffered string equals the ordered concatenation of every fragment
      received since the buffer was created
    - None is the identity element of concatenation; a blank fragment
      never erases accumulated text
    - Fragments are merged in arrival order; nothing is reordered
    - Buffers are bounded by the EvictionPolicy (capacity and TTL)

How to change safely:
    - If the transport starts reordering fragments, add a per-entity
      sequence number upstream and reject out-of-order fragments here
"""

from __future__ import annotations

import logging
from collections import OrderedDict
from collections.abc import Hashable, Mapping
from dataclasses import dataclass, field
from typing import Any

from .eviction import EvictionPolicy

logger = logging.getLogger(__name__)


def concat_fragments(existing: Any, incoming: Any) -> Any:
    """Merge one fragment into an accumulated value.

    Strings concatenate. None on either side is the identity element.
    Any other incoming value replaces the accumulated one.

    Example:
        >>> concat_fragments("Hel", "lo")
        'Hello'
        >>> concat_fragments("Hel", None)
        'Hel'
        >>> concat_fragments(None, None) is None
        True
    """
    if incoming is None:
        return existing
    if existing is None:
        return incoming
    if isinstance(existing, str) and isinstance(incoming, str):
        return existing + incoming
    return incoming


@dataclass
class BufferEntry:
    """Accumulated fragments of one entity that is still streaming.

    Attributes:
        key: Entity the fragments belong to
        partial_fields: Accumulated value per field
        created_at: Policy-clock time of the first fragment
        expires_at: Policy-clock time at which the buffer is dropped
        fragments: Number of fragments merged so far
    """

    key: Hashable
    partial_fields: dict[str, Any] = field(default_factory=dict)
    created_at: float = 0.0
    expires_at: float = 0.0
    fragments: int = 0


class StreamingAccumulator:
    """Bounded per-entity buffers of partial field values.

    Example:
        >>> acc = StreamingAccumulator()
        >>> acc.accumulate("X", {"message": "Hel"})
        {'message': 'Hel'}
        >>> acc.accumulate("X", {"message": "lo"})
        {'message': 'Hello'}
        >>> acc.close("X")
    """

    def __init__(self, policy: EvictionPolicy | None = None) -> None:
        """Initialize the accumulator.

        Args:
            policy: Capacity/TTL bounds; defaults to EvictionPolicy()
        """
        self.policy = policy or EvictionPolicy()
        self._entries: OrderedDict[Hashable, BufferEntry] = OrderedDict()
        self._evicted_count = 0
        self._expired_count = 0

    def accumulate(
        self,
        key: Hashable,
        fragment: Mapping[str, Any],
        seed: Mapping[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Merge a fragment into the entity's buffer.

        A fragment for an unknown or expired buffer opens a fresh one.

        Args:
            key: Entity the fragment belongs to
            fragment: Field values of this fragment
            seed: Values a field starts from the first time it is
                buffered (the entity's last known value); empty if None

        Returns:
            Full cumulative field map after the merge
        """
        now = self.policy.now()
        entry = self._entries.get(key)

        if entry is not None and self.policy.is_expired(entry.expires_at, now):
            logger.debug("Streaming buffer expired", extra={"key": str(key)})
            del self._entries[key]
            self._expired_count += 1
            entry = None

        if entry is None:
            entry = BufferEntry(
                key=key,
                created_at=now,
                expires_at=self.policy.expires_at(now),
            )
            self._entries[key] = entry
        else:
            self._entries.move_to_end(key)

        for name, value in fragment.items():
            if name not in entry.partial_fields and seed is not None:
                entry.partial_fields[name] = seed.get(name)
            entry.partial_fields[name] = concat_fragments(entry.partial_fields.get(name), value)
        entry.fragments += 1

        for victim in self.policy.overflow(self._entries):
            del self._entries[victim]
            self._evicted_count += 1
            logger.debug("Streaming buffer evicted", extra={"key": str(victim)})

        return dict(entry.partial_fields)

    def close(self, key: Hashable) -> None:
        """Drop the buffer; the terminal payload for key is authoritative."""
        if self._entries.pop(key, None) is not None:
            logger.debug("Streaming buffer closed", extra={"key": str(key)})

    def peek(self, key: Hashable) -> dict[str, Any] | None:
        """Get the cumulative fields of a live buffer without touching it."""
        entry = self._entries.get(key)
        if entry is None or self.policy.is_expired(entry.expires_at):
            return None
        return dict(entry.partial_fields)

    def sweep(self) -> list[Hashable]:
        """Drop every expired buffer.

        Returns:
            Keys of the dropped buffers
        """
        now = self.policy.now()
        expired = [
            key
            for key, entry in self._entries.items()
            if self.policy.is_expired(entry.expires_at, now)
        ]
        for key in expired:
            del self._entries[key]
        self._expired_count += len(expired)
        if expired:
            logger.debug("Swept expired streaming buffers", extra={"count": len(expired)})
        return expired

    def clear(self) -> None:
        """Drop every buffer."""
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    @property
    def stats(self) -> dict[str, Any]:
        """Get accumulator statistics."""
        return {
            "resident": len(self._entries),
            "max_entries": self.policy.max_entries,
            "evicted_count": self._evicted_count,
            "expired_count": self._expired_count,
        }
