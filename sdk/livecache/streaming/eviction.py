"""
Eviction policy for streaming buffers.

Two independent bounds apply to the streaming accumulator:
- Capacity: at most max_entries buffers; the least recently touched
  buffer is evicted first
- Time: every buffer expires a fixed TTL after it was created;
  touching a buffer does not extend its lifetime

Expiry is passive. It is checked when a buffer is touched and by
explicit sweeps; no timer thread is involved.

Invariants:
    - Only streaming buffers are ever evicted, never entity records
    - An evicted buffer is gone; the next fragment starts a fresh one
"""

from __future__ import annotations

import time
from collections import OrderedDict
from collections.abc import Callable, Hashable
from dataclasses import dataclass
from typing import Any

from ..errors import ConfigurationError

Clock = Callable[[], float]


@dataclass(frozen=True)
class EvictionPolicy:
    """Capacity and TTL bounds for streaming buffers.

    Attributes:
        max_entries: Maximum number of resident buffers
        ttl_seconds: Lifetime of a buffer, measured from creation
        clock: Monotonic time source in seconds
    """

    max_entries: int = 500
    ttl_seconds: float = 300.0
    clock: Clock = time.monotonic

    def __post_init__(self) -> None:
        if self.max_entries < 1:
            raise ConfigurationError(
                f"max_entries must be at least 1, got {self.max_entries}", "max_entries"
            )
        if self.ttl_seconds <= 0:
            raise ConfigurationError(
                f"ttl_seconds must be positive, got {self.ttl_seconds}", "ttl_seconds"
            )

    @classmethod
    def from_millis(
        cls,
        max_entries: int,
        ttl_ms: int,
        clock: Clock = time.monotonic,
    ) -> EvictionPolicy:
        """Build a policy from a TTL given in milliseconds."""
        return cls(max_entries=max_entries, ttl_seconds=ttl_ms / 1000.0, clock=clock)

    def now(self) -> float:
        """Current time on the policy clock."""
        return self.clock()

    def expires_at(self, created_at: float) -> float:
        """Expiry time of a buffer created at created_at."""
        return created_at + self.ttl_seconds

    def is_expired(self, expires_at: float, now: float | None = None) -> bool:
        """Whether a buffer with this expiry time is dead."""
        return (self.now() if now is None else now) >= expires_at

    def overflow(self, entries: OrderedDict[Hashable, Any]) -> list[Hashable]:
        """Keys to evict so that entries fits the capacity bound.

        entries must be ordered least recently touched first.
        """
        excess = len(entries) - self.max_entries
        if excess <= 0:
            return []
        victims = []
        for key in entries:
            if len(victims) == excess:
                break
            victims.append(key)
        return victims
