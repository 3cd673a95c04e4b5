"""
Streaming module for LiveCache - partial field accumulation.

This module handles:
- Per-entity buffers that concatenate field fragments
- Capacity (LRU) and TTL bounds on those buffers

Invariants:
    - Only streaming buffers are pressure-evicted
    - A fragment for an evicted buffer starts a fresh buffer
"""

from .accumulator import BufferEntry, StreamingAccumulator, concat_fragments
from .eviction import EvictionPolicy

__all__ = [
    "BufferEntry",
    "StreamingAccumulator",
    "concat_fragments",
    "EvictionPolicy",
]
