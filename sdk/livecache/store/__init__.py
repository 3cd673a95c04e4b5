"""
Store module for LiveCache - normalized entities and derived lists.

This module handles:
- The entity store, ground truth for all entity data
- The query result index, keyed lists of References with merge policies

Invariants:
    - Entities are identified by (type, id) and merged field by field
    - Lists hold References only, never entity data
    - Deleting an entity removes it from every list before delete() returns
"""

from .entity_store import ChangeType, Entity, EntityStore, Reference, StoreChange
from .query_index import (
    NO_DATA,
    ListDeclaration,
    MergePolicy,
    QueryResultIndex,
    list_key,
    list_name,
)

__all__ = [
    "ChangeType",
    "Entity",
    "EntityStore",
    "Reference",
    "StoreChange",
    "NO_DATA",
    "ListDeclaration",
    "MergePolicy",
    "QueryResultIndex",
    "list_key",
    "list_name",
]
