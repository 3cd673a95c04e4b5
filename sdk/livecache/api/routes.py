"""
API routes for the LiveCache inspection API.

Read-only views of one engine's entity store, lists and counters.
List keys contain ':' and '=' so the list route takes the key as a path.
"""

import logging
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel, Field

from ..engine import CacheEngine
from ..store.query_index import NO_DATA

logger = logging.getLogger(__name__)

router = APIRouter(tags=["LiveCache"])


# --- Response Models ---


class ReferenceResponse(BaseModel):
    """Reference to an entity."""

    type: str
    id: str


class EntityResponse(BaseModel):
    """Entity response."""

    type: str
    id: str
    fields: dict[str, Any]
    version: int
    streaming: bool = Field(False, description="Whether fragments are still arriving")


class ListResponse(BaseModel):
    """List response.

    fetched is False when the list was never populated, which is different
    from a populated list with no items.
    """

    list_key: str
    fetched: bool
    policy: str
    items: list[ReferenceResponse]


class StatsResponse(BaseModel):
    """Engine counters."""

    entities: int
    lists: int
    watchers: int
    streaming: dict[str, Any]
    router: dict[str, Any]


# --- Dependencies ---


def get_engine(request: Request) -> CacheEngine:
    """Get engine from app state."""
    return request.app.state.engine


# --- Routes ---


@router.get("/entities/{entity_type}/{entity_id}", response_model=EntityResponse)
async def get_entity(
    entity_type: str,
    entity_id: str,
    engine: CacheEngine = Depends(get_engine),
) -> EntityResponse:
    """Get an entity by type and id."""
    entity = engine.read(entity_type, entity_id)
    if entity is None:
        raise HTTPException(status_code=404, detail=f"Entity {entity_type}:{entity_id} not found")

    return EntityResponse(
        type=entity.type,
        id=entity.id,
        fields=entity.fields,
        version=entity.version,
        streaming=engine.streaming_value(entity_type, entity_id) is not None,
    )


@router.get("/lists/{list_key:path}", response_model=ListResponse)
async def get_list(
    list_key: str,
    engine: CacheEngine = Depends(get_engine),
) -> ListResponse:
    """Get the references of a list."""
    refs = engine.resolve(list_key)
    policy = engine.index.policy_for(list_key).value

    if refs is NO_DATA:
        return ListResponse(list_key=list_key, fetched=False, policy=policy, items=[])

    return ListResponse(
        list_key=list_key,
        fetched=True,
        policy=policy,
        items=[ReferenceResponse(type=ref.type, id=ref.id) for ref in refs],
    )


@router.get("/stats", response_model=StatsResponse)
async def get_stats(engine: CacheEngine = Depends(get_engine)) -> StatsResponse:
    """Get engine statistics."""
    return StatsResponse(**engine.stats)
