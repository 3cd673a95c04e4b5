"""
Change event types for LiveCache.

Inbound change events are a tagged union discriminated by `kind`:
- added: an entity appeared (optionally into a list)
- updated: an entity's fields changed
- deleted: an entity is gone
- partial_update: a fragment of a field that is still streaming

Events are validated once, at the router boundary, with pydantic. Raw
payloads from the transport use either snake_case or camelCase keys
(list_key/listKey, is_partial/isPartial) and any capitalization of the
kind ("Added", "PartialUpdate", "partial-update").

Invariants:
    - type and id are mandatory and non-empty
    - ids are carried as strings; numeric ids are converted
    - fields is always a dict (a missing or null fields becomes {})
"""

from __future__ import annotations

from collections.abc import Mapping
from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Discriminator,
    Field,
    Tag,
    TypeAdapter,
    ValidationError,
    field_validator,
)

from ..errors import MalformedEventError
from ..store.entity_store import Reference
from ..store.query_index import MergePolicy


class EventKind(str, Enum):
    """Discriminant of a change event."""

    ADDED = "added"
    UPDATED = "updated"
    DELETED = "deleted"
    PARTIAL_UPDATE = "partial_update"


_KIND_ALIASES = {
    "added": EventKind.ADDED,
    "created": EventKind.ADDED,
    "updated": EventKind.UPDATED,
    "deleted": EventKind.DELETED,
    "partialupdate": EventKind.PARTIAL_UPDATE,
    "partial": EventKind.PARTIAL_UPDATE,
}


def normalize_kind(value: Any) -> str | None:
    """Map a raw kind value to its canonical string, or None if unknown."""
    if isinstance(value, EventKind):
        return value.value
    if not isinstance(value, str):
        return None
    compact = value.replace("_", "").replace("-", "").lower()
    kind = _KIND_ALIASES.get(compact)
    return kind.value if kind is not None else None


class _EventBase(BaseModel):
    """Fields shared by every change event."""

    model_config = ConfigDict(populate_by_name=True, frozen=True, extra="ignore")

    type: str = Field(..., min_length=1, description="Entity type name")
    id: str = Field(..., min_length=1, description="Entity identifier")
    fields: dict[str, Any] = Field(default_factory=dict, description="Field values")
    list_key: str | None = Field(None, alias="listKey", description="Target list key")

    @field_validator("kind", mode="before", check_fields=False)
    @classmethod
    def _normalize_kind(cls, value: Any) -> Any:
        return normalize_kind(value) or value

    @field_validator("type", "id", mode="before")
    @classmethod
    def _coerce_identity(cls, value: Any) -> Any:
        if isinstance(value, bool):
            return value
        if isinstance(value, int):
            return str(value)
        return value

    @field_validator("fields", mode="before")
    @classmethod
    def _default_fields(cls, value: Any) -> Any:
        return {} if value is None else value

    @property
    def ref(self) -> Reference:
        """Reference to the entity this event is about."""
        return Reference(self.type, self.id)


class AddedEvent(_EventBase):
    """An entity appeared."""

    kind: Literal["added"] = "added"
    is_partial: bool = Field(False, alias="isPartial")


class UpdatedEvent(_EventBase):
    """An entity's fields changed."""

    kind: Literal["updated"] = "updated"
    is_partial: bool = Field(False, alias="isPartial")


class DeletedEvent(_EventBase):
    """An entity was removed."""

    kind: Literal["deleted"] = "deleted"


class PartialUpdateEvent(_EventBase):
    """A fragment of one or more streaming fields."""

    kind: Literal["partial_update"] = "partial_update"


def _event_discriminator(value: Any) -> str | None:
    if isinstance(value, Mapping):
        return normalize_kind(value.get("kind"))
    return normalize_kind(getattr(value, "kind", None))


ChangeEvent = Annotated[
    Union[
        Annotated[AddedEvent, Tag("added")],
        Annotated[UpdatedEvent, Tag("updated")],
        Annotated[DeletedEvent, Tag("deleted")],
        Annotated[PartialUpdateEvent, Tag("partial_update")],
    ],
    Discriminator(_event_discriminator),
]

_change_event_adapter: TypeAdapter[Any] = TypeAdapter(ChangeEvent)


def parse_event(data: Any) -> AddedEvent | UpdatedEvent | DeletedEvent | PartialUpdateEvent:
    """Validate a raw payload into a typed change event.

    Args:
        data: Mapping from the transport, or an already typed event

    Returns:
        Typed change event

    Raises:
        MalformedEventError: If the payload fails validation
    """
    if isinstance(data, _EventBase):
        return data  # type: ignore[return-value]
    if not isinstance(data, Mapping):
        raise MalformedEventError(
            f"Change event must be a mapping, got {type(data).__name__}",
            errors=["not a mapping"],
        )

    kind = data.get("kind")
    try:
        return _change_event_adapter.validate_python(dict(data))
    except ValidationError as e:
        errors = format_validation_errors(e)
        raise MalformedEventError(
            f"Malformed {kind or 'unknown'} event: {'; '.join(errors)}",
            errors=errors,
            event_kind=str(kind) if kind is not None else None,
        ) from e


def is_partial(event: _EventBase) -> bool:
    """Whether the event carries streaming fragments rather than final values."""
    if isinstance(event, PartialUpdateEvent):
        return True
    return bool(getattr(event, "is_partial", False))


_TAGS = {"added", "updated", "deleted", "partial_update"}


def format_validation_errors(error: ValidationError) -> list[str]:
    """Flatten a pydantic ValidationError into "field: message" strings."""
    messages = []
    for err in error.errors():
        location = ".".join(str(part) for part in err.get("loc", ()) if part not in _TAGS)
        message = err.get("msg", "invalid")
        messages.append(f"{location}: {message}" if location else message)
    return messages


class HydrationItem(BaseModel):
    """One entity of a point-in-time query result."""

    model_config = ConfigDict(frozen=True)

    type: str = Field(..., min_length=1)
    id: str = Field(..., min_length=1)
    fields: dict[str, Any] = Field(default_factory=dict)

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, value: Any) -> Any:
        if isinstance(value, int) and not isinstance(value, bool):
            return str(value)
        return value

    @property
    def ref(self) -> Reference:
        """Reference to the entity."""
        return Reference(self.type, self.id)


class QueryHydration(BaseModel):
    """A point-in-time query result and the list it belongs to.

    Attributes:
        list_key: List the items are linked under
        items: Entities of the result, in server order
        policy: Merge policy override; the list's declared policy if None
    """

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    list_key: str = Field(..., min_length=1, alias="listKey")
    items: list[HydrationItem] = Field(default_factory=list)
    policy: MergePolicy | None = None

    @classmethod
    def from_items(
        cls,
        list_key: str,
        items: list[Mapping[str, Any]],
        policy: MergePolicy | None = None,
    ) -> QueryHydration:
        """Build a hydration from plain {"type", "id", "fields"} mappings."""
        return cls(list_key=list_key, items=[HydrationItem(**item) for item in items], policy=policy)
