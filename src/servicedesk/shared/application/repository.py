"""
Repository Port
===============

Generic persistence collaborator (Dependency Inversion).

Filters map a field path to an expected value. Nested fields use dotted
paths ("assigned_to.technician_id"). A list/tuple/set value means "one
of"; a scalar compared against an array field means "contains".

find_one_and_update is the atomic read-modify-write primitive: the mutate
callback receives a fresh copy of the entity, may change it in place or
raise to abort, and the result is stored only if nobody else wrote the
entity in between. Adapters retry lost races themselves.
"""

import math
from abc import ABC, abstractmethod
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Generic, List, Mapping, Optional, Sequence, Tuple, TypeVar

from pydantic import BaseModel

E = TypeVar("E", bound=BaseModel)

Filters = Mapping[str, Any]
SortSpec = Sequence[Tuple[str, bool]]  # (field path, descending)

DEFAULT_SORT: SortSpec = (("created_at", True),)


class Page(BaseModel, Generic[E]):
    """One page of results plus pagination metadata."""
    data: List[E]
    page: int
    limit: int
    total: int
    total_pages: int

    @classmethod
    def build(cls, data: List[E], page: int, limit: int, total: int) -> "Page[E]":
        return cls(
            data=data,
            page=page,
            limit=limit,
            total=total,
            total_pages=math.ceil(total / limit) if limit else 0,
        )


class IRepository(ABC, Generic[E]):
    """Interface for entity data access."""

    entity_type: type
    key_field: str

    def key_of(self, entity: E) -> str:
        return str(getattr(entity, self.key_field))

    @abstractmethod
    async def find_by_id(self, entity_id: str) -> Optional[E]:
        """Get entity by its business key."""

    @abstractmethod
    async def find_one(self, filters: Filters) -> Optional[E]:
        """Get the first entity matching filters."""

    @abstractmethod
    async def find_all(self, filters: Optional[Filters] = None, sort: SortSpec = DEFAULT_SORT) -> List[E]:
        """Get every entity matching filters."""

    @abstractmethod
    async def find(
        self,
        filters: Optional[Filters] = None,
        page: int = 1,
        limit: int = 20,
        sort: SortSpec = DEFAULT_SORT
    ) -> Page[E]:
        """List entities with filters and pagination."""

    @abstractmethod
    async def count(self, filters: Optional[Filters] = None) -> int:
        """Count entities matching filters."""

    @abstractmethod
    async def search_text(
        self,
        fields: Sequence[str],
        text: str,
        limit: int = 50,
        sort: SortSpec = DEFAULT_SORT
    ) -> List[E]:
        """Entities where any of fields contains text, ignoring case."""

    @abstractmethod
    async def create(self, entity: E) -> E:
        """Create new entity."""

    @abstractmethod
    async def delete(self, entity_id: str) -> bool:
        """Delete entity. Returns False when it did not exist."""

    @abstractmethod
    async def find_one_and_update(
        self,
        entity_id: str,
        mutate: Callable[[E], Any]
    ) -> Optional[E]:
        """Atomically apply mutate to the stored entity. None if not found."""

    @abstractmethod
    async def find_and_update_many(
        self,
        filters: Filters,
        mutate: Callable[[E], Any]
    ) -> List[E]:
        """Apply mutate to every matching entity inside one atomic scope."""

    async def update(self, entity_id: str, patch: Mapping[str, Any]) -> Optional[E]:
        """Apply a partial update of top-level fields."""
        return await self.find_one_and_update(
            entity_id, lambda entity: apply_patch(entity, patch)
        )


def apply_patch(entity: BaseModel, patch: Mapping[str, Any]) -> None:
    """Validate patch against the entity's model and assign the fields in place."""
    if not patch:
        return
    merged = type(entity).model_validate({**entity.model_dump(), **dict(patch)})
    for name in patch:
        setattr(entity, name, getattr(merged, name))


def normalize_filter_value(value: Any) -> Any:
    """Bring a filter value to its JSON document representation."""
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, (list, tuple, set, frozenset)):
        return [normalize_filter_value(v) for v in value]
    return value
