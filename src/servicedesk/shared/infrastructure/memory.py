"""
In-Memory Repositories
======================

Process-local implementation of the repository port.

Entities are kept as JSON snapshots so callers never share mutable state
with the store. A single asyncio.Lock per repository serializes writes,
which makes find_one_and_update and find_and_update_many atomic within
one event loop. Used by tests and single-process deployments.
"""

import asyncio
import copy
from typing import Any, Callable, Dict, Generic, List, Optional, Sequence

from servicedesk.core.exceptions import RepositoryException
from servicedesk.shared.application.repository import (
    DEFAULT_SORT,
    E,
    Filters,
    IRepository,
    Page,
    SortSpec,
)
from servicedesk.shared.infrastructure.filters import MISSING, matches_filters, resolve_path


class InMemoryRepository(IRepository[E], Generic[E]):
    """Dictionary-backed repository keyed by the entity's business key."""

    def __init__(self):
        self._documents: Dict[str, dict] = {}
        self._lock = asyncio.Lock()

    # ========== Reads ==========

    async def find_by_id(self, entity_id: str) -> Optional[E]:
        document = self._documents.get(entity_id)
        return self._to_entity(document) if document is not None else None

    async def find_one(self, filters: Filters) -> Optional[E]:
        for document in self._sorted(self._matching(filters), DEFAULT_SORT):
            return self._to_entity(document)
        return None

    async def find_all(self, filters: Optional[Filters] = None, sort: SortSpec = DEFAULT_SORT) -> List[E]:
        return [self._to_entity(d) for d in self._sorted(self._matching(filters), sort)]

    async def find(
        self,
        filters: Optional[Filters] = None,
        page: int = 1,
        limit: int = 20,
        sort: SortSpec = DEFAULT_SORT
    ) -> Page[E]:
        page, limit = max(page, 1), max(limit, 1)
        documents = self._sorted(self._matching(filters), sort)
        start = (page - 1) * limit
        data = [self._to_entity(d) for d in documents[start:start + limit]]
        return Page.build(data, page, limit, len(documents))

    async def count(self, filters: Optional[Filters] = None) -> int:
        return len(self._matching(filters))

    async def search_text(
        self,
        fields: Sequence[str],
        text: str,
        limit: int = 50,
        sort: SortSpec = DEFAULT_SORT
    ) -> List[E]:
        needle = text.casefold()

        def hit(document: dict) -> bool:
            values = (resolve_path(document, f) for f in fields)
            return any(isinstance(v, str) and needle in v.casefold() for v in values)

        hits = [d for d in self._documents.values() if hit(d)]
        return [self._to_entity(d) for d in self._sorted(hits, sort)[:max(limit, 1)]]

    # ========== Writes ==========

    async def create(self, entity: E) -> E:
        key = self.key_of(entity)
        async with self._lock:
            if key in self._documents:
                raise RepositoryException(f"{self.entity_type.__name__} {key} already exists")
            self._documents[key] = entity.model_dump(mode="json")
        return self._to_entity(self._documents[key])

    async def delete(self, entity_id: str) -> bool:
        async with self._lock:
            return self._documents.pop(entity_id, None) is not None

    async def find_one_and_update(
        self,
        entity_id: str,
        mutate: Callable[[E], Any]
    ) -> Optional[E]:
        async with self._lock:
            document = self._documents.get(entity_id)
            if document is None:
                return None
            entity = self._to_entity(document)
            mutate(entity)
            self._documents[entity_id] = entity.model_dump(mode="json")
            return self._to_entity(self._documents[entity_id])

    async def find_and_update_many(
        self,
        filters: Filters,
        mutate: Callable[[E], Any]
    ) -> List[E]:
        async with self._lock:
            staged = {}
            for document in self._matching(filters):
                entity = self._to_entity(document)
                mutate(entity)
                staged[self.key_of(entity)] = entity.model_dump(mode="json")
            # All mutations succeeded; publish together.
            self._documents.update(staged)
            return [self._to_entity(d) for d in staged.values()]

    # ========== Helpers ==========

    def _to_entity(self, document: dict) -> E:
        return self.entity_type.model_validate(copy.deepcopy(document))

    def _matching(self, filters: Optional[Filters]) -> List[dict]:
        if not filters:
            return list(self._documents.values())
        return [d for d in self._documents.values() if matches_filters(d, filters)]

    @staticmethod
    def _sorted(documents: List[dict], sort: SortSpec) -> List[dict]:
        result = list(documents)
        # Stable sorts applied from the least significant key.
        for path, descending in reversed(list(sort)):
            present = [d for d in result if resolve_path(d, path) not in (None, MISSING)]
            absent = [d for d in result if resolve_path(d, path) in (None, MISSING)]
            present.sort(key=lambda d: resolve_path(d, path), reverse=descending)
            result = present + absent
        return result

