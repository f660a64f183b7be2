"""
SQLAlchemy Document Repositories
================================

Concrete implementation of the repository port using SQLAlchemy 2.0 async.

Each entity is stored as a JSON document in the shared `documents` table.
Scalar filters are pushed down to SQL through JSON path accessors; filters
on array fields (e.g. linked incidents) are applied in Python after the
SQL pre-filter. Writes use optimistic concurrency on the `version` column.
"""

import asyncio
import re
from datetime import datetime, timezone
from typing import Any, Callable, ClassVar, FrozenSet, Generic, List, Optional, Sequence

from sqlalchemy import and_, delete, func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from servicedesk.core.exceptions import ConcurrencyConflictException, RepositoryException
from servicedesk.shared.application.repository import (
    DEFAULT_SORT,
    E,
    Filters,
    IRepository,
    Page,
    SortSpec,
    normalize_filter_value,
)
from servicedesk.shared.infrastructure.database import DocumentModel
from servicedesk.shared.infrastructure.logging import get_logger
from servicedesk.shared.infrastructure.filters import matches_filters

logger = get_logger(__name__)


class SQLAlchemyDocumentRepository(IRepository[E], Generic[E]):
    """
    SQLAlchemy implementation of the repository port.

    Subclasses set entity_type, key_field, collection and (optionally)
    array_fields.
    """

    collection: ClassVar[str]
    array_fields: ClassVar[FrozenSet[str]] = frozenset()

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        max_retries: int = 5,
        retry_backoff_seconds: float = 0.01
    ):
        self._session_factory = session_factory
        self._max_retries = max_retries
        self._retry_backoff = retry_backoff_seconds

    # ========== Reads ==========

    async def find_by_id(self, entity_id: str) -> Optional[E]:
        async with self._session_factory() as session:
            row = await session.get(DocumentModel, (self.collection, entity_id))
            return self._to_entity(row) if row is not None else None

    async def find_one(self, filters: Filters) -> Optional[E]:
        rows = await self._select(filters, DEFAULT_SORT)
        return self._to_entity(rows[0]) if rows else None

    async def find_all(self, filters: Optional[Filters] = None, sort: SortSpec = DEFAULT_SORT) -> List[E]:
        return [self._to_entity(row) for row in await self._select(filters, sort)]

    async def find(
        self,
        filters: Optional[Filters] = None,
        page: int = 1,
        limit: int = 20,
        sort: SortSpec = DEFAULT_SORT
    ) -> Page[E]:
        page, limit = max(page, 1), max(limit, 1)
        offset = (page - 1) * limit

        if self._needs_python_filter(filters):
            rows = await self._select(filters, sort)
            data = [self._to_entity(r) for r in rows[offset:offset + limit]]
            return Page.build(data, page, limit, len(rows))

        async with self._session_factory() as session:
            conditions = self._conditions(filters)
            total = (await session.execute(
                select(func.count()).select_from(DocumentModel).where(and_(*conditions))
            )).scalar_one()
            stmt = (
                select(DocumentModel)
                .where(and_(*conditions))
                .order_by(*self._order_by(sort))
                .limit(limit)
                .offset(offset)
            )
            rows = (await session.execute(stmt)).scalars().all()
        return Page.build([self._to_entity(r) for r in rows], page, limit, total)

    async def count(self, filters: Optional[Filters] = None) -> int:
        if self._needs_python_filter(filters):
            return len(await self._select(filters, DEFAULT_SORT))
        async with self._session_factory() as session:
            stmt = select(func.count()).select_from(DocumentModel).where(and_(*self._conditions(filters)))
            return (await session.execute(stmt)).scalar_one()

    async def search_text(
        self,
        fields: Sequence[str],
        text: str,
        limit: int = 50,
        sort: SortSpec = DEFAULT_SORT
    ) -> List[E]:
        pattern = "%" + re.sub(r"([\\%_])", r"\\\1", text) + "%"
        stmt = (
            select(DocumentModel)
            .where(
                DocumentModel.collection == self.collection,
                or_(*(_json_path(f).as_string().ilike(pattern, escape="\\") for f in fields)),
            )
            .order_by(*self._order_by(sort))
            .limit(max(limit, 1))
        )
        async with self._session_factory() as session:
            rows = (await session.execute(stmt)).scalars().all()
        return [self._to_entity(r) for r in rows]

    # ========== Writes ==========

    async def create(self, entity: E) -> E:
        key = self.key_of(entity)
        now = datetime.now(timezone.utc)
        model = DocumentModel(
            collection=self.collection,
            key=key,
            version=1,
            document=entity.model_dump(mode="json"),
            created_at=getattr(entity, "created_at", None) or now,
            updated_at=now,
        )
        async with self._session_factory() as session:
            session.add(model)
            try:
                await session.commit()
            except IntegrityError as exc:
                await session.rollback()
                raise RepositoryException(
                    f"{self.entity_type.__name__} {key} already exists"
                ) from exc
        return self.entity_type.model_validate(entity.model_dump(mode="json"))

    async def delete(self, entity_id: str) -> bool:
        async with self._session_factory() as session:
            result = await session.execute(
                delete(DocumentModel).where(
                    DocumentModel.collection == self.collection,
                    DocumentModel.key == entity_id,
                )
            )
            await session.commit()
            return result.rowcount > 0

    async def find_one_and_update(
        self,
        entity_id: str,
        mutate: Callable[[E], Any]
    ) -> Optional[E]:
        for attempt in range(self._max_retries):
            async with self._session_factory() as session:
                row = await session.get(DocumentModel, (self.collection, entity_id))
                if row is None:
                    return None
                entity = self._to_entity(row)
                mutate(entity)
                if await self._compare_and_swap(session, row, entity):
                    await session.commit()
                    return entity
                await session.rollback()
            await self._backoff(attempt, entity_id)

        raise ConcurrencyConflictException(self.collection, entity_id)

    async def find_and_update_many(
        self,
        filters: Filters,
        mutate: Callable[[E], Any]
    ) -> List[E]:
        for attempt in range(self._max_retries):
            async with self._session_factory() as session:
                stmt = (
                    select(DocumentModel)
                    .where(and_(*self._conditions(filters)))
                    .with_for_update()
                )
                rows = [
                    r for r in (await session.execute(stmt)).scalars().all()
                    if not self._needs_python_filter(filters) or matches_filters(r.document, filters)
                ]
                updated = []
                swapped = True
                for row in rows:
                    entity = self._to_entity(row)
                    mutate(entity)
                    if not await self._compare_and_swap(session, row, entity):
                        swapped = False
                        break
                    updated.append(entity)
                if swapped:
                    await session.commit()
                    return updated
                await session.rollback()
            await self._backoff(attempt, ",".join(f"{k}={v}" for k, v in filters.items()))

        raise ConcurrencyConflictException(self.collection, str(dict(filters)))

    # ========== Helpers ==========

    def _to_entity(self, row: DocumentModel) -> E:
        return self.entity_type.model_validate(row.document)

    async def _compare_and_swap(self, session: AsyncSession, row: DocumentModel, entity: E) -> bool:
        stmt = (
            update(DocumentModel)
            .where(
                DocumentModel.collection == self.collection,
                DocumentModel.key == row.key,
                DocumentModel.version == row.version,
            )
            .values(
                version=row.version + 1,
                document=entity.model_dump(mode="json"),
                updated_at=datetime.now(timezone.utc),
            )
            .execution_options(synchronize_session=False)
        )
        result = await session.execute(stmt)
        return result.rowcount == 1

    async def _backoff(self, attempt: int, key: str) -> None:
        logger.warning(
            "Optimistic update conflict, retrying",
            extra={"collection": self.collection, "key": key, "attempt": attempt + 1}
        )
        if attempt < self._max_retries - 1:
            await asyncio.sleep(self._retry_backoff * (2 ** attempt))

    async def _select(self, filters: Optional[Filters], sort: SortSpec) -> List[DocumentModel]:
        async with self._session_factory() as session:
            stmt = (
                select(DocumentModel)
                .where(and_(*self._conditions(filters)))
                .order_by(*self._order_by(sort))
            )
            rows = list((await session.execute(stmt)).scalars().all())
        if self._needs_python_filter(filters):
            rows = [r for r in rows if matches_filters(r.document, filters)]
        return rows

    def _needs_python_filter(self, filters: Optional[Filters]) -> bool:
        return bool(filters) and any(path in self.array_fields for path in filters)

    def _conditions(self, filters: Optional[Filters]) -> list:
        conditions = [DocumentModel.collection == self.collection]
        for path, expected in (filters or {}).items():
            if path in self.array_fields:
                continue
            conditions.append(_json_condition(path, normalize_filter_value(expected)))
        return conditions

    @staticmethod
    def _order_by(sort: SortSpec) -> list:
        clauses = []
        for path, descending in sort:
            if path == "created_at":
                column = DocumentModel.created_at
            else:
                column = _json_path(path).as_string()
            clauses.append(column.desc() if descending else column.asc())
        return clauses


def _json_path(path: str):
    parts = tuple(path.split("."))
    return DocumentModel.document[parts if len(parts) > 1 else parts[0]]


def _typed(accessor, sample: Any):
    if isinstance(sample, bool):
        return accessor.as_boolean()
    if isinstance(sample, int):
        return accessor.as_integer()
    if isinstance(sample, float):
        return accessor.as_float()
    return accessor.as_string()


def _json_condition(path: str, expected: Any):
    accessor = _json_path(path)
    if isinstance(expected, list):
        if not expected:
            return accessor.as_string().in_([])
        return _typed(accessor, expected[0]).in_(expected)
    if expected is None:
        return accessor.as_string().is_(None)
    return _typed(accessor, expected) == expected
