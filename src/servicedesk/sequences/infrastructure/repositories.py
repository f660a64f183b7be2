"""
Counter Repositories
====================

Concrete implementations of ICounterRepository.
"""

import asyncio
from typing import Dict, Tuple

from sqlalchemy import case, insert, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from servicedesk.core.exceptions import ConcurrencyConflictException
from servicedesk.sequences.application.services import ICounterRepository
from servicedesk.shared.infrastructure.database import CounterModel


class InMemoryCounterRepository(ICounterRepository):
    """Lock-guarded counters for tests and single-process deployments."""

    def __init__(self):
        self._counters: Dict[str, Tuple[int, int]] = {}
        self._lock = asyncio.Lock()

    async def increment(self, prefix: str, year: int) -> int:
        async with self._lock:
            sequence, stored_year = self._counters.get(prefix, (0, year))
            sequence = sequence + 1 if stored_year == year else 1
            self._counters[prefix] = (sequence, year)
            return sequence

    async def current(self, prefix: str) -> tuple[int, int] | None:
        return self._counters.get(prefix)


class SQLAlchemyCounterRepository(ICounterRepository):
    """
    SQLAlchemy implementation of the counter store.

    The increment and the year reset happen in one UPDATE ... RETURNING
    statement, so the database serializes concurrent callers on the row.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def increment(self, prefix: str, year: int) -> int:
        stmt = (
            update(CounterModel)
            .where(CounterModel.prefix == prefix)
            .values(
                sequence=case(
                    (CounterModel.year == year, CounterModel.sequence + 1),
                    else_=1,
                ),
                year=year,
            )
            .returning(CounterModel.sequence)
        )

        async with self._session_factory() as session:
            sequence = (await session.execute(stmt)).scalar_one_or_none()
            if sequence is not None:
                await session.commit()
                return sequence

            # First use of this prefix
            try:
                await session.execute(
                    insert(CounterModel).values(prefix=prefix, sequence=1, year=year)
                )
                await session.commit()
            except IntegrityError as exc:
                await session.rollback()
                raise ConcurrencyConflictException("counter", prefix) from exc
            return 1

    async def current(self, prefix: str) -> tuple[int, int] | None:
        async with self._session_factory() as session:
            row = (await session.execute(
                select(CounterModel.sequence, CounterModel.year).where(CounterModel.prefix == prefix)
            )).one_or_none()
            return (row.sequence, row.year) if row is not None else None
