"""Sequences infrastructure layer."""

from servicedesk.sequences.infrastructure.repositories import (
    InMemoryCounterRepository,
    SQLAlchemyCounterRepository,
)

__all__ = ["InMemoryCounterRepository", "SQLAlchemyCounterRepository"]
