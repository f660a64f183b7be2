"""Change infrastructure layer."""

from servicedesk.changes.infrastructure.repositories import (
    InMemoryChangeRepository,
    SQLAlchemyChangeRepository,
)

__all__ = ["InMemoryChangeRepository", "SQLAlchemyChangeRepository"]
