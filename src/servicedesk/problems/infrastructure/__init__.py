"""Problem infrastructure layer."""

from servicedesk.problems.infrastructure.repositories import (
    InMemoryProblemRepository,
    SQLAlchemyProblemRepository,
)

__all__ = ["InMemoryProblemRepository", "SQLAlchemyProblemRepository"]
