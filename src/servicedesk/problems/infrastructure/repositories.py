"""
Problem Infrastructure Repositories
===================================

Concrete implementations of IProblemRepository.
"""

from servicedesk.problems.application.services import IProblemRepository
from servicedesk.problems.domain import Problem
from servicedesk.shared.infrastructure.documents import SQLAlchemyDocumentRepository
from servicedesk.shared.infrastructure.memory import InMemoryRepository


class InMemoryProblemRepository(InMemoryRepository[Problem], IProblemRepository):
    entity_type = Problem
    key_field = "problem_id"


class SQLAlchemyProblemRepository(SQLAlchemyDocumentRepository[Problem], IProblemRepository):
    """SQLAlchemy implementation of problem repository."""

    entity_type = Problem
    key_field = "problem_id"
    collection = "problems"
    array_fields = frozenset({"linked_incidents", "linked_changes", "affected_services", "tags"})
