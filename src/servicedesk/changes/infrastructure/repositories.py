"""
Change Infrastructure Repositories
==================================

Concrete implementations of IChangeRepository.
"""

from servicedesk.changes.application.services import IChangeRepository
from servicedesk.changes.domain import Change
from servicedesk.shared.infrastructure.documents import SQLAlchemyDocumentRepository
from servicedesk.shared.infrastructure.memory import InMemoryRepository


class InMemoryChangeRepository(InMemoryRepository[Change], IChangeRepository):
    entity_type = Change
    key_field = "change_id"


class SQLAlchemyChangeRepository(SQLAlchemyDocumentRepository[Change], IChangeRepository):
    """SQLAlchemy implementation of change repository."""

    entity_type = Change
    key_field = "change_id"
    collection = "changes"
    array_fields = frozenset({"linked_problems", "linked_incidents", "affected_services", "tags"})
