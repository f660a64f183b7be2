"""
Incident Infrastructure Repositories
====================================

Concrete implementations of IIncidentRepository.
"""

from servicedesk.incidents.application.services import IIncidentRepository
from servicedesk.incidents.domain import Incident
from servicedesk.shared.infrastructure.documents import SQLAlchemyDocumentRepository
from servicedesk.shared.infrastructure.memory import InMemoryRepository


class InMemoryIncidentRepository(InMemoryRepository[Incident], IIncidentRepository):
    entity_type = Incident
    key_field = "incident_id"


class SQLAlchemyIncidentRepository(SQLAlchemyDocumentRepository[Incident], IIncidentRepository):
    """SQLAlchemy implementation of incident repository."""

    entity_type = Incident
    key_field = "incident_id"
    collection = "incidents"
    array_fields = frozenset({"tags"})
