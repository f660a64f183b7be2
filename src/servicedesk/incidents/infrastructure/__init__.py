"""Incident infrastructure layer."""

from servicedesk.incidents.infrastructure.repositories import (
    InMemoryIncidentRepository,
    SQLAlchemyIncidentRepository,
)

__all__ = ["InMemoryIncidentRepository", "SQLAlchemyIncidentRepository"]
