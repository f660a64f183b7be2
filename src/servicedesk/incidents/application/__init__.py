"""
Incident Application Layer
==========================

IncidentWorkflow, its repository port and DTOs.
"""

from servicedesk.incidents.application.services import IIncidentRepository, IncidentWorkflow
from servicedesk.incidents.application.dto import (
    CreateIncidentDTO,
    UpdateIncidentDTO,
    ResolutionDTO,
    WorklogDTO,
    IncidentFilterDTO,
    IncidentStats,
)

__all__ = [
    "IIncidentRepository",
    "IncidentWorkflow",
    "CreateIncidentDTO",
    "UpdateIncidentDTO",
    "ResolutionDTO",
    "WorklogDTO",
    "IncidentFilterDTO",
    "IncidentStats",
]
