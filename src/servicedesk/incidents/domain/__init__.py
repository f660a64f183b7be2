"""
Incident Domain Layer
=====================

Incident entity, priority derivation and the status transition table.
"""

from servicedesk.incidents.domain.entities import (
    Incident,
    Requester,
    Assignee,
    Worklog,
    Resolution,
)
from servicedesk.incidents.domain.rules import (
    PRIORITY_MATRIX,
    INCIDENT_TRANSITIONS,
    derive_priority,
)

__all__ = [
    "Incident",
    "Requester",
    "Assignee",
    "Worklog",
    "Resolution",
    "PRIORITY_MATRIX",
    "INCIDENT_TRANSITIONS",
    "derive_priority",
]
