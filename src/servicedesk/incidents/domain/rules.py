"""
Incident Rules
==============

Priority matrix and the incident status transition table.
"""

from typing import Dict

from servicedesk.config import Impact, IncidentStatus, Priority, Urgency
from servicedesk.shared.domain import TransitionTable

PRIORITY_MATRIX: Dict[Impact, Dict[Urgency, Priority]] = {
    Impact.HIGH: {
        Urgency.HIGH: Priority.CRITICAL,
        Urgency.MEDIUM: Priority.HIGH,
        Urgency.LOW: Priority.MEDIUM,
    },
    Impact.MEDIUM: {
        Urgency.HIGH: Priority.HIGH,
        Urgency.MEDIUM: Priority.MEDIUM,
        Urgency.LOW: Priority.LOW,
    },
    Impact.LOW: {
        Urgency.HIGH: Priority.MEDIUM,
        Urgency.MEDIUM: Priority.LOW,
        Urgency.LOW: Priority.LOW,
    },
}


def derive_priority(impact: Impact, urgency: Urgency) -> Priority:
    """Priority from the impact x urgency matrix."""
    return PRIORITY_MATRIX[Impact(impact)][Urgency(urgency)]


INCIDENT_TRANSITIONS: TransitionTable[IncidentStatus] = TransitionTable("incident", {
    IncidentStatus.OPEN: {
        IncidentStatus.IN_PROGRESS,
        IncidentStatus.PENDING,
        IncidentStatus.RESOLVED,
        IncidentStatus.CANCELLED,
    },
    IncidentStatus.IN_PROGRESS: {
        IncidentStatus.PENDING,
        IncidentStatus.RESOLVED,
        IncidentStatus.CANCELLED,
    },
    IncidentStatus.PENDING: {
        IncidentStatus.IN_PROGRESS,
        IncidentStatus.RESOLVED,
        IncidentStatus.CANCELLED,
    },
    IncidentStatus.RESOLVED: {
        IncidentStatus.OPEN,  # reopen
        IncidentStatus.CLOSED,
    },
    IncidentStatus.CLOSED: set(),
    IncidentStatus.CANCELLED: set(),
})
