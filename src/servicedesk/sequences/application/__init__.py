"""Sequences application layer."""

from servicedesk.sequences.application.services import (
    ICounterRepository,
    SequenceIdGenerator,
    INCIDENT_PREFIX,
    PROBLEM_PREFIX,
    CHANGE_PREFIX,
    SLA_PREFIX,
)

__all__ = [
    "ICounterRepository",
    "SequenceIdGenerator",
    "INCIDENT_PREFIX",
    "PROBLEM_PREFIX",
    "CHANGE_PREFIX",
    "SLA_PREFIX",
]
