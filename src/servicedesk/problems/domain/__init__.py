"""
Problem Domain Layer
====================

Problem entity and known error record.
"""

from servicedesk.problems.domain.entities import (
    Problem,
    ProblemOwner,
    AssignedGroup,
    KnownError,
    OPEN_PROBLEM_STATUSES,
)

__all__ = [
    "Problem",
    "ProblemOwner",
    "AssignedGroup",
    "KnownError",
    "OPEN_PROBLEM_STATUSES",
]
