"""
Problem Application Layer
=========================

ProblemWorkflow, its repository port and DTOs.
"""

from servicedesk.problems.application.services import IProblemRepository, ProblemWorkflow
from servicedesk.problems.application.dto import (
    CreateProblemDTO,
    UpdateProblemDTO,
    KnownErrorDTO,
    ProblemFilterDTO,
    ProblemStats,
)

__all__ = [
    "IProblemRepository",
    "ProblemWorkflow",
    "CreateProblemDTO",
    "UpdateProblemDTO",
    "KnownErrorDTO",
    "ProblemFilterDTO",
    "ProblemStats",
]
