"""
SLA Application Layer
=====================

SLA engine, policy service, repository and notifier ports, DTOs.
"""

from servicedesk.sla.application.services import (
    ISLAPolicyRepository,
    ISLAPolicySource,
    ISLANotifier,
    SLAEngine,
    SLAPolicyService,
)
from servicedesk.sla.application.dto import (
    SLAPolicyCreateDTO,
    SLAPolicyUpdateDTO,
    SLAPolicyFileDTO,
    SLAEvaluationSummary,
)

__all__ = [
    "ISLAPolicyRepository",
    "ISLAPolicySource",
    "ISLANotifier",
    "SLAEngine",
    "SLAPolicyService",
    "SLAPolicyCreateDTO",
    "SLAPolicyUpdateDTO",
    "SLAPolicyFileDTO",
    "SLAEvaluationSummary",
]
