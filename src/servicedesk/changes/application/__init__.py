"""
Change Application Layer
========================

ChangeWorkflow, its repository port and DTOs.
"""

from servicedesk.changes.application.services import IChangeRepository, ChangeWorkflow
from servicedesk.changes.application.dto import (
    CreateChangeDTO,
    UpdateChangeDTO,
    CabMemberDTO,
    ScheduleDTO,
    ChangeFilterDTO,
    ChangeStats,
)

__all__ = [
    "IChangeRepository",
    "ChangeWorkflow",
    "CreateChangeDTO",
    "UpdateChangeDTO",
    "CabMemberDTO",
    "ScheduleDTO",
    "ChangeFilterDTO",
    "ChangeStats",
]
