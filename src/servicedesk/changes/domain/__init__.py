"""
Change Domain Layer
===================

Change request entity, CAB approval record and transition rules.
"""

from servicedesk.changes.domain.entities import (
    Change,
    CabApproval,
    CabMember,
    ChangeOwner,
    ChangeSchedule,
    RequestedBy,
)
from servicedesk.changes.domain.rules import CHANGE_TRANSITIONS, is_cab_required

__all__ = [
    "Change",
    "CabApproval",
    "CabMember",
    "ChangeOwner",
    "ChangeSchedule",
    "RequestedBy",
    "CHANGE_TRANSITIONS",
    "is_cab_required",
]
