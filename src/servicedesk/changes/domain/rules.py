"""
Change Rules
============

CAB requirement and the change status transition table.
"""

from servicedesk.config import ChangeStatus, ChangeType, RiskLevel
from servicedesk.shared.domain import TransitionTable


def is_cab_required(change_type: ChangeType, risk: RiskLevel) -> bool:
    """
    Standard changes are pre-approved and emergency changes bypass CAB
    (reviewed after implementation). Normal changes need CAB unless low risk.
    """
    change_type = ChangeType(change_type)
    if change_type in (ChangeType.STANDARD, ChangeType.EMERGENCY):
        return False
    return RiskLevel(risk) != RiskLevel.LOW


CHANGE_TRANSITIONS: TransitionTable[ChangeStatus] = TransitionTable("change", {
    ChangeStatus.DRAFT: {ChangeStatus.CAB_REVIEW, ChangeStatus.APPROVED, ChangeStatus.CANCELLED},
    ChangeStatus.CAB_REVIEW: {ChangeStatus.APPROVED, ChangeStatus.REJECTED, ChangeStatus.CANCELLED},
    ChangeStatus.APPROVED: {ChangeStatus.SCHEDULED, ChangeStatus.CANCELLED},
    # Editing a rejected change returns it to draft for resubmission
    ChangeStatus.REJECTED: {ChangeStatus.DRAFT, ChangeStatus.CANCELLED},
    ChangeStatus.SCHEDULED: {ChangeStatus.IMPLEMENTING, ChangeStatus.CANCELLED},
    ChangeStatus.IMPLEMENTING: {ChangeStatus.COMPLETED, ChangeStatus.FAILED, ChangeStatus.CANCELLED},
    ChangeStatus.FAILED: {ChangeStatus.CANCELLED},
    ChangeStatus.COMPLETED: set(),
    ChangeStatus.CANCELLED: set(),
})
