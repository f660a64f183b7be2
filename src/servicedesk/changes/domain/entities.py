"""
Change Domain Entities
======================

Change requests, their CAB approval record and implementation schedule.
"""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from servicedesk.config import (
    ApprovalStatus,
    ChangeStatus,
    ChangeType,
    Impact,
    Priority,
    RiskLevel,
)
from servicedesk.shared.domain import TimelineEvent, Timelined


class RequestedBy(BaseModel):
    id: str = Field(..., min_length=1)
    name: str
    email: str
    department: str = ""


class ChangeOwner(BaseModel):
    id: str = Field(..., min_length=1)
    name: str
    email: str


class CabMember(BaseModel):
    """One CAB member and their decision."""
    member_id: str = Field(..., min_length=1)
    name: str
    role: str
    decision: ApprovalStatus = ApprovalStatus.PENDING
    decision_at: Optional[datetime] = None
    comments: Optional[str] = None


class CabApproval(BaseModel):
    cab_status: ApprovalStatus = ApprovalStatus.PENDING
    required_approvers: int = Field(default=0, ge=0)
    current_approvers: int = Field(default=0, ge=0)
    members: List[CabMember] = Field(default_factory=list)
    approved_at: Optional[datetime] = None
    rejected_at: Optional[datetime] = None

    def record_decision(
        self,
        member: CabMember,
        decision: ApprovalStatus,
        comments: Optional[str],
        now: datetime
    ) -> None:
        """
        Upsert the member's decision and recount.

        A single rejection rejects the approval regardless of prior
        approvals; otherwise reaching required_approvers approves it.
        """
        existing = next((m for m in self.members if m.member_id == member.member_id), None)
        if existing is None:
            existing = member.model_copy()
            self.members.append(existing)
        existing.decision = decision
        existing.decision_at = now
        existing.comments = comments

        self.current_approvers = sum(1 for m in self.members if m.decision == ApprovalStatus.APPROVED)

        if any(m.decision == ApprovalStatus.REJECTED for m in self.members):
            self.cab_status = ApprovalStatus.REJECTED
            self.rejected_at = now
        elif self.current_approvers >= self.required_approvers:
            self.cab_status = ApprovalStatus.APPROVED
            self.approved_at = now

    def reset(self) -> None:
        """Clear every decision so the change can go through CAB again."""
        for member in self.members:
            member.decision = ApprovalStatus.PENDING
            member.decision_at = None
            member.comments = None
        self.cab_status = ApprovalStatus.PENDING
        self.current_approvers = 0
        self.approved_at = None
        self.rejected_at = None


class ChangeSchedule(BaseModel):
    planned_start: Optional[datetime] = None
    planned_end: Optional[datetime] = None
    actual_start: Optional[datetime] = None
    actual_end: Optional[datetime] = None
    maintenance_window: Optional[str] = None


class Change(Timelined, BaseModel):
    """
    Change request entity.

    Identity is change_id (CHG-<year>-<seq>). cab_required is derived
    from type and risk.
    """

    change_id: str
    type: ChangeType
    title: str = Field(..., min_length=1, max_length=200)
    description: str
    status: ChangeStatus = ChangeStatus.DRAFT
    priority: Priority
    impact: Impact
    risk: RiskLevel
    risk_assessment: str = ""
    requested_by: RequestedBy
    owner: Optional[ChangeOwner] = None
    implementation_plan: str = ""
    rollback_plan: str = ""
    test_plan: Optional[str] = None
    communication_plan: Optional[str] = None
    cab_required: bool
    approval: CabApproval = Field(default_factory=CabApproval)
    schedule: ChangeSchedule = Field(default_factory=ChangeSchedule)
    linked_problems: List[str] = Field(default_factory=list)
    linked_incidents: List[str] = Field(default_factory=list)
    affected_services: List[str] = Field(default_factory=list)
    affected_cis: List[str] = Field(default_factory=list)
    timeline: List[TimelineEvent] = Field(default_factory=list)
    site_id: str
    tags: List[str] = Field(default_factory=list)
    reason_for_change: str = ""
    business_justification: Optional[str] = None
    closed_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    def submission_errors(self) -> List[str]:
        """Every unmet precondition for submitting the change."""
        errors = []
        if not self.implementation_plan:
            errors.append("Implementation plan is required")
        if not self.rollback_plan:
            errors.append("Rollback plan is required")
        if not self.risk_assessment:
            errors.append("Risk assessment is required")
        if not self.affected_services:
            errors.append("At least one affected service is required")
        if not self.schedule.planned_start or not self.schedule.planned_end:
            errors.append("Schedule is required")
        return errors
