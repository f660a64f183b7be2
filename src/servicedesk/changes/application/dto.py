"""
Change Application DTOs
=======================

Data Transfer Objects for change request operations.
"""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field, model_validator

from servicedesk.config import ChangeStatus, ChangeType, Impact, Priority, RiskLevel
from servicedesk.changes.domain import ChangeOwner, RequestedBy


# ========== Request DTOs ==========

class CabMemberDTO(BaseModel):
    member_id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    role: str = Field(..., min_length=1)


class ScheduleDTO(BaseModel):
    planned_start: datetime
    planned_end: datetime
    maintenance_window: Optional[str] = None

    @model_validator(mode="after")
    def validate_window(self) -> "ScheduleDTO":
        if self.planned_end <= self.planned_start:
            raise ValueError("planned_end must be after planned_start")
        return self


class CreateChangeDTO(BaseModel):
    """DTO for creating a change request. Plans may be completed before submission."""
    type: ChangeType
    title: str = Field(..., min_length=1, max_length=200)
    description: str = Field(..., min_length=1)
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
    schedule: Optional[ScheduleDTO] = None
    affected_services: List[str] = Field(default_factory=list)
    affected_cis: List[str] = Field(default_factory=list)
    site_id: str = Field(..., min_length=1)
    tags: List[str] = Field(default_factory=list)
    reason_for_change: str = ""
    business_justification: Optional[str] = None
    linked_problems: List[str] = Field(default_factory=list)
    linked_incidents: List[str] = Field(default_factory=list)
    cab_members: List[CabMemberDTO] = Field(default_factory=list)


class UpdateChangeDTO(BaseModel):
    """DTO for updating a change request. Only set fields are applied."""
    title: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = Field(None, min_length=1)
    priority: Optional[Priority] = None
    impact: Optional[Impact] = None
    risk: Optional[RiskLevel] = None
    risk_assessment: Optional[str] = None
    implementation_plan: Optional[str] = None
    rollback_plan: Optional[str] = None
    test_plan: Optional[str] = None
    communication_plan: Optional[str] = None
    schedule: Optional[ScheduleDTO] = None
    affected_services: Optional[List[str]] = None
    affected_cis: Optional[List[str]] = None
    reason_for_change: Optional[str] = None
    business_justification: Optional[str] = None


class ChangeFilterDTO(BaseModel):
    """Query parameters for listing changes."""
    status: List[ChangeStatus] = Field(default_factory=list)
    type: List[ChangeType] = Field(default_factory=list)
    priority: List[Priority] = Field(default_factory=list)
    requester: Optional[str] = None
    owner: Optional[str] = None
    site_id: Optional[str] = None
    scheduled_from: Optional[datetime] = None
    scheduled_to: Optional[datetime] = None
    page: int = Field(default=1, ge=1)
    limit: int = Field(default=20, ge=1, le=100)


# ========== Response DTOs ==========

class ChangeStats(BaseModel):
    total: int
    draft: int
    pending_approval: int
    approved: int
    scheduled: int
    implementing: int
    completed: int
    failed: int
