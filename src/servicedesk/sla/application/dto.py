"""
SLA Application DTOs
====================

Data Transfer Objects for SLA policy management.

These Pydantic models validate input before it reaches the policy
service. Following YAGNI - only what's needed.
"""

from typing import List, Literal, Optional

from pydantic import BaseModel, Field

from servicedesk.sla.domain.entities import (
    AppliesTo,
    BusinessHours,
    EscalationLevel,
    Notifications,
    TimeTarget,
)

# ========== Type Aliases for Literals ==========
PriorityStr = Literal["critical", "high", "medium", "low"]


# ========== Request DTOs ==========

class SLAPolicyCreateDTO(BaseModel):
    """DTO for creating an SLA policy."""
    sla_id: Optional[str] = Field(None, description="Explicit id; generated when omitted")
    name: str = Field(..., min_length=1, max_length=100)
    name_ar: Optional[str] = Field(None, max_length=100)
    description: str = Field(default="", max_length=500)
    description_ar: Optional[str] = Field(None, max_length=500)
    priority: PriorityStr
    response_time: TimeTarget
    resolution_time: TimeTarget
    escalation_matrix: List[EscalationLevel] = Field(default_factory=list)
    business_hours: Optional[BusinessHours] = Field(
        None,
        description="Calendar; Sunday-Thursday 08:00-17:00 in the default timezone when omitted"
    )
    notifications: Notifications = Field(default_factory=Notifications)
    applies_to: AppliesTo = Field(default_factory=AppliesTo)
    is_default: bool = False
    is_active: bool = True


class SLAPolicyUpdateDTO(BaseModel):
    """DTO for updating an SLA policy. Only set fields are applied."""
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    name_ar: Optional[str] = Field(None, max_length=100)
    description: Optional[str] = Field(None, max_length=500)
    description_ar: Optional[str] = Field(None, max_length=500)
    response_time: Optional[TimeTarget] = None
    resolution_time: Optional[TimeTarget] = None
    escalation_matrix: Optional[List[EscalationLevel]] = None
    business_hours: Optional[BusinessHours] = None
    notifications: Optional[Notifications] = None
    applies_to: Optional[AppliesTo] = None
    is_default: Optional[bool] = None
    is_active: Optional[bool] = None


class SLAPolicyFileDTO(BaseModel):
    """Top-level shape of the SLA policy seed file."""
    policies: List[SLAPolicyCreateDTO] = Field(default_factory=list)


# ========== Response DTOs ==========

class SLAEvaluationSummary(BaseModel):
    """Outcome of one breach sweep over open incidents."""
    evaluated: int = 0
    breached: int = 0
    newly_breached: int = 0
    escalated: int = 0
    skipped_paused: int = 0
    failed: int = 0
    errors: List[str] = Field(default_factory=list)
