"""
Incident Application DTOs
=========================

Data Transfer Objects for incident operations.

Inputs are validated here, before they reach the workflow. Priority is
never part of an input: it is derived from impact and urgency.
"""

from typing import List, Optional

from pydantic import BaseModel, Field

from servicedesk.config import Channel, Impact, IncidentStatus, Priority, Urgency
from servicedesk.incidents.domain import Requester
from servicedesk.sla.domain import SLACompliance


# ========== Request DTOs ==========

class CreateIncidentDTO(BaseModel):
    """DTO for creating an incident."""
    title: str = Field(..., min_length=1, max_length=200)
    description: str = Field(..., min_length=1)
    impact: Impact
    urgency: Urgency
    category_id: str = Field(..., min_length=1)
    subcategory_id: Optional[str] = None
    requester: Requester
    channel: Channel = Channel.SELF_SERVICE
    site_id: str = Field(..., min_length=1)
    tags: List[str] = Field(default_factory=list)
    is_major: bool = False


class UpdateIncidentDTO(BaseModel):
    """DTO for updating an incident. Only set fields are applied."""
    title: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = Field(None, min_length=1)
    impact: Optional[Impact] = None
    urgency: Optional[Urgency] = None
    category_id: Optional[str] = Field(None, min_length=1)
    subcategory_id: Optional[str] = None
    tags: Optional[List[str]] = None
    is_major: Optional[bool] = None


class ResolutionDTO(BaseModel):
    code: str = Field(..., min_length=1)
    notes: str


class WorklogDTO(BaseModel):
    minutes_spent: int = Field(..., ge=0)
    note: str = Field(..., min_length=1)
    is_internal: bool = False


class IncidentFilterDTO(BaseModel):
    """Query parameters for listing incidents."""
    status: List[IncidentStatus] = Field(default_factory=list)
    priority: List[Priority] = Field(default_factory=list)
    assignee: Optional[str] = None
    requester: Optional[str] = None
    site_id: Optional[str] = None
    category_id: Optional[str] = None
    is_major: Optional[bool] = None
    breached: Optional[bool] = None
    page: int = Field(default=1, ge=1)
    limit: int = Field(default=20, ge=1, le=100)


# ========== Response DTOs ==========

class IncidentStats(BaseModel):
    """Counts per status plus SLA compliance."""
    total: int
    open: int
    in_progress: int
    pending: int
    resolved: int
    closed: int
    breached: int
    compliance: SLACompliance
