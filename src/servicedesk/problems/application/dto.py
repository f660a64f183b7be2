"""
Problem Application DTOs
========================

Data Transfer Objects for problem management operations.
"""

from typing import List, Optional

from pydantic import BaseModel, Field

from servicedesk.config import Impact, Priority, ProblemStatus
from servicedesk.problems.domain import AssignedGroup, ProblemOwner


# ========== Request DTOs ==========

class CreateProblemDTO(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    description: str = Field(..., min_length=1)
    priority: Priority
    impact: Impact
    category_id: str = Field(..., min_length=1)
    subcategory_id: Optional[str] = None
    owner: ProblemOwner
    assigned_group: Optional[AssignedGroup] = None
    site_id: str = Field(..., min_length=1)
    linked_incidents: List[str] = Field(default_factory=list)
    tags: List[str] = Field(default_factory=list)
    affected_services: List[str] = Field(default_factory=list)


class UpdateProblemDTO(BaseModel):
    """DTO for updating a problem. Only set fields are applied."""
    title: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = Field(None, min_length=1)
    priority: Optional[Priority] = None
    impact: Optional[Impact] = None
    category_id: Optional[str] = Field(None, min_length=1)
    subcategory_id: Optional[str] = None
    assigned_group: Optional[AssignedGroup] = None
    root_cause: Optional[str] = None
    workaround: Optional[str] = None
    permanent_fix: Optional[str] = None
    tags: Optional[List[str]] = None
    affected_services: Optional[List[str]] = None
    affected_users_count: Optional[int] = Field(None, ge=0)


class KnownErrorDTO(BaseModel):
    title: str = Field(..., min_length=1)
    symptoms: str = Field(..., min_length=1)
    root_cause: str = Field(..., min_length=1)
    workaround: str = Field(..., min_length=1)


class ProblemFilterDTO(BaseModel):
    """Query parameters for listing problems."""
    status: List[ProblemStatus] = Field(default_factory=list)
    priority: List[Priority] = Field(default_factory=list)
    owner: Optional[str] = None
    site_id: Optional[str] = None
    category_id: Optional[str] = None
    page: int = Field(default=1, ge=1)
    limit: int = Field(default=20, ge=1, le=100)


# ========== Response DTOs ==========

class ProblemStats(BaseModel):
    total: int
    logged: int
    rca_in_progress: int
    known_errors: int
    resolved: int
