"""
Problem Domain Entities
=======================

Problems group recurring incidents while their root cause is analysed.
A problem with a documented workaround becomes a known error.
"""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from servicedesk.config import Impact, Priority, ProblemStatus
from servicedesk.shared.domain import TimelineEvent, Timelined

OPEN_PROBLEM_STATUSES = [ProblemStatus.LOGGED, ProblemStatus.RCA_IN_PROGRESS]


class ProblemOwner(BaseModel):
    id: str = Field(..., min_length=1)
    name: str
    email: str


class AssignedGroup(BaseModel):
    group_id: str
    group_name: str


class KnownError(BaseModel):
    """Documented workaround for a problem that is not permanently fixed yet."""
    ke_id: str
    title: str
    symptoms: str
    root_cause: str
    workaround: str
    documented_by: str
    documented_at: datetime


class Problem(Timelined, BaseModel):
    """
    Problem entity.

    Identity is problem_id (PRB-<year>-<seq>). linked_incidents has set
    semantics; the incident side holds linked_problem_id.
    """

    problem_id: str
    title: str = Field(..., min_length=1, max_length=200)
    description: str
    status: ProblemStatus = ProblemStatus.LOGGED
    priority: Priority
    impact: Impact
    category_id: str
    subcategory_id: Optional[str] = None
    root_cause: Optional[str] = None
    workaround: Optional[str] = None
    permanent_fix: Optional[str] = None
    linked_incidents: List[str] = Field(default_factory=list)
    linked_changes: List[str] = Field(default_factory=list)
    owner: ProblemOwner
    assigned_group: Optional[AssignedGroup] = None
    known_error: Optional[KnownError] = None
    timeline: List[TimelineEvent] = Field(default_factory=list)
    site_id: str
    tags: List[str] = Field(default_factory=list)
    affected_services: List[str] = Field(default_factory=list)
    affected_users_count: Optional[int] = Field(default=None, ge=0)
    closed_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    @property
    def is_open(self) -> bool:
        return self.status in OPEN_PROBLEM_STATUSES

    def link_incident(self, incident_id: str) -> bool:
        """Add incident_id once. Returns False if it was already linked."""
        if incident_id in self.linked_incidents:
            return False
        self.linked_incidents.append(incident_id)
        return True

    def unlink_incident(self, incident_id: str) -> bool:
        if incident_id not in self.linked_incidents:
            return False
        self.linked_incidents.remove(incident_id)
        return True
