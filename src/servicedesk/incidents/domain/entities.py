"""
Incident Domain Entities
========================

Pure Python domain entities for incident management.

Entities carry their own consistency rules; time-dependent properties
take "now" as an argument so they stay free of infrastructure.
"""

import math
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field, computed_field

from servicedesk.config import (
    Channel,
    Impact,
    IncidentStatus,
    Priority,
    Urgency,
)
from servicedesk.shared.domain import Actor, TimelineEvent, Timelined
from servicedesk.sla.domain import SLAConfig

# Higher is more urgent; stored with each incident so listings can sort on it
PRIORITY_RANK = {
    Priority.CRITICAL: 4,
    Priority.HIGH: 3,
    Priority.MEDIUM: 2,
    Priority.LOW: 1,
}


class Requester(BaseModel):
    id: str = Field(..., min_length=1)
    name: str
    email: str
    department: str = ""
    phone: Optional[str] = None
    site_id: Optional[str] = None


class Assignee(BaseModel):
    technician_id: str = Field(..., min_length=1)
    name: str
    email: str
    group_id: Optional[str] = None
    group_name: Optional[str] = None


class Worklog(BaseModel):
    log_id: str
    by: str
    by_name: Optional[str] = None
    minutes_spent: int = Field(..., ge=0)
    note: str
    is_internal: bool = False
    created_at: datetime


class Resolution(BaseModel):
    code: str
    notes: str
    resolved_by: str
    resolved_by_name: Optional[str] = None
    resolved_at: datetime


class Incident(Timelined, BaseModel):
    """
    Incident entity.

    Identity is incident_id (INC-<year>-<seq>). Incidents are never
    deleted; closed_at marks the terminal state.
    """

    incident_id: str
    title: str = Field(..., min_length=1, max_length=200)
    description: str
    status: IncidentStatus = IncidentStatus.OPEN
    priority: Priority
    impact: Impact
    urgency: Urgency
    category_id: str
    subcategory_id: Optional[str] = None
    requester: Requester
    assigned_to: Optional[Assignee] = None
    channel: Channel = Channel.SELF_SERVICE
    sla: SLAConfig
    site_id: str
    tags: List[str] = Field(default_factory=list)
    is_major: bool = False
    reopen_count: int = Field(default=0, ge=0)
    first_response_at: Optional[datetime] = None
    worklogs: List[Worklog] = Field(default_factory=list)
    timeline: List[TimelineEvent] = Field(default_factory=list)
    resolution: Optional[Resolution] = None
    linked_problem_id: Optional[str] = None
    closed_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    @computed_field
    @property
    def priority_rank(self) -> int:
        return PRIORITY_RANK[self.priority]

    @property
    def is_closed(self) -> bool:
        return self.status == IncidentStatus.CLOSED

    @property
    def is_resolved(self) -> bool:
        """Resolved or closed; the SLA outcome is final."""
        return self.status in (IncidentStatus.RESOLVED, IncidentStatus.CLOSED)

    @property
    def total_worklog_minutes(self) -> int:
        return sum(log.minutes_spent for log in self.worklogs)

    def is_sla_breached(self, now: datetime) -> bool:
        if self.is_resolved:
            return self.sla.breach_flag
        return now > self.sla.resolution_due

    def link_problem(self, problem_id: str, actor: Actor, now: datetime) -> Optional[str]:
        """
        Point the incident at problem_id.

        Returns the problem it pointed at before, or None. Relinking the
        same problem records nothing.
        """
        previous = self.linked_problem_id
        if previous != problem_id:
            self.linked_problem_id = problem_id
            self.record(f"Linked to Problem {problem_id}", actor, now)
        return previous

    def time_to_breach_minutes(self, now: datetime) -> Optional[int]:
        """Minutes until resolution is due (negative once overdue); None when resolved."""
        if self.is_resolved:
            return None
        return math.floor((self.sla.resolution_due - now).total_seconds() / 60)
