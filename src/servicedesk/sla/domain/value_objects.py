"""
SLA Value Objects
=================

Immutable value objects for the SLA domain.

SLAConfig is the SLA snapshot attached to an incident. Engine operations
never modify it in place; they return an updated copy.
"""

from datetime import datetime
from typing import Dict, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, model_validator

from servicedesk.config import BreachType, Priority
from servicedesk.sla.domain.entities import EscalationLevel

DEFAULT_SLA_ID = "DEFAULT"

# (response hours, resolution hours) when no policy applies
DEFAULT_SLA_TARGETS: Dict[Priority, Tuple[float, float]] = {
    Priority.CRITICAL: (0.5, 4),
    Priority.HIGH: (2, 8),
    Priority.MEDIUM: (4, 24),
    Priority.LOW: (8, 72),
}


class SLAConfig(BaseModel):
    """SLA state of a single incident."""

    model_config = ConfigDict(frozen=True)

    sla_id: str
    response_due: datetime
    resolution_due: datetime
    response_met: Optional[bool] = None
    resolution_met: Optional[bool] = None
    response_at: Optional[datetime] = None
    resolved_at: Optional[datetime] = None
    breach_flag: bool = False
    escalation_level: int = Field(default=0, ge=0)
    paused_at: Optional[datetime] = None
    paused_duration_minutes: int = Field(default=0, ge=0)

    @model_validator(mode="after")
    def check_due_order(self) -> "SLAConfig":
        if self.resolution_due < self.response_due:
            raise ValueError("resolution_due must not be before response_due")
        return self

    @property
    def is_paused(self) -> bool:
        return self.paused_at is not None


class SLABreachCheck(BaseModel):
    """Result of a breach evaluation."""
    is_breached: bool
    breach_type: Optional[BreachType] = None
    time_remaining_minutes: int = 0
    escalation_level: int = 0
    next_escalation: Optional[EscalationLevel] = None


class SLACompliance(BaseModel):
    """Share of resolved incidents that met their resolution target."""
    total: int
    met: int
    breached: int
    compliance_percent: int
