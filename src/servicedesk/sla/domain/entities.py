"""
SLA Domain Entities
===================

SLA policies and their building blocks: response/resolution targets,
escalation matrix and the business calendar they are measured against.

Weekdays follow the 0 = Sunday .. 6 = Saturday convention.
"""

import re
from datetime import date, datetime, time, timezone
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from servicedesk.config import Priority, UserRole

_HHMM = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")


class BusinessSchedule(BaseModel):
    """Working window for one weekday."""
    day: int = Field(..., ge=0, le=6, description="0 = Sunday .. 6 = Saturday")
    start_time: str = Field(default="08:00")
    end_time: str = Field(default="17:00")
    is_working: bool = True

    @field_validator("start_time", "end_time")
    @classmethod
    def validate_hhmm(cls, v: str) -> str:
        if not _HHMM.match(v):
            raise ValueError(f"time must be HH:MM, got {v!r}")
        return v

    @property
    def opens_at(self) -> time:
        return time.fromisoformat(self.start_time)

    @property
    def closes_at(self) -> time:
        return time.fromisoformat(self.end_time)

    @property
    def has_window(self) -> bool:
        """True if this entry contributes working minutes."""
        return self.is_working and self.closes_at > self.opens_at


class BusinessHours(BaseModel):
    """Timezone, weekly schedule and holidays of a business calendar."""
    timezone: str = "Asia/Riyadh"
    schedule: List[BusinessSchedule] = Field(default_factory=list)
    holidays: List[date] = Field(default_factory=list)

    @field_validator("holidays", mode="before")
    @classmethod
    def holidays_as_dates(cls, v):
        # Stored holidays may carry a midnight timestamp
        return [h.date() if isinstance(h, datetime) else h for h in v or []]

    @field_validator("schedule")
    @classmethod
    def unique_days(cls, v: List[BusinessSchedule]) -> List[BusinessSchedule]:
        days = [entry.day for entry in v]
        if len(days) != len(set(days)):
            raise ValueError("schedule has more than one entry for a day")
        return v

    def entry_for(self, day: int) -> Optional[BusinessSchedule]:
        for entry in self.schedule:
            if entry.day == day:
                return entry
        return None

    @classmethod
    def standard(cls, tz: str = "Asia/Riyadh") -> "BusinessHours":
        """Sunday to Thursday, 08:00 to 17:00."""
        return cls(
            timezone=tz,
            schedule=[
                BusinessSchedule(day=day, start_time="08:00", end_time="17:00", is_working=True)
                for day in range(0, 5)
            ] + [
                BusinessSchedule(day=day, start_time="00:00", end_time="00:00", is_working=False)
                for day in (5, 6)
            ],
        )


class TimeTarget(BaseModel):
    """Response or resolution target."""
    hours: float = Field(..., ge=0)
    business_hours_only: bool = True

    @property
    def minutes(self) -> float:
        return self.hours * 60


class EscalationLevel(BaseModel):
    """One step of an escalation matrix."""
    level: int = Field(..., ge=1)
    after_minutes: int = Field(..., ge=0)
    notify_role: UserRole
    notify_users: List[str] = Field(default_factory=list)
    action: Optional[str] = None


class AppliesTo(BaseModel):
    """Scope restrictions; empty lists mean the policy is generic."""
    categories: List[str] = Field(default_factory=list)
    sites: List[str] = Field(default_factory=list)
    user_groups: List[str] = Field(default_factory=list)


class Notifications(BaseModel):
    warning_threshold_percent: int = Field(default=75, ge=0, le=100)
    breach_notifications: List[str] = Field(default_factory=list)


class SLAPolicy(BaseModel):
    """
    SLA policy entity.

    At most one active policy per priority carries is_default; the policy
    service maintains that through set_default.
    """

    sla_id: str
    name: str = Field(..., min_length=1, max_length=100)
    name_ar: Optional[str] = Field(None, max_length=100)
    description: str = Field(default="", max_length=500)
    description_ar: Optional[str] = Field(None, max_length=500)
    priority: Priority
    response_time: TimeTarget
    resolution_time: TimeTarget
    escalation_matrix: List[EscalationLevel] = Field(default_factory=list)
    business_hours: BusinessHours = Field(default_factory=BusinessHours.standard)
    notifications: Notifications = Field(default_factory=Notifications)
    applies_to: AppliesTo = Field(default_factory=AppliesTo)
    is_default: bool = False
    is_active: bool = True
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @model_validator(mode="after")
    def sort_matrix(self) -> "SLAPolicy":
        levels = [e.level for e in self.escalation_matrix]
        if len(levels) != len(set(levels)):
            raise ValueError("escalation_matrix levels must be unique")
        self.escalation_matrix.sort(key=lambda e: (e.after_minutes, e.level))
        return self

    @property
    def response_time_minutes(self) -> float:
        return self.response_time.minutes

    @property
    def resolution_time_minutes(self) -> float:
        return self.resolution_time.minutes

    def escalation_for_level(self, level: int) -> Optional[EscalationLevel]:
        for entry in self.escalation_matrix:
            if entry.level == level:
                return entry
        return None
