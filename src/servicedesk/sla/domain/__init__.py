"""
SLA Domain Layer
================

Pure Python entities, value objects and the business calendar.
"""

from servicedesk.sla.domain.entities import (
    SLAPolicy,
    BusinessHours,
    BusinessSchedule,
    TimeTarget,
    EscalationLevel,
    AppliesTo,
    Notifications,
)
from servicedesk.sla.domain.value_objects import (
    SLAConfig,
    SLABreachCheck,
    SLACompliance,
    DEFAULT_SLA_ID,
    DEFAULT_SLA_TARGETS,
)
from servicedesk.sla.domain.calendar import BusinessCalendar

__all__ = [
    "SLAPolicy",
    "BusinessHours",
    "BusinessSchedule",
    "TimeTarget",
    "EscalationLevel",
    "AppliesTo",
    "Notifications",
    "SLAConfig",
    "SLABreachCheck",
    "SLACompliance",
    "DEFAULT_SLA_ID",
    "DEFAULT_SLA_TARGETS",
    "BusinessCalendar",
]
