"""
Timeline
========

Append-only audit trail shared by incidents, problems and changes.
"""

from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


class Actor(BaseModel):
    """The user (or system) performing an operation."""
    id: str = Field(..., min_length=1)
    name: Optional[str] = None


SYSTEM_ACTOR = Actor(id="system", name="System")


class TimelineEvent(BaseModel):
    """Single audit entry: what happened, who did it, when."""
    event: str
    by: str
    by_name: Optional[str] = None
    time: datetime
    details: Optional[Dict[str, Any]] = None

    @classmethod
    def record(
        cls,
        event: str,
        actor: Actor,
        time: datetime,
        details: Optional[Dict[str, Any]] = None
    ) -> "TimelineEvent":
        return cls(event=event, by=actor.id, by_name=actor.name, time=time, details=details)


class Timelined:
    """
    Mixin for entities carrying `timeline` and `updated_at` fields.

    Every recorded event also bumps updated_at to the event time.
    """

    def record(
        self,
        event: str,
        actor: Actor,
        time: datetime,
        details: Optional[Dict[str, Any]] = None
    ) -> None:
        self.timeline.append(TimelineEvent.record(event, actor, time, details))
        self.updated_at = time
