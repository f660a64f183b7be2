"""
Shared Domain Layer
===================

Building blocks reused by every workflow:
- TimelineEvent: append-only audit entry
- Timelined: mixin that appends events to an entity's timeline
- Actor: who performed an operation
- TransitionTable: single source of truth for allowed status changes
"""

from servicedesk.shared.domain.timeline import Actor, TimelineEvent, Timelined, SYSTEM_ACTOR
from servicedesk.shared.domain.state_machine import TransitionTable

__all__ = [
    "Actor",
    "TimelineEvent",
    "Timelined",
    "SYSTEM_ACTOR",
    "TransitionTable",
]
