"""
Transition Tables
=================

Each workflow declares its allowed status changes once, as a mapping of
current status to the set of permitted next statuses. Every caller goes
through can_transition / ensure; no other code compares statuses to decide
whether a move is legal.
"""

from enum import Enum
from typing import Dict, FrozenSet, Generic, Iterable, Mapping, TypeVar

from servicedesk.core.exceptions import InvalidTransitionException

S = TypeVar("S", bound=Enum)


class TransitionTable(Generic[S]):
    """
    Closed transition table over a status enumeration.

    Usage:
        table = TransitionTable("incident", {Status.OPEN: {Status.CLOSED}, Status.CLOSED: set()})
        table.ensure(Status.OPEN, Status.CLOSED)
    """

    def __init__(self, entity: str, transitions: Mapping[S, Iterable[S]]):
        self.entity = entity
        self._transitions: Dict[S, FrozenSet[S]] = {
            state: frozenset(targets) for state, targets in transitions.items()
        }

    def allowed_from(self, current: S) -> FrozenSet[S]:
        return self._transitions.get(current, frozenset())

    def can_transition(self, current: S, requested: S) -> bool:
        return requested in self.allowed_from(current)

    def is_terminal(self, state: S) -> bool:
        return not self.allowed_from(state)

    def ensure(self, current: S, requested: S, reason: str | None = None) -> None:
        """Raise InvalidTransitionException unless current -> requested is allowed."""
        if not self.can_transition(current, requested):
            raise InvalidTransitionException(
                self.entity, _value(current), _value(requested), reason
            )

    def pairs(self):
        """Yield every allowed (current, next) pair."""
        for state, targets in self._transitions.items():
            for target in targets:
                yield state, target


def _value(state) -> str:
    return state.value if isinstance(state, Enum) else str(state)
