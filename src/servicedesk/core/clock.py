"""
Clock
=====

Injectable "now" source. Every component that reads the current time
receives a Clock instead of calling datetime.now() directly.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from typing import Optional


class Clock(ABC):
    """Source of the current instant (always timezone-aware UTC)."""

    @abstractmethod
    def now(self) -> datetime:
        """Return the current time."""


class SystemClock(Clock):
    """Wall-clock time."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class FixedClock(Clock):
    """
    Manually driven clock for tests and replays.

    Usage:
        clock = FixedClock(datetime(2025, 1, 6, 9, tzinfo=timezone.utc))
        clock.advance(minutes=30)
    """

    def __init__(self, current: Optional[datetime] = None):
        self._current = _as_utc(current or datetime.now(timezone.utc))

    def now(self) -> datetime:
        return self._current

    def set(self, current: datetime) -> None:
        self._current = _as_utc(current)

    def advance(self, **kwargs) -> datetime:
        """Move forward by a timedelta built from kwargs."""
        self._current = self._current + timedelta(**kwargs)
        return self._current


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
