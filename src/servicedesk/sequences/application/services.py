"""
Sequence Application Services
=============================

Generates identifiers of the form <PREFIX>-<YYYY>-<NNNNN>.

The counter repository owns atomicity: increment() is a single
increment-and-read at the storage layer that also resets the sequence
when the stored year differs from the requested one. The generator only
retries when the storage layer reports a lost race.
"""

import asyncio
from abc import ABC, abstractmethod

from servicedesk.core.clock import Clock
from servicedesk.core.exceptions import ConcurrencyConflictException
from servicedesk.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)

INCIDENT_PREFIX = "INC"
PROBLEM_PREFIX = "PRB"
CHANGE_PREFIX = "CHG"
SLA_PREFIX = "SLA"


class ICounterRepository(ABC):
    """Interface for the per-prefix counter store."""

    @abstractmethod
    async def increment(self, prefix: str, year: int) -> int:
        """
        Atomically bump the counter for prefix and return the new value.

        Starts at 1 when the prefix is unknown or its stored year differs
        from year. Raises ConcurrencyConflictException on a lost race.
        """

    @abstractmethod
    async def current(self, prefix: str) -> tuple[int, int] | None:
        """Return (sequence, year) for prefix, or None if never used."""


class SequenceIdGenerator:
    """
    Produces year-scoped identifiers per prefix.

    Usage:
        generator = SequenceIdGenerator(InMemoryCounterRepository(), SystemClock())
        incident_id = await generator.generate_id("INC")  # INC-2025-00001
    """

    def __init__(
        self,
        counter_repository: ICounterRepository,
        clock: Clock,
        padding: int = 5,
        max_retries: int = 5,
        backoff_seconds: float = 0.01
    ):
        self._counters = counter_repository
        self._clock = clock
        self._padding = padding
        self._max_retries = max_retries
        self._backoff = backoff_seconds

    async def generate_id(self, prefix: str) -> str:
        """
        Generate the next identifier for prefix.

        Raises:
            ConcurrencyConflictException: If the counter stayed contended
                after all retries
        """
        year = self._clock.now().year

        for attempt in range(self._max_retries):
            try:
                sequence = await self._counters.increment(prefix, year)
            except ConcurrencyConflictException:
                logger.warning(
                    "Counter increment conflict, retrying",
                    extra={"prefix": prefix, "attempt": attempt + 1}
                )
                if attempt == self._max_retries - 1:
                    raise
                await asyncio.sleep(self._backoff * (2 ** attempt))
                continue

            return self.format_id(prefix, year, sequence)

        raise ConcurrencyConflictException("counter", prefix)

    def format_id(self, prefix: str, year: int, sequence: int) -> str:
        return f"{prefix}-{year}-{sequence:0{self._padding}d}"
