"""
Sequences Bounded Context
=========================

Year-scoped, human-readable identifiers (INC-2025-00001) backed by an
atomic per-prefix counter.
"""

from servicedesk.sequences.application import ICounterRepository, SequenceIdGenerator

__all__ = ["ICounterRepository", "SequenceIdGenerator"]
