"""
Shared Kernel Module
====================

Shared infrastructure and domain elements used across all bounded contexts
(SLA, Incidents, Problems, Changes, Sequences).

Architecture Pattern: Modular Monolith
- Each module is a bounded context
- Shared kernel contains only generic building blocks: timeline events,
  the transition-table state machine, the repository port and its adapters

DO NOT add incident/change/problem business rules to the shared kernel.
"""

__version__ = "1.0.0"
