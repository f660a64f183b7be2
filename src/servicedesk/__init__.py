"""
ServiceDesk Core
================

ITSM core for incident, problem and change management.

Modules:
- SLA: business-hours-aware due dates, breach tracking, escalation
- Incidents: guarded status workflow with SLA side effects
- Problems: root cause and known-error documentation
- Changes: CAB quorum approval and implementation lifecycle
- Sequences: year-scoped human-readable identifiers
"""

__version__ = "1.0.0"
