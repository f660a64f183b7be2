"""
Incidents Bounded Context
=========================

Incident lifecycle: priority derivation, SLA tracking, assignment,
worklogs, escalation and the status state machine.
"""
