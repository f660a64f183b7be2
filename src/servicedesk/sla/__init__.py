"""
SLA Bounded Context
===================

SLA policies, due-date calculation against business calendars, breach
tracking and escalation.
"""
