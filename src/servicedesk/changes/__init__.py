"""
Changes Bounded Context
=======================

Change requests with CAB approval quorum, auto-approval of standard and
emergency changes, scheduling and implementation tracking.
"""
