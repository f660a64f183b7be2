"""
Core Module
============

Shared core utilities and abstractions used across the application.

This module contains framework-agnostic code that defines the fundamental
building blocks of the system: the exception hierarchy and the clock.
"""

from servicedesk.core.clock import Clock, FixedClock, SystemClock
from servicedesk.core.exceptions import (
    ApplicationException,
    DomainException,
    RepositoryException,
    ValidationException,
    ResourceNotFoundException,
    InvalidTransitionException,
    ConcurrencyConflictException,
    ConfigurationException,
)

__all__ = [
    "Clock",
    "FixedClock",
    "SystemClock",
    "ApplicationException",
    "DomainException",
    "RepositoryException",
    "ValidationException",
    "ResourceNotFoundException",
    "InvalidTransitionException",
    "ConcurrencyConflictException",
    "ConfigurationException",
]
