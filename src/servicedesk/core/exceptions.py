"""
Core Exceptions
================

Custom exceptions for the application following clean architecture principles.

These exceptions define domain-specific errors that can be caught and handled
appropriately at the application boundaries. Translating them into transport
responses is the caller's job.
"""

from typing import List, Optional


class ApplicationException(Exception):
    """Base exception for all application errors."""

    def __init__(self, message: str, details: Optional[dict] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)


class DomainException(ApplicationException):
    """Base exception for domain logic violations."""


class RepositoryException(ApplicationException):
    """Base exception for repository/data access errors."""


class ValidationException(ApplicationException):
    """
    Exception for validation errors.

    Carries every violated precondition, not just the first one.
    """

    def __init__(
        self,
        message: str,
        errors: Optional[List[str]] = None,
        details: Optional[dict] = None
    ):
        self.errors = list(errors or [])
        if self.errors:
            message = f"{message}: {', '.join(self.errors)}"
        super().__init__(message, details or {"errors": self.errors})


class ResourceNotFoundException(ApplicationException):
    """Exception when a requested resource is not found."""

    def __init__(
        self,
        resource_type: str,
        resource_id: Optional[str] = None,
        details: Optional[dict] = None
    ):
        self.resource_type = resource_type
        self.resource_id = resource_id
        message = f"{resource_type}"
        if resource_id:
            message += f" with id '{resource_id}'"
        message += " not found"
        super().__init__(message, details)


class InvalidTransitionException(DomainException):
    """Raised when a requested status change is not allowed from the current status."""

    def __init__(
        self,
        entity: str,
        current: str,
        requested: str,
        reason: Optional[str] = None
    ):
        self.entity = entity
        self.current = current
        self.requested = requested
        message = f"Invalid {entity} status transition from {current} to {requested}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(
            message,
            {"entity": entity, "current": current, "requested": requested}
        )


class ConcurrencyConflictException(RepositoryException):
    """Raised when an atomic persistence primitive lost a race and retries ran out."""

    def __init__(self, resource: str, key: str, details: Optional[dict] = None):
        self.resource = resource
        self.key = key
        super().__init__(
            f"Concurrent modification of {resource} '{key}'",
            details or {"resource": resource, "key": key}
        )


class ConfigurationException(ApplicationException):
    """Exception for configuration errors."""
