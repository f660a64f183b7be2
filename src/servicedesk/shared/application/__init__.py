"""
Shared Application Layer
========================

Repository port used by every workflow. Workflows depend on this
abstraction only; concrete adapters live in shared.infrastructure.
"""

from servicedesk.shared.application.repository import (
    IRepository,
    Page,
    Filters,
    SortSpec,
    apply_patch,
    normalize_filter_value,
)

__all__ = [
    "IRepository",
    "Page",
    "Filters",
    "SortSpec",
    "apply_patch",
    "normalize_filter_value",
]
