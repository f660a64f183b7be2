"""
Document Filters
================

Evaluates repository filters against JSON documents. Shared by the
in-memory adapter and by the SQL adapter for fields SQL cannot filter
portably (array containment).
"""

from typing import Any

from servicedesk.shared.application.repository import Filters, normalize_filter_value

MISSING = object()


def resolve_path(document: dict, path: str) -> Any:
    """Follow a dotted path through nested dicts; MISSING if absent."""
    value: Any = document
    for part in path.split("."):
        if not isinstance(value, dict) or part not in value:
            return MISSING
        value = value[part]
    return value


def matches_filters(document: dict, filters: Filters) -> bool:
    for path, expected in filters.items():
        expected = normalize_filter_value(expected)
        value = resolve_path(document, path)
        if value is MISSING:
            value = None

        if isinstance(expected, list):
            if isinstance(value, list):
                if not set(map(str, value)) & set(map(str, expected)):
                    return False
            elif value not in expected:
                return False
        elif isinstance(value, list):
            if expected not in value:
                return False
        elif value != expected:
            return False
    return True
