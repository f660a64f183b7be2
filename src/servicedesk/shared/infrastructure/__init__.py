"""
Shared Infrastructure Layer
===========================

Logging, database lifecycle and the two repository adapters
(in-memory and SQLAlchemy document store).
"""

from servicedesk.shared.infrastructure.logging import (
    setup_logging,
    get_logger,
    log_latency,
)
from servicedesk.shared.infrastructure.memory import InMemoryRepository
from servicedesk.shared.infrastructure.documents import SQLAlchemyDocumentRepository

__all__ = [
    "setup_logging",
    "get_logger",
    "log_latency",
    "InMemoryRepository",
    "SQLAlchemyDocumentRepository",
]
