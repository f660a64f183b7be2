"""SLA infrastructure layer."""

from servicedesk.sla.infrastructure.repositories import (
    InMemorySLAPolicyRepository,
    SQLAlchemySLAPolicyRepository,
)
from servicedesk.sla.infrastructure.external import (
    YAMLPolicySource,
    LoggingNotifier,
    SLAScheduler,
)

__all__ = [
    "InMemorySLAPolicyRepository",
    "SQLAlchemySLAPolicyRepository",
    "YAMLPolicySource",
    "LoggingNotifier",
    "SLAScheduler",
]
