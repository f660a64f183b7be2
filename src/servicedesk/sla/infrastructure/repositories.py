"""
SLA Infrastructure Repositories
===============================

Concrete implementations of ISLAPolicyRepository on top of the shared
document adapters.
"""

from datetime import datetime
from typing import List, Optional

from servicedesk.config import Priority
from servicedesk.shared.infrastructure.documents import SQLAlchemyDocumentRepository
from servicedesk.shared.infrastructure.memory import InMemoryRepository
from servicedesk.sla.application.services import ISLAPolicyRepository
from servicedesk.sla.domain import SLAPolicy

OLDEST_FIRST = (("created_at", False),)


class SLAPolicyQueries:
    """Policy lookups expressed with the generic repository primitives."""

    async def find_applicable(
        self,
        priority: Priority,
        category_id: Optional[str] = None,
        site_id: Optional[str] = None
    ) -> Optional[SLAPolicy]:
        priority = Priority(priority)
        scoped = []
        if category_id:
            scoped.append(("applies_to.categories", category_id))
        if site_id:
            scoped.append(("applies_to.sites", site_id))

        for path, value in scoped:
            matches = await self.find_all(
                {"priority": priority, "is_active": True, path: value},
                sort=OLDEST_FIRST
            )
            if matches:
                return matches[0]

        defaults = await self.find_all(
            {"priority": priority, "is_default": True, "is_active": True},
            sort=OLDEST_FIRST
        )
        return defaults[0] if defaults else None

    async def set_default(self, sla_id: str, priority: Priority, updated_at: datetime) -> List[SLAPolicy]:
        def flag(policy: SLAPolicy) -> None:
            is_default = policy.sla_id == sla_id
            if policy.is_default != is_default:
                policy.is_default = is_default
                policy.updated_at = updated_at

        return await self.find_and_update_many({"priority": Priority(priority)}, flag)


class InMemorySLAPolicyRepository(SLAPolicyQueries, InMemoryRepository[SLAPolicy], ISLAPolicyRepository):
    entity_type = SLAPolicy
    key_field = "sla_id"


class SQLAlchemySLAPolicyRepository(
    SLAPolicyQueries,
    SQLAlchemyDocumentRepository[SLAPolicy],
    ISLAPolicyRepository
):
    """
    SQLAlchemy implementation of SLA policy repository.

    applies_to lists are matched in Python after the SQL pre-filter on
    priority and is_active.
    """

    entity_type = SLAPolicy
    key_field = "sla_id"
    collection = "sla_policies"
    array_fields = frozenset({"applies_to.categories", "applies_to.sites", "applies_to.user_groups"})
