"""
SLA Application Services
========================

Application services orchestrate business logic and coordinate between
domain entities and repositories.

Following SOLID principles:
- Single Responsibility: SLAEngine computes and tracks SLA state,
  SLAPolicyService manages the policies it reads
- Dependency Inversion: Depend on abstractions (repositories, notifier,
  clock), not concrete implementations
"""

import math
from abc import ABC, abstractmethod
from datetime import datetime
from pathlib import Path
from typing import Iterable, List, Optional, Sequence

from servicedesk.config import BreachType, Priority
from servicedesk.core.clock import Clock
from servicedesk.core.exceptions import (
    ConfigurationException,
    ResourceNotFoundException,
    ValidationException,
)
from servicedesk.sequences.application import SLA_PREFIX, SequenceIdGenerator
from servicedesk.shared.application.repository import IRepository, Page, apply_patch
from servicedesk.shared.infrastructure.logging import get_logger
from servicedesk.sla.application.dto import SLAPolicyCreateDTO, SLAPolicyUpdateDTO
from servicedesk.sla.domain import (
    BusinessCalendar,
    BusinessHours,
    DEFAULT_SLA_ID,
    DEFAULT_SLA_TARGETS,
    EscalationLevel,
    SLABreachCheck,
    SLACompliance,
    SLAConfig,
    SLAPolicy,
)

logger = get_logger(__name__)


# ========== Repository Interfaces (Dependency Inversion) ==========

class ISLAPolicyRepository(IRepository[SLAPolicy]):
    """Interface for SLA policy data access."""

    @abstractmethod
    async def find_applicable(
        self,
        priority: Priority,
        category_id: Optional[str] = None,
        site_id: Optional[str] = None
    ) -> Optional[SLAPolicy]:
        """
        Resolve the policy for an incident.

        An active policy of the priority scoped to the category (then the
        site) wins over the priority's active default.
        """

    @abstractmethod
    async def set_default(self, sla_id: str, priority: Priority, updated_at: datetime) -> List[SLAPolicy]:
        """Clear every other default of priority and flag sla_id, in one atomic scope."""


class ISLAPolicySource(ABC):
    """Interface for reading policy definitions from outside the database."""

    @abstractmethod
    def read(self, path: Path) -> List[SLAPolicyCreateDTO]:
        """Parse policy definitions from path."""


class ISLANotifier(ABC):
    """Interface for breach and escalation notifications (delivery is external)."""

    @abstractmethod
    async def notify_breach(self, incident_id: str, check: SLABreachCheck) -> None:
        """An incident crossed one of its SLA due dates."""

    @abstractmethod
    async def notify_escalation(
        self,
        incident_id: str,
        level: int,
        escalation: Optional[EscalationLevel]
    ) -> None:
        """An incident moved to a higher escalation level."""


# ========== Application Services ==========

class SLAEngine:
    """
    Computes due dates, breach state and escalation level of incident SLAs.

    Every operation reads the time from the injected clock. Operations on
    SLAConfig return a new value and leave the input untouched.
    """

    def __init__(
        self,
        policy_repository: ISLAPolicyRepository,
        clock: Clock,
        escalation_thresholds: Sequence[int] = (60, 120, 240),
        calendar: Optional[BusinessCalendar] = None
    ):
        self._policies = policy_repository
        self._clock = clock
        self._thresholds = list(escalation_thresholds)
        self._calendar = calendar or BusinessCalendar()

    async def calculate_sla(
        self,
        priority: Priority,
        category_id: Optional[str] = None,
        site_id: Optional[str] = None,
        created_at: Optional[datetime] = None
    ) -> SLAConfig:
        """
        Compute response and resolution due dates for a new incident.

        Falls back to the built-in targets when no policy applies.
        """
        priority = Priority(priority)
        created_at = created_at or self._clock.now()

        policy = await self._policies.find_applicable(priority, category_id, site_id)
        if policy is None:
            logger.warning(
                "No SLA policy found, using defaults",
                extra={"priority": priority.value, "category_id": category_id, "site_id": site_id}
            )
            return self._default_sla(priority, created_at)

        return SLAConfig(
            sla_id=policy.sla_id,
            response_due=self._calendar.due_date(
                created_at,
                policy.response_time.hours,
                policy.response_time.business_hours_only,
                policy.business_hours
            ),
            resolution_due=self._calendar.due_date(
                created_at,
                policy.resolution_time.hours,
                policy.resolution_time.business_hours_only,
                policy.business_hours
            ),
        )

    def check_breach(
        self,
        sla: SLAConfig,
        created_at: datetime,
        escalation_matrix: Optional[List[EscalationLevel]] = None
    ) -> SLABreachCheck:
        """Evaluate the response clock first, then the resolution clock."""
        now = self._clock.now()

        breach_type = None
        if not sla.response_met and now > sla.response_due:
            breach_type = BreachType.RESPONSE
        elif not sla.resolution_met and now > sla.resolution_due:
            breach_type = BreachType.RESOLUTION

        if breach_type is not None:
            level = self.calculate_escalation_level(created_at, escalation_matrix)
            return SLABreachCheck(
                is_breached=True,
                breach_type=breach_type,
                time_remaining_minutes=0,
                escalation_level=level,
                next_escalation=_next_level(escalation_matrix, level),
            )

        remaining = math.floor((sla.resolution_due - now).total_seconds() / 60)
        return SLABreachCheck(
            is_breached=False,
            time_remaining_minutes=max(0, remaining),
            escalation_level=sla.escalation_level,
            next_escalation=_next_level(escalation_matrix, sla.escalation_level),
        )

    def calculate_escalation_level(
        self,
        created_at: datetime,
        escalation_matrix: Optional[List[EscalationLevel]] = None
    ) -> int:
        """Highest level whose threshold the elapsed time has reached."""
        elapsed = math.floor((self._clock.now() - created_at).total_seconds() / 60)

        if escalation_matrix:
            reached = [e.level for e in escalation_matrix if elapsed >= e.after_minutes]
            return max(reached, default=0)

        for index in range(len(self._thresholds) - 1, -1, -1):
            if elapsed >= self._thresholds[index]:
                return index + 1
        return 0

    def pause_sla(self, sla: SLAConfig) -> SLAConfig:
        """Stop the clock. Pausing an already paused SLA keeps the first pause."""
        if sla.is_paused:
            return sla
        return sla.model_copy(update={"paused_at": self._clock.now()})

    def resume_sla(self, sla: SLAConfig) -> SLAConfig:
        """Restart the clock, pushing both due dates out by the paused time."""
        if not sla.is_paused:
            return sla

        paused_for = self._clock.now() - sla.paused_at
        return sla.model_copy(update={
            "response_due": sla.response_due + paused_for,
            "resolution_due": sla.resolution_due + paused_for,
            "paused_at": None,
            "paused_duration_minutes": (
                sla.paused_duration_minutes + math.floor(paused_for.total_seconds() / 60)
            ),
        })

    def mark_response_met(self, sla: SLAConfig) -> SLAConfig:
        now = self._clock.now()
        return sla.model_copy(update={
            "response_met": now <= sla.response_due,
            "response_at": now,
        })

    def mark_resolution_met(self, sla: SLAConfig) -> SLAConfig:
        now = self._clock.now()
        return sla.model_copy(update={
            "resolution_met": now <= sla.resolution_due,
            "resolved_at": now,
            "breach_flag": now > sla.resolution_due,
        })

    @staticmethod
    def calculate_compliance(slas: Iterable[SLAConfig]) -> SLACompliance:
        """Compliance over SLAs whose resolution outcome is known."""
        decided = [s for s in slas if s.resolution_met is not None]
        met = sum(1 for s in decided if s.resolution_met)
        breached = sum(1 for s in decided if not s.resolution_met or s.breach_flag)
        total = len(decided)

        return SLACompliance(
            total=total,
            met=met,
            breached=breached,
            # Half-up, so 12.5% reads as 13%
            compliance_percent=math.floor(met * 100 / total + 0.5) if total else 100,
        )

    async def get_policy(self, sla_id: str) -> Optional[SLAPolicy]:
        """Policy behind an SLA snapshot; None for the built-in defaults."""
        if sla_id == DEFAULT_SLA_ID:
            return None
        return await self._policies.find_by_id(sla_id)

    async def get_escalation_details(self, sla_id: str, level: int) -> Optional[EscalationLevel]:
        policy = await self.get_policy(sla_id)
        return policy.escalation_for_level(level) if policy else None

    async def get_next_escalation(self, sla_id: str, current_level: int) -> Optional[EscalationLevel]:
        policy = await self.get_policy(sla_id)
        return policy.escalation_for_level(current_level + 1) if policy else None

    @staticmethod
    def _default_sla(priority: Priority, created_at: datetime) -> SLAConfig:
        response_hours, resolution_hours = DEFAULT_SLA_TARGETS[priority]
        return SLAConfig(
            sla_id=DEFAULT_SLA_ID,
            response_due=BusinessCalendar.due_date(created_at, response_hours, False),
            resolution_due=BusinessCalendar.due_date(created_at, resolution_hours, False),
        )


def _next_level(matrix: Optional[List[EscalationLevel]], level: int) -> Optional[EscalationLevel]:
    for entry in matrix or []:
        if entry.level == level + 1:
            return entry
    return None


class SLAPolicyService:
    """
    Service for managing SLA policies.

    Keeps at most one active default per priority: every path that flags a
    default goes through the repository's atomic set_default.
    """

    def __init__(
        self,
        repository: ISLAPolicyRepository,
        id_generator: SequenceIdGenerator,
        clock: Clock,
        default_timezone: str = "Asia/Riyadh",
        policy_source: Optional[ISLAPolicySource] = None
    ):
        self._repo = repository
        self._ids = id_generator
        self._clock = clock
        self._default_timezone = default_timezone
        self._source = policy_source

    async def create_policy(self, dto: SLAPolicyCreateDTO) -> SLAPolicy:
        """Create a policy; a default policy demotes the priority's current default."""
        now = self._clock.now()
        data = dto.model_dump(exclude={"sla_id", "is_default", "business_hours"})
        policy = SLAPolicy(
            **data,
            sla_id=dto.sla_id or await self._ids.generate_id(SLA_PREFIX),
            business_hours=dto.business_hours or BusinessHours.standard(self._default_timezone),
            created_at=now,
            updated_at=now,
        )
        policy = await self._repo.create(policy)

        logger.info(
            "SLA policy created",
            extra={"sla_id": policy.sla_id, "priority": policy.priority.value}
        )

        if dto.is_default:
            return await self.set_default(policy.sla_id)
        return policy

    async def get_policy(self, sla_id: str) -> SLAPolicy:
        policy = await self._repo.find_by_id(sla_id)
        if policy is None:
            raise ResourceNotFoundException("SLA", sla_id)
        return policy

    async def list_policies(
        self,
        priority: Optional[Priority] = None,
        active_only: bool = False,
        page: int = 1,
        limit: int = 20
    ) -> Page[SLAPolicy]:
        filters = {}
        if priority is not None:
            filters["priority"] = Priority(priority)
        if active_only:
            filters["is_active"] = True
        return await self._repo.find(filters, page=page, limit=limit, sort=(("priority", False),))

    async def update_policy(self, sla_id: str, dto: SLAPolicyUpdateDTO) -> SLAPolicy:
        patch = dto.model_dump(exclude_unset=True)
        make_default = patch.pop("is_default", None)
        if make_default is False:
            patch["is_default"] = False
        patch["updated_at"] = self._clock.now()

        policy = await self._repo.update(sla_id, patch)
        if policy is None:
            raise ResourceNotFoundException("SLA", sla_id)

        logger.info("SLA policy updated", extra={"sla_id": sla_id, "fields": sorted(patch)})

        if make_default:
            return await self.set_default(sla_id)
        return policy

    async def set_default(self, sla_id: str) -> SLAPolicy:
        """
        Make sla_id the default of its priority.

        Raises:
            ResourceNotFoundException: If the policy does not exist
            ValidationException: If the policy is inactive
        """
        policy = await self.get_policy(sla_id)
        if not policy.is_active:
            raise ValidationException(
                "Cannot set SLA as default",
                [f"SLA {sla_id} is inactive"]
            )

        updated = await self._repo.set_default(sla_id, policy.priority, self._clock.now())

        logger.info(
            "SLA default changed",
            extra={"sla_id": sla_id, "priority": policy.priority.value, "policies_touched": len(updated)}
        )
        return await self.get_policy(sla_id)

    async def deactivate_policy(self, sla_id: str) -> SLAPolicy:
        """Retire a policy; it stops matching and loses its default flag."""
        def deactivate(policy: SLAPolicy) -> None:
            apply_patch(policy, {
                "is_active": False,
                "is_default": False,
                "updated_at": self._clock.now(),
            })

        policy = await self._repo.find_one_and_update(sla_id, deactivate)
        if policy is None:
            raise ResourceNotFoundException("SLA", sla_id)

        logger.info("SLA policy deactivated", extra={"sla_id": sla_id})
        return policy

    async def load_policies_from_yaml(self, path: Path) -> List[SLAPolicy]:
        """
        Seed policies from a definition file.

        Definitions whose sla_id already exists are left alone, so seeding
        is safe to repeat on every startup.
        """
        if self._source is None:
            raise ConfigurationException("No SLA policy source configured")

        created = []
        for dto in self._source.read(Path(path)):
            if dto.sla_id and await self._repo.find_by_id(dto.sla_id) is not None:
                logger.debug("SLA policy already present, skipping", extra={"sla_id": dto.sla_id})
                continue
            created.append(await self.create_policy(dto))

        logger.info("SLA policies seeded", extra={"path": str(path), "created": len(created)})
        return created
