"""
Incident Application Services
=============================

IncidentWorkflow drives the incident lifecycle: creation with SLA
calculation, guarded status transitions, assignment, worklogs,
escalation and the periodic SLA breach sweep.

Every mutation goes through the repository's find_one_and_update, so the
transition check and its side effects are applied to the latest stored
state in one atomic step.
"""

from typing import Callable, Dict, List, Optional

from servicedesk.config import IncidentStatus, OPEN_INCIDENT_STATUSES
from servicedesk.core.clock import Clock
from servicedesk.core.exceptions import (
    ApplicationException,
    DomainException,
    ResourceNotFoundException,
)
from servicedesk.incidents.application.dto import (
    CreateIncidentDTO,
    IncidentFilterDTO,
    IncidentStats,
    ResolutionDTO,
    UpdateIncidentDTO,
    WorklogDTO,
)
from servicedesk.incidents.domain import (
    INCIDENT_TRANSITIONS,
    Assignee,
    Incident,
    Resolution,
    Worklog,
    derive_priority,
)
from servicedesk.sequences.application import INCIDENT_PREFIX, SequenceIdGenerator
from servicedesk.shared.application.repository import IRepository, Page, apply_patch
from servicedesk.shared.domain import SYSTEM_ACTOR, Actor
from servicedesk.shared.infrastructure.logging import get_logger
from servicedesk.sla.application.dto import SLAEvaluationSummary
from servicedesk.sla.application.services import ISLANotifier, SLAEngine
from servicedesk.sla.domain import SLABreachCheck, SLAPolicy

logger = get_logger(__name__)

BY_RESOLUTION_DUE = (("sla.resolution_due", False),)
BY_PRIORITY = (("priority_rank", True), ("created_at", True))
SEARCH_FIELDS = ("incident_id", "title", "description", "requester.name")
ACTIVE_STATUSES = [s for s in IncidentStatus if s not in (IncidentStatus.CLOSED, IncidentStatus.CANCELLED)]


# ========== Repository Interfaces (Dependency Inversion) ==========

class IIncidentRepository(IRepository[Incident]):
    """Interface for incident data access."""


# ========== Application Services ==========

class IncidentWorkflow:
    """
    Service for the incident lifecycle.

    Coordinates between domain rules, the SLA engine and data access.
    """

    def __init__(
        self,
        repository: IIncidentRepository,
        sla_engine: SLAEngine,
        id_generator: SequenceIdGenerator,
        clock: Clock,
        notifier: Optional[ISLANotifier] = None,
        pause_on_pending: bool = True
    ):
        self._repo = repository
        self._sla = sla_engine
        self._ids = id_generator
        self._clock = clock
        self._notifier = notifier
        self._pause_on_pending = pause_on_pending

    # ========== Commands ==========

    async def create_incident(self, dto: CreateIncidentDTO) -> Incident:
        """
        Create an incident with its priority and SLA.

        Args:
            dto: Validated creation input

        Returns:
            The stored incident, status open
        """
        incident_id = await self._ids.generate_id(INCIDENT_PREFIX)
        priority = derive_priority(dto.impact, dto.urgency)
        now = self._clock.now()
        sla = await self._sla.calculate_sla(priority, dto.category_id, dto.site_id, now)

        incident = Incident(
            **dto.model_dump(),
            incident_id=incident_id,
            status=IncidentStatus.OPEN,
            priority=priority,
            sla=sla,
            created_at=now,
            updated_at=now,
        )
        requester = Actor(id=dto.requester.id, name=dto.requester.name)
        incident.record("Incident Created", requester, now, {"channel": dto.channel.value})

        incident = await self._repo.create(incident)

        logger.info(
            "Incident created",
            extra={
                "incident_id": incident_id,
                "priority": priority.value,
                "category_id": dto.category_id,
                "requester": dto.requester.id,
                "sla_id": sla.sla_id
            }
        )
        return incident

    async def update_incident(self, incident_id: str, dto: UpdateIncidentDTO, actor: Actor) -> Incident:
        """Apply field changes; priority follows impact and urgency."""
        patch = dto.model_dump(exclude_unset=True)

        def update(incident: Incident) -> None:
            apply_patch(incident, patch)
            if "impact" in patch or "urgency" in patch:
                incident.priority = derive_priority(incident.impact, incident.urgency)
            incident.record(
                "Incident Updated", actor, self._clock.now(),
                dto.model_dump(mode="json", exclude_unset=True)
            )

        incident = await self._mutate(incident_id, update)
        logger.info("Incident updated", extra={"incident_id": incident_id, "updated_by": actor.id})
        return incident

    async def assign_incident(self, incident_id: str, assignee: Assignee, actor: Actor) -> Incident:
        """
        Assign a technician.

        The first assignment counts as the first response.

        Raises:
            DomainException: If the incident is closed
        """
        def assign(incident: Incident) -> None:
            if incident.is_closed:
                raise DomainException(
                    "Cannot assign a closed incident",
                    {"incident_id": incident_id}
                )
            now = self._clock.now()
            incident.assigned_to = assignee
            incident.record(f"Assigned to {assignee.name}", actor, now, {
                "technician_id": assignee.technician_id,
                "group_id": assignee.group_id,
            })
            if incident.first_response_at is None:
                incident.first_response_at = now
                incident.sla = self._sla.mark_response_met(incident.sla)

        incident = await self._mutate(incident_id, assign)
        logger.info(
            "Incident assigned",
            extra={"incident_id": incident_id, "assignee": assignee.technician_id, "assigned_by": actor.id}
        )
        return incident

    async def update_status(
        self,
        incident_id: str,
        status: IncidentStatus,
        actor: Actor,
        resolution: Optional[ResolutionDTO] = None
    ) -> Incident:
        """
        Move the incident to status.

        Raises:
            InvalidTransitionException: If the move is not in the transition table
        """
        status = IncidentStatus(status)
        previous: Dict[str, IncidentStatus] = {}

        def transition(incident: Incident) -> None:
            current = incident.status
            INCIDENT_TRANSITIONS.ensure(current, status)
            now = self._clock.now()
            previous["status"] = current

            if self._pause_on_pending:
                if status == IncidentStatus.PENDING:
                    incident.sla = self._sla.pause_sla(incident.sla)
                elif current == IncidentStatus.PENDING:
                    incident.sla = self._sla.resume_sla(incident.sla)

            if status == IncidentStatus.RESOLVED and resolution is not None:
                incident.resolution = Resolution(
                    code=resolution.code,
                    notes=resolution.notes,
                    resolved_by=actor.id,
                    resolved_by_name=actor.name,
                    resolved_at=now,
                )
                incident.sla = self._sla.mark_resolution_met(incident.sla)

            if status == IncidentStatus.OPEN and current == IncidentStatus.RESOLVED:
                incident.reopen_count += 1

            if status == IncidentStatus.CLOSED:
                incident.closed_at = now

            incident.status = status
            incident.record(f"Status changed to {status.value}", actor, now)

        incident = await self._mutate(incident_id, transition)
        logger.info(
            "Incident status updated",
            extra={
                "incident_id": incident_id,
                "from_status": previous["status"].value,
                "to_status": status.value,
                "updated_by": actor.id
            }
        )
        return incident

    async def add_worklog(self, incident_id: str, dto: WorklogDTO, actor: Actor) -> Incident:
        """
        Record time spent on the incident.

        Raises:
            DomainException: If the incident is closed
        """
        def log_work(incident: Incident) -> None:
            if incident.is_closed:
                raise DomainException(
                    "Cannot add worklog to a closed incident",
                    {"incident_id": incident_id}
                )
            now = self._clock.now()
            log_id = f"WL-{int(now.timestamp() * 1000)}-{len(incident.worklogs) + 1}"
            incident.worklogs.append(Worklog(
                log_id=log_id,
                by=actor.id,
                by_name=actor.name,
                minutes_spent=dto.minutes_spent,
                note=dto.note,
                is_internal=dto.is_internal,
                created_at=now,
            ))
            incident.record("Worklog Added", actor, now, {
                "log_id": log_id,
                "minutes_spent": dto.minutes_spent,
            })

        incident = await self._mutate(incident_id, log_work)
        logger.info(
            "Worklog added",
            extra={"incident_id": incident_id, "minutes": dto.minutes_spent}
        )
        return incident

    async def escalate_incident(self, incident_id: str, reason: str, actor: Actor) -> Incident:
        """Raise the escalation level by one, recording the matrix entry for it."""
        policy = await self._policy_for(await self.get_incident(incident_id))

        def escalate(incident: Incident) -> None:
            level = incident.sla.escalation_level + 1
            escalation = policy.escalation_for_level(level) if policy else None
            incident.sla = incident.sla.model_copy(update={"escalation_level": level})
            incident.record(f"Escalated to Level {level}", actor, self._clock.now(), {
                "reason": reason,
                "escalation": escalation.model_dump(mode="json") if escalation else None,
            })

        incident = await self._mutate(incident_id, escalate)
        logger.info(
            "Incident escalated",
            extra={
                "incident_id": incident_id,
                "escalation_level": incident.sla.escalation_level,
                "escalated_by": actor.id,
                "reason": reason
            }
        )
        return incident

    async def link_to_problem(self, incident_id: str, problem_id: str, actor: Actor) -> Incident:
        """
        Point the incident at a problem. Relinking the same problem is a no-op.

        Only the incident side changes; ProblemWorkflow.link_incident keeps
        both sides in step.
        """
        incident = await self._mutate(
            incident_id, lambda incident: incident.link_problem(problem_id, actor, self._clock.now())
        )
        logger.info("Incident linked to problem", extra={"incident_id": incident_id, "problem_id": problem_id})
        return incident

    # ========== SLA ==========

    async def check_sla(self, incident_id: str) -> SLABreachCheck:
        incident = await self.get_incident(incident_id)
        policy = await self._policy_for(incident)
        return self._sla.check_breach(
            incident.sla,
            incident.created_at,
            policy.escalation_matrix if policy else None
        )

    async def evaluate_sla_breaches(self) -> SLAEvaluationSummary:
        """
        Sweep open incidents: flag breaches, raise escalation levels and notify.

        Run periodically by the SLA scheduler. A failure on one incident is
        logged and counted; the sweep continues with the next one.
        """
        summary = SLAEvaluationSummary()
        policies: Dict[str, Optional[SLAPolicy]] = {}

        incidents = await self._repo.find_all({"status": OPEN_INCIDENT_STATUSES}, sort=BY_RESOLUTION_DUE)
        for incident in incidents:
            summary.evaluated += 1
            if incident.sla.is_paused:
                summary.skipped_paused += 1
                continue

            try:
                if incident.sla.sla_id not in policies:
                    policies[incident.sla.sla_id] = await self._policy_for(incident)
                await self._evaluate_incident(incident, policies[incident.sla.sla_id], summary)
            except ApplicationException as e:
                summary.failed += 1
                summary.errors.append(f"{incident.incident_id}: {e.message}")
                logger.error(
                    "SLA evaluation failed",
                    extra={"incident_id": incident.incident_id, "error": e.message}
                )

        logger.info("SLA evaluation completed", extra=summary.model_dump())
        return summary

    async def _evaluate_incident(
        self,
        incident: Incident,
        policy: Optional[SLAPolicy],
        summary: SLAEvaluationSummary
    ) -> None:
        matrix = policy.escalation_matrix if policy else None
        check = self._sla.check_breach(incident.sla, incident.created_at, matrix)
        if not check.is_breached:
            return

        summary.breached += 1
        if incident.sla.breach_flag and check.escalation_level <= incident.sla.escalation_level:
            return

        outcome = {"newly_breached": False, "escalated_to": None}

        def apply(stored: Incident) -> None:
            outcome.update(newly_breached=False, escalated_to=None)
            if stored.status not in OPEN_INCIDENT_STATUSES or stored.sla.is_paused:
                return
            update = {}
            if not stored.sla.breach_flag:
                update["breach_flag"] = True
                outcome["newly_breached"] = True
            if check.escalation_level > stored.sla.escalation_level:
                update["escalation_level"] = check.escalation_level
                outcome["escalated_to"] = check.escalation_level
            if not update:
                return

            now = self._clock.now()
            stored.sla = stored.sla.model_copy(update=update)
            if outcome["escalated_to"] is not None:
                escalation = policy.escalation_for_level(check.escalation_level) if policy else None
                stored.record(f"Escalated to Level {check.escalation_level}", SYSTEM_ACTOR, now, {
                    "reason": f"SLA {check.breach_type.value} breach",
                    "escalation": escalation.model_dump(mode="json") if escalation else None,
                })
            else:
                stored.updated_at = now

        await self._mutate(incident.incident_id, apply)

        if outcome["newly_breached"]:
            summary.newly_breached += 1
            if self._notifier:
                await self._notifier.notify_breach(incident.incident_id, check)
        if outcome["escalated_to"] is not None:
            summary.escalated += 1
            if self._notifier:
                await self._notifier.notify_escalation(
                    incident.incident_id,
                    outcome["escalated_to"],
                    policy.escalation_for_level(outcome["escalated_to"]) if policy else None
                )

    # ========== Queries ==========

    async def get_incident(self, incident_id: str) -> Incident:
        incident = await self._repo.find_by_id(incident_id)
        if incident is None:
            raise ResourceNotFoundException("Incident", incident_id)
        return incident

    async def get_incidents(self, filters: Optional[IncidentFilterDTO] = None) -> Page[Incident]:
        filters = filters or IncidentFilterDTO()
        query = {}
        if filters.status:
            query["status"] = filters.status
        if filters.priority:
            query["priority"] = filters.priority
        if filters.assignee:
            query["assigned_to.technician_id"] = filters.assignee
        if filters.requester:
            query["requester.id"] = filters.requester
        if filters.site_id:
            query["site_id"] = filters.site_id
        if filters.category_id:
            query["category_id"] = filters.category_id
        if filters.is_major is not None:
            query["is_major"] = filters.is_major
        if filters.breached:
            query["sla.breach_flag"] = True

        return await self._repo.find(query, page=filters.page, limit=filters.limit, sort=BY_PRIORITY)

    async def search_incidents(self, query: str, limit: int = 50) -> List[Incident]:
        """Case-insensitive substring match on id, title, description and requester name."""
        query = query.strip()
        if not query:
            return []
        return await self._repo.search_text(SEARCH_FIELDS, query, limit=limit)

    async def get_open_incidents(self) -> List[Incident]:
        return await self._repo.find_all({"status": OPEN_INCIDENT_STATUSES}, sort=BY_RESOLUTION_DUE)

    async def get_breached_incidents(self) -> List[Incident]:
        return await self._repo.find_all(
            {"sla.breach_flag": True, "status": ACTIVE_STATUSES},
            sort=BY_RESOLUTION_DUE
        )

    async def get_unassigned_incidents(self) -> List[Incident]:
        return await self._repo.find_all(
            {"assigned_to": None, "status": OPEN_INCIDENT_STATUSES},
            sort=BY_RESOLUTION_DUE
        )

    async def get_major_incidents(self) -> List[Incident]:
        return await self._repo.find_all({"is_major": True, "status": ACTIVE_STATUSES})

    async def get_stats(self, site_id: Optional[str] = None) -> IncidentStats:
        base = {"site_id": site_id} if site_id else {}

        async def count(**extra) -> int:
            return await self._repo.count({**base, **extra})

        incidents = await self._repo.find_all(base)
        return IncidentStats(
            total=len(incidents),
            open=await count(status=IncidentStatus.OPEN),
            in_progress=await count(status=IncidentStatus.IN_PROGRESS),
            pending=await count(status=IncidentStatus.PENDING),
            resolved=await count(status=IncidentStatus.RESOLVED),
            closed=await count(status=IncidentStatus.CLOSED),
            breached=await count(**{"sla.breach_flag": True, "status": ACTIVE_STATUSES}),
            compliance=self._sla.calculate_compliance(i.sla for i in incidents),
        )

    # ========== Helpers ==========

    async def _mutate(self, incident_id: str, mutate: Callable[[Incident], None]) -> Incident:
        incident = await self._repo.find_one_and_update(incident_id, mutate)
        if incident is None:
            raise ResourceNotFoundException("Incident", incident_id)
        return incident

    async def _policy_for(self, incident: Incident) -> Optional[SLAPolicy]:
        return await self._sla.get_policy(incident.sla.sla_id)
