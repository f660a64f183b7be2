"""
Problem Application Services
============================

ProblemWorkflow records root cause analysis and known errors and keeps
problem and incident links in step on both sides.

The two sides of a link are separate saves: the problem is updated
first, then each incident. An incident write that fails after the
problem write leaves a one-sided link, which relinking repairs.
"""

from typing import Callable, Dict, List, Optional

from servicedesk.config import ProblemStatus
from servicedesk.core.clock import Clock
from servicedesk.core.exceptions import ResourceNotFoundException
from servicedesk.incidents.application.services import IIncidentRepository
from servicedesk.incidents.domain import Incident
from servicedesk.problems.application.dto import (
    CreateProblemDTO,
    KnownErrorDTO,
    ProblemFilterDTO,
    ProblemStats,
    UpdateProblemDTO,
)
from servicedesk.problems.domain import OPEN_PROBLEM_STATUSES, KnownError, Problem, ProblemOwner
from servicedesk.sequences.application import PROBLEM_PREFIX, SequenceIdGenerator
from servicedesk.shared.application.repository import IRepository, Page, apply_patch
from servicedesk.shared.domain import SYSTEM_ACTOR, Actor
from servicedesk.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)


# ========== Repository Interfaces (Dependency Inversion) ==========

class IProblemRepository(IRepository[Problem]):
    """Interface for problem data access."""


# ========== Application Services ==========

class ProblemWorkflow:
    """Service for problem management."""

    def __init__(
        self,
        repository: IProblemRepository,
        incident_repository: IIncidentRepository,
        id_generator: SequenceIdGenerator,
        clock: Clock
    ):
        self._repo = repository
        self._incidents = incident_repository
        self._ids = id_generator
        self._clock = clock

    # ========== Commands ==========

    async def create_problem(self, dto: CreateProblemDTO) -> Problem:
        """
        Log a new problem.

        Every incident in dto.linked_incidents must exist; each one gets a
        back-reference to the new problem.

        Raises:
            ResourceNotFoundException: If a linked incident does not exist
        """
        linked = list(dict.fromkeys(dto.linked_incidents))
        for incident_id in linked:
            await self._require_incident(incident_id)

        problem_id = await self._ids.generate_id(PROBLEM_PREFIX)
        now = self._clock.now()
        owner = Actor(id=dto.owner.id, name=dto.owner.name)

        problem = Problem(
            **dto.model_dump(exclude={"linked_incidents"}),
            problem_id=problem_id,
            status=ProblemStatus.LOGGED,
            linked_incidents=linked,
            created_at=now,
            updated_at=now,
        )
        problem.record("Problem Logged", owner, now, {"priority": dto.priority.value})
        problem = await self._repo.create(problem)

        for incident_id in linked:
            await self._link_incident_side(incident_id, problem_id, owner)

        logger.info(
            "Problem created",
            extra={
                "problem_id": problem_id,
                "priority": dto.priority.value,
                "linked_incidents": len(linked)
            }
        )
        return problem

    async def create_from_incident(self, incident_id: str, actor: Actor, email: str) -> Problem:
        """Open a problem that inherits the incident's classification."""
        incident = await self._require_incident(incident_id)
        return await self.create_problem(CreateProblemDTO(
            title=f"Problem from {incident_id}: {incident.title}"[:200],
            description=incident.description,
            priority=incident.priority,
            impact=incident.impact,
            category_id=incident.category_id,
            subcategory_id=incident.subcategory_id,
            owner=ProblemOwner(id=actor.id, name=actor.name or actor.id, email=email),
            site_id=incident.site_id,
            linked_incidents=[incident_id],
            tags=incident.tags,
        ))

    async def update_problem(self, problem_id: str, dto: UpdateProblemDTO, actor: Actor) -> Problem:
        patch = dto.model_dump(exclude_unset=True)

        def update(problem: Problem) -> None:
            apply_patch(problem, patch)
            problem.record(
                "Problem Updated", actor, self._clock.now(),
                dto.model_dump(mode="json", exclude_unset=True)
            )

        problem = await self._mutate(problem_id, update)
        logger.info("Problem updated", extra={"problem_id": problem_id, "updated_by": actor.id})
        return problem

    async def update_root_cause(
        self,
        problem_id: str,
        root_cause: str,
        workaround: str,
        actor: Actor
    ) -> Problem:
        """Record RCA findings and move the problem to rca_in_progress."""
        def analyse(problem: Problem) -> None:
            problem.root_cause = root_cause
            problem.workaround = workaround
            problem.status = ProblemStatus.RCA_IN_PROGRESS
            problem.record("Root Cause Analysis Updated", actor, self._clock.now(), {"root_cause": root_cause})

        problem = await self._mutate(problem_id, analyse)
        logger.info("Root cause updated", extra={"problem_id": problem_id})
        return problem

    async def mark_as_known_error(self, problem_id: str, dto: KnownErrorDTO, actor: Actor) -> Problem:
        def document(problem: Problem) -> None:
            now = self._clock.now()
            problem.known_error = KnownError(
                **dto.model_dump(),
                ke_id=f"KE-{int(now.timestamp() * 1000)}",
                documented_by=actor.id,
                documented_at=now,
            )
            problem.status = ProblemStatus.KNOWN_ERROR
            problem.record("Marked as Known Error", actor, now, {"ke_id": problem.known_error.ke_id})

        problem = await self._mutate(problem_id, document)
        logger.info(
            "Problem marked as known error",
            extra={"problem_id": problem_id, "ke_id": problem.known_error.ke_id}
        )
        return problem

    async def link_incident(self, problem_id: str, incident_id: str, actor: Actor) -> Problem:
        """
        Link an incident to the problem on both sides.

        Linking an already linked incident changes nothing.

        Raises:
            ResourceNotFoundException: If either side does not exist
        """
        await self._require_incident(incident_id)

        def link(problem: Problem) -> None:
            if problem.link_incident(incident_id):
                problem.record(f"Incident {incident_id} linked", SYSTEM_ACTOR, self._clock.now())

        problem = await self._mutate(problem_id, link)
        await self._link_incident_side(incident_id, problem_id, actor)

        logger.info("Incident linked to problem", extra={"problem_id": problem_id, "incident_id": incident_id})
        return problem

    async def update_status(self, problem_id: str, status: ProblemStatus, actor: Actor) -> Problem:
        status = ProblemStatus(status)

        def change(problem: Problem) -> None:
            now = self._clock.now()
            problem.status = status
            if status == ProblemStatus.CLOSED:
                problem.closed_at = now
            problem.record(f"Status changed to {status.value}", actor, now)

        problem = await self._mutate(problem_id, change)
        logger.info("Problem status updated", extra={"problem_id": problem_id, "status": status.value})
        return problem

    async def resolve_problem(self, problem_id: str, permanent_fix: str, actor: Actor) -> Problem:
        """Record the permanent fix and tell every linked incident."""
        def resolve(problem: Problem) -> None:
            problem.permanent_fix = permanent_fix
            problem.status = ProblemStatus.RESOLVED
            problem.record("Problem Resolved", actor, self._clock.now(), {"permanent_fix": permanent_fix})

        problem = await self._mutate(problem_id, resolve)

        def notify(incident: Incident) -> None:
            incident.record(
                f"Linked Problem {problem_id} has been resolved",
                SYSTEM_ACTOR, self._clock.now(), {"permanent_fix": permanent_fix}
            )

        for incident_id in problem.linked_incidents:
            if await self._incidents.find_one_and_update(incident_id, notify) is None:
                logger.warning(
                    "Linked incident missing",
                    extra={"problem_id": problem_id, "incident_id": incident_id}
                )

        logger.info(
            "Problem resolved",
            extra={"problem_id": problem_id, "linked_incidents": len(problem.linked_incidents)}
        )
        return problem

    # ========== Queries ==========

    async def get_problem(self, problem_id: str) -> Problem:
        problem = await self._repo.find_by_id(problem_id)
        if problem is None:
            raise ResourceNotFoundException("Problem", problem_id)
        return problem

    async def get_problems(self, filters: Optional[ProblemFilterDTO] = None) -> Page[Problem]:
        filters = filters or ProblemFilterDTO()
        query = {}
        if filters.status:
            query["status"] = filters.status
        if filters.priority:
            query["priority"] = filters.priority
        if filters.owner:
            query["owner.id"] = filters.owner
        if filters.site_id:
            query["site_id"] = filters.site_id
        if filters.category_id:
            query["category_id"] = filters.category_id

        return await self._repo.find(query, page=filters.page, limit=filters.limit)

    async def get_open_problems(self) -> List[Problem]:
        return await self._repo.find_all({"status": OPEN_PROBLEM_STATUSES})

    async def get_known_errors(self) -> List[Problem]:
        return await self._repo.find_all({"status": ProblemStatus.KNOWN_ERROR})

    async def find_by_incident(self, incident_id: str) -> List[Problem]:
        return await self._repo.find_all({"linked_incidents": incident_id})

    async def get_stats(self, site_id: Optional[str] = None) -> ProblemStats:
        base = {"site_id": site_id} if site_id else {}

        async def count(status: Optional[ProblemStatus] = None) -> int:
            return await self._repo.count({**base, "status": status} if status else base)

        return ProblemStats(
            total=await count(),
            logged=await count(ProblemStatus.LOGGED),
            rca_in_progress=await count(ProblemStatus.RCA_IN_PROGRESS),
            known_errors=await count(ProblemStatus.KNOWN_ERROR),
            resolved=await count(ProblemStatus.RESOLVED),
        )

    # ========== Helpers ==========

    async def _mutate(self, problem_id: str, mutate: Callable[[Problem], None]) -> Problem:
        problem = await self._repo.find_one_and_update(problem_id, mutate)
        if problem is None:
            raise ResourceNotFoundException("Problem", problem_id)
        return problem

    async def _require_incident(self, incident_id: str) -> Incident:
        incident = await self._incidents.find_by_id(incident_id)
        if incident is None:
            raise ResourceNotFoundException("Incident", incident_id)
        return incident

    async def _link_incident_side(self, incident_id: str, problem_id: str, actor: Actor) -> None:
        """
        Point the incident at problem_id and detach it from the problem it
        pointed at before.

        Each side is its own atomic write, so a failure part way leaves the
        links out of step until the link is repeated.
        """
        previous: Dict[str, Optional[str]] = {}

        def link(incident: Incident) -> None:
            previous["problem_id"] = incident.link_problem(problem_id, actor, self._clock.now())

        if await self._incidents.find_one_and_update(incident_id, link) is None:
            raise ResourceNotFoundException("Incident", incident_id)

        old_problem_id = previous["problem_id"]
        if old_problem_id is None or old_problem_id == problem_id:
            return

        def detach(problem: Problem) -> None:
            if problem.unlink_incident(incident_id):
                problem.record(
                    f"Incident {incident_id} moved to {problem_id}", SYSTEM_ACTOR, self._clock.now()
                )

        if await self._repo.find_one_and_update(old_problem_id, detach) is None:
            logger.warning(
                "Previously linked problem not found",
                extra={"problem_id": old_problem_id, "incident_id": incident_id}
            )
