"""
Change Application Services
===========================

ChangeWorkflow drives change requests from draft through CAB review,
scheduling and implementation.

Every status change is checked against CHANGE_TRANSITIONS inside the
repository's atomic find-and-update, so concurrent CAB decisions are
counted against the latest stored approval record.
"""

from datetime import datetime
from typing import Callable, List, Optional

from servicedesk.config import ApprovalStatus, ChangeStatus, ChangeType
from servicedesk.core.clock import Clock
from servicedesk.core.exceptions import (
    InvalidTransitionException,
    ResourceNotFoundException,
    ValidationException,
)
from servicedesk.changes.application.dto import (
    CabMemberDTO,
    ChangeFilterDTO,
    ChangeStats,
    CreateChangeDTO,
    ScheduleDTO,
    UpdateChangeDTO,
)
from servicedesk.changes.domain import (
    CHANGE_TRANSITIONS,
    CabApproval,
    CabMember,
    Change,
    ChangeSchedule,
    is_cab_required,
)
from servicedesk.sequences.application import CHANGE_PREFIX, SequenceIdGenerator
from servicedesk.shared.application.repository import IRepository, Page, apply_patch
from servicedesk.shared.domain import Actor
from servicedesk.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)

BY_PLANNED_START = (("schedule.planned_start", False), ("created_at", True))
CLOSED_CHANGE_STATUSES = [ChangeStatus.COMPLETED, ChangeStatus.CANCELLED, ChangeStatus.FAILED]


# ========== Repository Interfaces (Dependency Inversion) ==========

class IChangeRepository(IRepository[Change]):
    """Interface for change request data access."""


# ========== Application Services ==========

class ChangeWorkflow:
    """Service for the change request lifecycle."""

    def __init__(
        self,
        repository: IChangeRepository,
        id_generator: SequenceIdGenerator,
        clock: Clock
    ):
        self._repo = repository
        self._ids = id_generator
        self._clock = clock

    # ========== Commands ==========

    async def create_change(self, dto: CreateChangeDTO) -> Change:
        """
        Create a draft change request.

        cab_required follows type and risk; every listed CAB member must
        approve before a CAB-reviewed change is approved.
        """
        change_id = await self._ids.generate_id(CHANGE_PREFIX)
        now = self._clock.now()
        cab_required = is_cab_required(dto.type, dto.risk)

        change = Change(
            **dto.model_dump(exclude={"cab_members", "schedule"}),
            change_id=change_id,
            status=ChangeStatus.DRAFT,
            cab_required=cab_required,
            approval=CabApproval(
                required_approvers=len(dto.cab_members),
                members=[CabMember(**m.model_dump()) for m in dto.cab_members],
            ),
            schedule=ChangeSchedule(**dto.schedule.model_dump()) if dto.schedule else ChangeSchedule(),
            created_at=now,
            updated_at=now,
        )
        requester = Actor(id=dto.requested_by.id, name=dto.requested_by.name)
        change.record("Change Request Created", requester, now, {"type": dto.type.value})

        change = await self._repo.create(change)

        logger.info(
            "Change request created",
            extra={
                "change_id": change_id,
                "type": dto.type.value,
                "priority": dto.priority.value,
                "cab_required": cab_required
            }
        )
        return change

    async def update_change(self, change_id: str, dto: UpdateChangeDTO, actor: Actor) -> Change:
        """
        Edit a draft or rejected change.

        A rejected change goes back to draft with its CAB decisions
        cleared, ready to be resubmitted.

        Raises:
            InvalidTransitionException: If the change is past draft and not rejected
        """
        patch = dto.model_dump(exclude_unset=True)

        def update(change: Change) -> None:
            now = self._clock.now()
            if change.status != ChangeStatus.DRAFT:
                CHANGE_TRANSITIONS.ensure(
                    change.status, ChangeStatus.DRAFT,
                    "only draft or rejected changes can be updated"
                )
                change.approval.reset()
                change.status = ChangeStatus.DRAFT
                change.record("Returned to Draft", actor, now, {"previous_status": ChangeStatus.REJECTED.value})

            apply_patch(change, patch)
            if "risk" in patch:
                change.cab_required = is_cab_required(change.type, change.risk)
            change.record("Change Updated", actor, now, dto.model_dump(mode="json", exclude_unset=True))

        change = await self._mutate(change_id, update)
        logger.info("Change updated", extra={"change_id": change_id, "updated_by": actor.id})
        return change

    async def submit_for_approval(self, change_id: str, actor: Actor) -> Change:
        """
        Submit a draft for CAB review, or approve it outright when no CAB is required.

        Raises:
            InvalidTransitionException: If the change is not a draft
            ValidationException: Listing every missing field
        """
        def submit(change: Change) -> None:
            target = ChangeStatus.CAB_REVIEW if change.cab_required else ChangeStatus.APPROVED
            if change.status != ChangeStatus.DRAFT:
                raise InvalidTransitionException(
                    "change", change.status.value, target.value,
                    "only draft changes can be submitted"
                )

            errors = change.submission_errors()
            if errors:
                raise ValidationException("Validation failed", errors)

            now = self._clock.now()
            CHANGE_TRANSITIONS.ensure(change.status, target)
            change.status = target

            if change.cab_required:
                event = "Submitted for CAB Review"
            else:
                change.approval.cab_status = ApprovalStatus.APPROVED
                change.approval.approved_at = now
                event = f"Auto-approved ({change.type.value.title()} Change)"
            change.record(event, actor, now)

        change = await self._mutate(change_id, submit)
        logger.info(
            "Change submitted",
            extra={"change_id": change_id, "cab_required": change.cab_required, "status": change.status.value}
        )
        return change

    async def add_cab_approval(
        self,
        change_id: str,
        member: CabMemberDTO,
        decision: ApprovalStatus,
        comments: Optional[str] = None
    ) -> Change:
        """
        Record a CAB member's decision.

        Any rejection rejects the change; reaching the required number of
        approvals approves it.

        Raises:
            ValidationException: If decision is not approved or rejected
            InvalidTransitionException: If the change is not in cab_review
        """
        decision = ApprovalStatus(decision)
        if decision == ApprovalStatus.PENDING:
            raise ValidationException("Invalid CAB decision", ["Decision must be approved or rejected"])
        requested = ChangeStatus.REJECTED if decision == ApprovalStatus.REJECTED else ChangeStatus.APPROVED

        def decide(change: Change) -> None:
            if change.status != ChangeStatus.CAB_REVIEW:
                raise InvalidTransitionException(
                    "change", change.status.value, requested.value,
                    "CAB decisions are only accepted during cab_review"
                )

            now = self._clock.now()
            approval = change.approval
            approval.record_decision(CabMember(**member.model_dump()), decision, comments, now)

            if approval.cab_status == ApprovalStatus.REJECTED:
                CHANGE_TRANSITIONS.ensure(change.status, ChangeStatus.REJECTED)
                change.status = ChangeStatus.REJECTED
            elif approval.cab_status == ApprovalStatus.APPROVED:
                CHANGE_TRANSITIONS.ensure(change.status, ChangeStatus.APPROVED)
                change.status = ChangeStatus.APPROVED

            change.record(
                f"CAB {decision.value} by {member.name}",
                Actor(id=member.member_id, name=member.name),
                now,
                {"decision": decision.value, "comments": comments}
            )

        change = await self._mutate(change_id, decide)
        logger.info(
            "CAB decision recorded",
            extra={
                "change_id": change_id,
                "member": member.member_id,
                "decision": decision.value,
                "approvals": f"{change.approval.current_approvers}/{change.approval.required_approvers}",
                "cab_status": change.approval.cab_status.value
            }
        )
        return change

    async def schedule_change(self, change_id: str, schedule: ScheduleDTO, actor: Actor) -> Change:
        def plan(change: Change) -> None:
            CHANGE_TRANSITIONS.ensure(change.status, ChangeStatus.SCHEDULED, "only approved changes can be scheduled")
            change.schedule.planned_start = schedule.planned_start
            change.schedule.planned_end = schedule.planned_end
            change.schedule.maintenance_window = schedule.maintenance_window
            change.status = ChangeStatus.SCHEDULED
            change.record("Change Scheduled", actor, self._clock.now(), schedule.model_dump(mode="json"))

        change = await self._mutate(change_id, plan)
        logger.info(
            "Change scheduled",
            extra={
                "change_id": change_id,
                "start": schedule.planned_start.isoformat(),
                "end": schedule.planned_end.isoformat()
            }
        )
        return change

    async def start_implementation(self, change_id: str, actor: Actor) -> Change:
        def start(change: Change) -> None:
            CHANGE_TRANSITIONS.ensure(
                change.status, ChangeStatus.IMPLEMENTING, "only scheduled changes can be implemented"
            )
            now = self._clock.now()
            change.schedule.actual_start = now
            change.status = ChangeStatus.IMPLEMENTING
            change.record("Implementation Started", actor, now)

        change = await self._mutate(change_id, start)
        logger.info("Change implementation started", extra={"change_id": change_id})
        return change

    async def complete_change(self, change_id: str, success: bool, notes: str, actor: Actor) -> Change:
        """Close an implementing change as completed or failed."""
        target = ChangeStatus.COMPLETED if success else ChangeStatus.FAILED

        def complete(change: Change) -> None:
            CHANGE_TRANSITIONS.ensure(change.status, target, "only implementing changes can be completed")
            now = self._clock.now()
            change.schedule.actual_end = now
            change.closed_at = now
            change.status = target
            change.record(
                "Change Completed Successfully" if success else "Change Failed",
                actor, now, {"notes": notes}
            )

        change = await self._mutate(change_id, complete)
        logger.info("Change completed", extra={"change_id": change_id, "success": success})
        return change

    async def cancel_change(self, change_id: str, reason: str, actor: Actor) -> Change:
        def cancel(change: Change) -> None:
            CHANGE_TRANSITIONS.ensure(
                change.status, ChangeStatus.CANCELLED,
                "cannot cancel completed or already cancelled changes"
            )
            now = self._clock.now()
            change.status = ChangeStatus.CANCELLED
            change.closed_at = now
            change.record("Change Cancelled", actor, now, {"reason": reason})

        change = await self._mutate(change_id, cancel)
        logger.info("Change cancelled", extra={"change_id": change_id, "reason": reason})
        return change

    # ========== Queries ==========

    async def get_change(self, change_id: str) -> Change:
        change = await self._repo.find_by_id(change_id)
        if change is None:
            raise ResourceNotFoundException("Change", change_id)
        return change

    async def get_changes(self, filters: Optional[ChangeFilterDTO] = None) -> Page[Change]:
        filters = filters or ChangeFilterDTO()
        query = {}
        if filters.status:
            query["status"] = filters.status
        if filters.type:
            query["type"] = filters.type
        if filters.priority:
            query["priority"] = filters.priority
        if filters.requester:
            query["requested_by.id"] = filters.requester
        if filters.owner:
            query["owner.id"] = filters.owner
        if filters.site_id:
            query["site_id"] = filters.site_id

        if filters.scheduled_from is None and filters.scheduled_to is None:
            return await self._repo.find(query, page=filters.page, limit=filters.limit, sort=BY_PLANNED_START)

        changes = [
            c for c in await self._repo.find_all(query, sort=BY_PLANNED_START)
            if _planned_within(c, filters.scheduled_from, filters.scheduled_to)
        ]
        start = (filters.page - 1) * filters.limit
        return Page.build(changes[start:start + filters.limit], filters.page, filters.limit, len(changes))

    async def get_pending_cab_approval(self) -> List[Change]:
        return await self._repo.find_all(
            {
                "status": ChangeStatus.CAB_REVIEW,
                "cab_required": True,
                "approval.cab_status": ApprovalStatus.PENDING,
            },
            sort=BY_PLANNED_START
        )

    async def get_scheduled_changes(self, start: datetime, end: datetime) -> List[Change]:
        """Scheduled changes planned to start within [start, end]."""
        changes = await self._repo.find_all({"status": ChangeStatus.SCHEDULED}, sort=BY_PLANNED_START)
        return [c for c in changes if _planned_within(c, start, end)]

    async def get_emergency_changes(self) -> List[Change]:
        statuses = [s for s in ChangeStatus if s not in CLOSED_CHANGE_STATUSES]
        return await self._repo.find_all({"type": ChangeType.EMERGENCY, "status": statuses})

    async def get_stats(self, site_id: Optional[str] = None) -> ChangeStats:
        base = {"site_id": site_id} if site_id else {}

        async def count(status: Optional[ChangeStatus] = None) -> int:
            return await self._repo.count({**base, "status": status} if status else base)

        return ChangeStats(
            total=await count(),
            draft=await count(ChangeStatus.DRAFT),
            pending_approval=await count(ChangeStatus.CAB_REVIEW),
            approved=await count(ChangeStatus.APPROVED),
            scheduled=await count(ChangeStatus.SCHEDULED),
            implementing=await count(ChangeStatus.IMPLEMENTING),
            completed=await count(ChangeStatus.COMPLETED),
            failed=await count(ChangeStatus.FAILED),
        )

    # ========== Helpers ==========

    async def _mutate(self, change_id: str, mutate: Callable[[Change], None]) -> Change:
        change = await self._repo.find_one_and_update(change_id, mutate)
        if change is None:
            raise ResourceNotFoundException("Change", change_id)
        return change


def _planned_within(change: Change, start: Optional[datetime], end: Optional[datetime]) -> bool:
    planned = change.schedule.planned_start
    if planned is None:
        return False
    if start is not None and planned < start:
        return False
    if end is not None and planned > end:
        return False
    return True
