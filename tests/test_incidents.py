"""Tests for the incident workflow."""
import itertools
from datetime import timedelta
from pathlib import Path

import pytest

from servicedesk.config import Impact, IncidentStatus, Priority, Urgency
from servicedesk.core.exceptions import DomainException, InvalidTransitionException, ResourceNotFoundException
from servicedesk.incidents.application import IncidentFilterDTO, IncidentWorkflow, ResolutionDTO, UpdateIncidentDTO, WorklogDTO
from servicedesk.incidents.domain import INCIDENT_TRANSITIONS, derive_priority
from servicedesk.incidents.infrastructure import InMemoryIncidentRepository
from servicedesk.sequences.application import SequenceIdGenerator
from servicedesk.sequences.infrastructure import InMemoryCounterRepository
from servicedesk.sla.application import ISLANotifier, SLAEngine
from servicedesk.sla.infrastructure import InMemorySLAPolicyRepository
from tests.conftest import AGENT, START, incident_dto, technician

POLICY_FILE = Path(__file__).resolve().parent.parent / "sla_policies.yaml"

# Shortest path from open to each status
PATHS = {
    IncidentStatus.OPEN: [],
    IncidentStatus.IN_PROGRESS: [IncidentStatus.IN_PROGRESS],
    IncidentStatus.PENDING: [IncidentStatus.PENDING],
    IncidentStatus.RESOLVED: [IncidentStatus.RESOLVED],
    IncidentStatus.CLOSED: [IncidentStatus.RESOLVED, IncidentStatus.CLOSED],
    IncidentStatus.CANCELLED: [IncidentStatus.CANCELLED],
}


class RecordingNotifier(ISLANotifier):
    def __init__(self):
        self.breaches = []
        self.escalations = []

    async def notify_breach(self, incident_id, check):
        self.breaches.append((incident_id, check.breach_type))

    async def notify_escalation(self, incident_id, level, escalation):
        self.escalations.append((incident_id, level))


async def incident_in(desk, status: IncidentStatus):
    incident = await desk.incidents.create_incident(incident_dto())
    for step in PATHS[status]:
        incident = await desk.incidents.update_status(incident.incident_id, step, AGENT)
    return incident


# ========== Priority ==========

@pytest.mark.parametrize("impact,urgency", list(itertools.product(Impact, Urgency)))
def test_priority_is_deterministic(impact, urgency):
    assert derive_priority(impact, urgency) == derive_priority(impact, urgency)


def test_priority_matrix_corners():
    assert derive_priority(Impact.HIGH, Urgency.HIGH) == Priority.CRITICAL
    assert derive_priority(Impact.MEDIUM, Urgency.MEDIUM) == Priority.MEDIUM
    assert derive_priority(Impact.LOW, Urgency.LOW) == Priority.LOW
    assert derive_priority("low", "high") == Priority.MEDIUM


# ========== Creation ==========

@pytest.mark.asyncio
async def test_create_incident(desk):
    incident = await desk.incidents.create_incident(incident_dto())

    assert incident.incident_id == "INC-2025-00001"
    assert incident.status == IncidentStatus.OPEN
    assert incident.priority == Priority.MEDIUM
    assert incident.created_at == START
    assert [e.event for e in incident.timeline] == ["Incident Created"]
    assert incident.timeline[0].by == "user-1"
    assert incident.sla.resolution_due == START + timedelta(hours=24)


@pytest.mark.asyncio
async def test_get_missing_incident(desk):
    with pytest.raises(ResourceNotFoundException):
        await desk.incidents.get_incident("INC-2025-99999")


# ========== Transitions ==========

@pytest.mark.asyncio
@pytest.mark.parametrize("current,requested", list(itertools.product(IncidentStatus, IncidentStatus)))
async def test_every_transition_pair(desk, current, requested):
    incident = await incident_in(desk, current)
    before = len(incident.timeline)

    if INCIDENT_TRANSITIONS.can_transition(current, requested):
        updated = await desk.incidents.update_status(incident.incident_id, requested, AGENT)
        assert updated.status == requested
        assert len(updated.timeline) == before + 1
        assert updated.timeline[-1].event == f"Status changed to {requested.value}"
    else:
        with pytest.raises(InvalidTransitionException):
            await desk.incidents.update_status(incident.incident_id, requested, AGENT)
        stored = await desk.incidents.get_incident(incident.incident_id)
        assert stored.status == current
        assert len(stored.timeline) == before


@pytest.mark.asyncio
async def test_resolve_then_reopen_counts_reopen(desk, clock):
    incident = await desk.incidents.create_incident(incident_dto())
    clock.advance(hours=1)

    resolved = await desk.incidents.update_status(
        incident.incident_id, IncidentStatus.RESOLVED, AGENT,
        ResolutionDTO(code="restarted", notes="Restarted the mail transport service")
    )
    assert resolved.resolution.code == "restarted"
    assert resolved.resolution.resolved_by == AGENT.id
    assert resolved.sla.resolution_met is True
    assert resolved.reopen_count == 0

    reopened = await desk.incidents.update_status(incident.incident_id, IncidentStatus.OPEN, AGENT)
    assert reopened.status == IncidentStatus.OPEN
    assert reopened.reopen_count == 1


@pytest.mark.asyncio
async def test_close_stamps_closed_at(desk, clock):
    incident = await incident_in(desk, IncidentStatus.RESOLVED)
    clock.advance(minutes=5)
    closed = await desk.incidents.update_status(incident.incident_id, IncidentStatus.CLOSED, AGENT)
    assert closed.closed_at == START + timedelta(minutes=5)
    assert closed.is_closed


@pytest.mark.asyncio
async def test_pending_pauses_sla(desk, clock):
    incident = await desk.incidents.create_incident(incident_dto())
    due = incident.sla.resolution_due

    pending = await desk.incidents.update_status(incident.incident_id, IncidentStatus.PENDING, AGENT)
    assert pending.sla.is_paused

    clock.advance(hours=2)
    resumed = await desk.incidents.update_status(incident.incident_id, IncidentStatus.IN_PROGRESS, AGENT)
    assert not resumed.sla.is_paused
    assert resumed.sla.resolution_due == due + timedelta(hours=2)
    assert resumed.sla.paused_duration_minutes == 120


# ========== Assignment, worklogs, updates ==========

@pytest.mark.asyncio
async def test_first_assignment_marks_response(desk, clock):
    incident = await desk.incidents.create_incident(incident_dto())
    clock.advance(minutes=20)

    assigned = await desk.incidents.assign_incident(incident.incident_id, technician(), AGENT)
    assert assigned.assigned_to.technician_id == "tech-1"
    assert assigned.first_response_at == START + timedelta(minutes=20)
    assert assigned.sla.response_met is True
    assert assigned.timeline[-1].event == "Assigned to Sara Agent"

    clock.advance(minutes=20)
    reassigned = await desk.incidents.assign_incident(incident.incident_id, technician("tech-2"), AGENT)
    assert reassigned.assigned_to.technician_id == "tech-2"
    assert reassigned.first_response_at == START + timedelta(minutes=20)
    assert reassigned.sla.response_at == START + timedelta(minutes=20)


@pytest.mark.asyncio
async def test_cannot_assign_closed_incident(desk):
    incident = await incident_in(desk, IncidentStatus.CLOSED)
    with pytest.raises(DomainException):
        await desk.incidents.assign_incident(incident.incident_id, technician(), AGENT)


@pytest.mark.asyncio
async def test_worklogs(desk):
    incident = await desk.incidents.create_incident(incident_dto())

    await desk.incidents.add_worklog(incident.incident_id, WorklogDTO(minutes_spent=15, note="Checked logs"), AGENT)
    updated = await desk.incidents.add_worklog(
        incident.incident_id, WorklogDTO(minutes_spent=30, note="Restarted service", is_internal=True), AGENT
    )

    assert updated.total_worklog_minutes == 45
    assert updated.worklogs[0].log_id == f"WL-{int(START.timestamp() * 1000)}-1"
    assert updated.worklogs[1].by_name == "Sara Agent"
    assert updated.timeline[-1].event == "Worklog Added"


@pytest.mark.asyncio
async def test_cannot_log_work_on_closed_incident(desk):
    incident = await incident_in(desk, IncidentStatus.CLOSED)
    with pytest.raises(DomainException):
        await desk.incidents.add_worklog(incident.incident_id, WorklogDTO(minutes_spent=5, note="Late note"), AGENT)


@pytest.mark.asyncio
async def test_update_recomputes_priority(desk):
    incident = await desk.incidents.create_incident(incident_dto())

    updated = await desk.incidents.update_incident(
        incident.incident_id, UpdateIncidentDTO(impact="high", urgency="high", title="Mail outage"), AGENT
    )

    assert updated.priority == Priority.CRITICAL
    assert updated.title == "Mail outage"
    assert updated.timeline[-1].event == "Incident Updated"
    assert updated.timeline[-1].details == {"impact": "high", "urgency": "high", "title": "Mail outage"}


@pytest.mark.asyncio
async def test_manual_escalation(desk):
    await desk.policies.load_policies_from_yaml(POLICY_FILE)
    incident = await desk.incidents.create_incident(incident_dto(impact="high", urgency="high"))

    escalated = await desk.incidents.escalate_incident(incident.incident_id, "VIP affected", AGENT)

    assert escalated.sla.escalation_level == 1
    event = escalated.timeline[-1]
    assert event.event == "Escalated to Level 1"
    assert event.details["reason"] == "VIP affected"
    assert event.details["escalation"]["notify_role"] == "team_lead"


@pytest.mark.asyncio
async def test_time_to_breach(desk, clock):
    incident = await desk.incidents.create_incident(incident_dto())
    clock.advance(hours=25)
    assert incident.is_sla_breached(clock.now())
    assert incident.time_to_breach_minutes(clock.now()) == -60


# ========== SLA sweep ==========

@pytest.mark.asyncio
async def test_breach_sweep_flags_and_escalates(desk, clock):
    await desk.policies.load_policies_from_yaml(POLICY_FILE)
    incident = await desk.incidents.create_incident(incident_dto(impact="high", urgency="high"))

    clock.advance(minutes=45)
    summary = await desk.incidents.evaluate_sla_breaches()
    assert summary.evaluated == 1
    assert summary.breached == 1
    assert summary.newly_breached == 1
    assert summary.escalated == 1

    stored = await desk.incidents.get_incident(incident.incident_id)
    assert stored.sla.breach_flag is True
    assert stored.sla.escalation_level == 1
    assert stored.timeline[-1].event == "Escalated to Level 1"
    assert stored.timeline[-1].by == "system"

    again = await desk.incidents.evaluate_sla_breaches()
    assert again.breached == 1
    assert again.newly_breached == 0
    assert again.escalated == 0

    clock.advance(minutes=90)
    later = await desk.incidents.evaluate_sla_breaches()
    assert later.escalated == 1
    assert (await desk.incidents.get_incident(incident.incident_id)).sla.escalation_level == 3


@pytest.mark.asyncio
async def test_breach_sweep_skips_paused_incidents(desk, clock):
    incident = await desk.incidents.create_incident(incident_dto(impact="high", urgency="high"))
    await desk.incidents.update_status(incident.incident_id, IncidentStatus.PENDING, AGENT)

    clock.advance(hours=6)
    summary = await desk.incidents.evaluate_sla_breaches()

    assert summary.skipped_paused == 1
    assert summary.breached == 0
    assert (await desk.incidents.get_incident(incident.incident_id)).sla.breach_flag is False


@pytest.mark.asyncio
async def test_breach_sweep_notifies(clock):
    notifier = RecordingNotifier()
    workflow = IncidentWorkflow(
        InMemoryIncidentRepository(),
        SLAEngine(InMemorySLAPolicyRepository(), clock),
        SequenceIdGenerator(InMemoryCounterRepository(), clock),
        clock,
        notifier=notifier,
    )
    incident = await workflow.create_incident(incident_dto(impact="high", urgency="high"))

    clock.advance(minutes=61)
    await workflow.evaluate_sla_breaches()

    assert notifier.breaches == [(incident.incident_id, "response")]
    assert notifier.escalations == [(incident.incident_id, 1)]


@pytest.mark.asyncio
async def test_check_sla(desk, clock):
    incident = await desk.incidents.create_incident(incident_dto())
    clock.advance(hours=1)
    check = await desk.incidents.check_sla(incident.incident_id)
    assert not check.is_breached
    assert check.time_remaining_minutes == 23 * 60


# ========== Queries ==========

@pytest.mark.asyncio
async def test_queries_and_stats(desk, clock):
    first = await desk.incidents.create_incident(incident_dto())
    second = await desk.incidents.create_incident(incident_dto(impact="high", urgency="high", is_major=True))
    third = await desk.incidents.create_incident(incident_dto(site_id="jeddah"))

    await desk.incidents.assign_incident(first.incident_id, technician(), AGENT)
    await desk.incidents.update_status(first.incident_id, IncidentStatus.RESOLVED, AGENT,
                                       ResolutionDTO(code="fixed", notes="Done"))
    await desk.incidents.update_status(third.incident_id, IncidentStatus.IN_PROGRESS, AGENT)

    unassigned = await desk.incidents.get_unassigned_incidents()
    assert {i.incident_id for i in unassigned} == {second.incident_id, third.incident_id}

    majors = await desk.incidents.get_major_incidents()
    assert [i.incident_id for i in majors] == [second.incident_id]

    open_now = await desk.incidents.get_open_incidents()
    assert open_now[0].incident_id == second.incident_id

    page = await desk.incidents.get_incidents(IncidentFilterDTO(status=["open", "in_progress"], limit=1))
    assert page.total == 2
    assert page.total_pages == 2
    assert len(page.data) == 1

    jeddah = await desk.incidents.get_incidents(IncidentFilterDTO(site_id="jeddah"))
    assert [i.incident_id for i in jeddah.data] == [third.incident_id]

    stats = await desk.incidents.get_stats()
    assert stats.total == 3
    assert stats.open == 1
    assert stats.in_progress == 1
    assert stats.resolved == 1
    assert stats.compliance.total == 1
    assert stats.compliance.compliance_percent == 100

    assert (await desk.incidents.get_stats("jeddah")).total == 1


@pytest.mark.asyncio
async def test_breached_incidents_query(desk, clock):
    incident = await desk.incidents.create_incident(incident_dto(impact="high", urgency="high"))
    await desk.incidents.create_incident(incident_dto())

    clock.advance(hours=3)
    await desk.incidents.evaluate_sla_breaches()

    breached = await desk.incidents.get_breached_incidents()
    assert [i.incident_id for i in breached] == [incident.incident_id]


@pytest.mark.asyncio
async def test_listing_puts_most_urgent_first(desk, clock):
    low = await desk.incidents.create_incident(incident_dto(impact="low", urgency="low"))
    clock.advance(minutes=1)
    critical = await desk.incidents.create_incident(incident_dto(impact="high", urgency="high"))
    clock.advance(minutes=1)
    older_medium = await desk.incidents.create_incident(incident_dto())
    clock.advance(minutes=1)
    newer_medium = await desk.incidents.create_incident(incident_dto())

    page = await desk.incidents.get_incidents()

    assert [i.incident_id for i in page.data] == [
        critical.incident_id, newer_medium.incident_id, older_medium.incident_id, low.incident_id,
    ]


@pytest.mark.asyncio
async def test_search_incidents(desk, clock):
    mail = await desk.incidents.create_incident(incident_dto())
    clock.advance(minutes=1)
    vpn = await desk.incidents.create_incident(incident_dto(
        title="VPN drops every hour", description="Tunnel resets at 50% progress", category_id="network",
    ))

    assert [i.incident_id for i in await desk.incidents.search_incidents("EMAIL server")] == [mail.incident_id]
    assert [i.incident_id for i in await desk.incidents.search_incidents(vpn.incident_id.lower())] == [vpn.incident_id]
    assert [i.incident_id for i in await desk.incidents.search_incidents("tunnel")] == [vpn.incident_id]
    assert [i.incident_id for i in await desk.incidents.search_incidents("lina")] == [vpn.incident_id, mail.incident_id]
    assert [i.incident_id for i in await desk.incidents.search_incidents("50%")] == [vpn.incident_id]
    assert await desk.incidents.search_incidents("printer") == []
    assert await desk.incidents.search_incidents("   ") == []
    assert len(await desk.incidents.search_incidents("lina", limit=1)) == 1
