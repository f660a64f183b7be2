"""Tests for the in-memory and SQLAlchemy repository adapters."""
from datetime import timedelta
from pathlib import Path

import pytest

from servicedesk.config import ChangeStatus, IncidentStatus, Settings
from servicedesk.core.exceptions import ConfigurationException, RepositoryException
from servicedesk.incidents.application import IncidentFilterDTO
from servicedesk.main import service_desk_lifespan
from servicedesk.shared.infrastructure.database import get_session_maker
from servicedesk.sla.application import SLAPolicyCreateDTO
from servicedesk.sla.domain import AppliesTo, TimeTarget
from tests.conftest import AGENT, START, cab_member, change_dto, incident_dto, problem_dto, technician

POLICY_FILE = Path(__file__).resolve().parent.parent / "sla_policies.yaml"


# ========== In-memory adapter ==========

@pytest.mark.asyncio
async def test_memory_filters_and_sorting(desk, clock):
    repo = desk.incidents._repo
    first = await desk.incidents.create_incident(incident_dto(tags=["vip", "mail"]))
    clock.advance(minutes=1)
    second = await desk.incidents.create_incident(incident_dto(impact="high", urgency="high"))

    assert [i.incident_id for i in await repo.find_all()] == [second.incident_id, first.incident_id]
    assert [i.incident_id for i in await repo.find_all({"tags": "vip"})] == [first.incident_id]
    assert await repo.count({"priority": ["critical", "high"]}) == 1
    assert (await repo.find_one({"requester.id": "user-1"})).incident_id == second.incident_id
    assert await repo.find_by_id("INC-2025-99999") is None


@pytest.mark.asyncio
async def test_memory_returns_copies(desk):
    incident = await desk.incidents.create_incident(incident_dto())
    incident.title = "Changed locally"
    stored = await desk.incidents.get_incident(incident.incident_id)
    assert stored.title == "Email server not responding"


@pytest.mark.asyncio
async def test_memory_failed_mutation_is_discarded(desk):
    incident = await desk.incidents.create_incident(incident_dto())
    repo = desk.incidents._repo

    def explode(entity):
        entity.title = "Half-applied"
        raise ValueError("abort")

    with pytest.raises(ValueError):
        await repo.find_one_and_update(incident.incident_id, explode)
    assert (await repo.find_by_id(incident.incident_id)).title == "Email server not responding"


@pytest.mark.asyncio
async def test_memory_duplicate_create(desk):
    incident = await desk.incidents.create_incident(incident_dto())
    with pytest.raises(RepositoryException):
        await desk.incidents._repo.create(incident)


# ========== SQLAlchemy adapter ==========

@pytest.mark.asyncio
async def test_sql_incident_round_trip(sql_desk, clock):
    created = await sql_desk.incidents.create_incident(incident_dto(tags=["vip"]))
    clock.advance(minutes=10)
    await sql_desk.incidents.assign_incident(created.incident_id, technician(), AGENT)
    await sql_desk.incidents.update_status(created.incident_id, IncidentStatus.PENDING, AGENT)

    stored = await sql_desk.incidents.get_incident(created.incident_id)

    assert stored.status == IncidentStatus.PENDING
    assert stored.assigned_to.technician_id == "tech-1"
    assert stored.first_response_at == START + timedelta(minutes=10)
    assert stored.sla.is_paused
    assert [e.event for e in stored.timeline] == [
        "Incident Created", "Assigned to Sara Agent", "Status changed to pending",
    ]


@pytest.mark.asyncio
async def test_sql_filters(sql_desk, clock):
    first = await sql_desk.incidents.create_incident(incident_dto(tags=["vip"]))
    clock.advance(minutes=1)
    second = await sql_desk.incidents.create_incident(incident_dto(impact="high", urgency="high", site_id="jeddah"))
    await sql_desk.incidents.assign_incident(first.incident_id, technician(), AGENT)

    unassigned = await sql_desk.incidents.get_unassigned_incidents()
    assert [i.incident_id for i in unassigned] == [second.incident_id]

    page = await sql_desk.incidents.get_incidents(IncidentFilterDTO(priority=["critical"], site_id="jeddah"))
    assert page.total == 1
    assert page.data[0].incident_id == second.incident_id

    assigned = await sql_desk.incidents.get_incidents(IncidentFilterDTO(assignee="tech-1"))
    assert [i.incident_id for i in assigned.data] == [first.incident_id]

    tagged = await sql_desk.incidents._repo.find_all({"tags": "vip"})
    assert [i.incident_id for i in tagged] == [first.incident_id]

    by_urgency = await sql_desk.incidents.get_incidents()
    assert [i.incident_id for i in by_urgency.data] == [second.incident_id, first.incident_id]


@pytest.mark.asyncio
async def test_sql_change_approval(sql_desk):
    change = await sql_desk.changes.create_change(change_dto(risk="high", cab_members=[cab_member("cab-1")]))
    await sql_desk.changes.submit_for_approval(change.change_id, AGENT)

    pending = await sql_desk.changes.get_pending_cab_approval()
    assert [c.change_id for c in pending] == [change.change_id]

    approved = await sql_desk.changes.add_cab_approval(change.change_id, cab_member("cab-1"), "approved")
    assert approved.status == ChangeStatus.APPROVED
    assert (await sql_desk.changes.get_change(change.change_id)).approval.current_approvers == 1


@pytest.mark.asyncio
async def test_sql_problem_links(sql_desk):
    incident = await sql_desk.incidents.create_incident(incident_dto())
    problem = await sql_desk.problems.create_problem(problem_dto(linked_incidents=[incident.incident_id]))

    found = await sql_desk.problems.find_by_incident(incident.incident_id)
    assert [p.problem_id for p in found] == [problem.problem_id]
    assert (await sql_desk.incidents.get_incident(incident.incident_id)).linked_problem_id == problem.problem_id


@pytest.mark.asyncio
async def test_sql_policy_precedence_and_default(sql_desk):
    targets = {
        "response_time": TimeTarget(hours=1, business_hours_only=False),
        "resolution_time": TimeTarget(hours=6, business_hours_only=False),
    }
    await sql_desk.policies.create_policy(SLAPolicyCreateDTO(
        sla_id="SLA-A", name="A", priority="high", is_default=True, **targets
    ))
    await sql_desk.policies.create_policy(SLAPolicyCreateDTO(
        sla_id="SLA-B", name="B", priority="high", is_default=True, **targets
    ))
    await sql_desk.policies.create_policy(SLAPolicyCreateDTO(
        sla_id="SLA-NET", name="Network", priority="high",
        applies_to=AppliesTo(categories=["network"]), **targets
    ))

    page = await sql_desk.policies.list_policies(priority="high")
    assert [p.sla_id for p in page.data if p.is_default] == ["SLA-B"]
    assert (await sql_desk.sla.calculate_sla("high", "network")).sla_id == "SLA-NET"
    assert (await sql_desk.sla.calculate_sla("high", "email")).sla_id == "SLA-B"


@pytest.mark.asyncio
async def test_sql_duplicate_create(sql_desk):
    incident = await sql_desk.incidents.create_incident(incident_dto())
    with pytest.raises(RepositoryException):
        await sql_desk.incidents._repo.create(incident)


# ========== Composition root ==========

@pytest.mark.asyncio
async def test_lifespan_seeds_policies(tmp_path, clock):
    settings = Settings(
        environment="test",
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'lifespan.db'}",
        sla_policy_path=POLICY_FILE,
        sla_evaluation_interval=0,
    )

    async with service_desk_lifespan(settings, clock) as desk:
        policies = await desk.policies.list_policies()
        assert policies.total == 4
        assert not desk.scheduler.is_running

        incident = await desk.incidents.create_incident(incident_dto(impact="high", urgency="high"))
        assert incident.sla.sla_id == "SLA-CRITICAL"

        summary = await desk.run_sla_evaluation()
        assert summary.evaluated == 1


def test_session_maker_requires_initialization():
    with pytest.raises(ConfigurationException):
        get_session_maker()


@pytest.mark.asyncio
async def test_sql_search_and_priority_listing(sql_desk, clock):
    mail = await sql_desk.incidents.create_incident(incident_dto())
    clock.advance(minutes=1)
    vpn = await sql_desk.incidents.create_incident(incident_dto(
        title="VPN drops every hour", description="Tunnel resets at 50% progress",
        impact="high", urgency="high",
    ))
    clock.advance(minutes=1)
    low = await sql_desk.incidents.create_incident(incident_dto(title="Monitor flickers", impact="low", urgency="low"))

    assert [i.incident_id for i in await sql_desk.incidents.search_incidents("email SERVER")] == [mail.incident_id]
    assert [i.incident_id for i in await sql_desk.incidents.search_incidents("50%")] == [vpn.incident_id]
    assert [i.incident_id for i in await sql_desk.incidents.search_incidents("Lina")] == [
        low.incident_id, vpn.incident_id, mail.incident_id,
    ]
    assert await sql_desk.incidents.search_incidents("_") == []

    page = await sql_desk.incidents.get_incidents()
    assert [i.incident_id for i in page.data] == [vpn.incident_id, mail.incident_id, low.incident_id]
