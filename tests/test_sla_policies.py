"""Tests for SLA policy management, lookup precedence and YAML seeding."""
import asyncio
from datetime import datetime, timezone
from pathlib import Path

import pytest

from servicedesk.core.exceptions import ConfigurationException, ResourceNotFoundException, ValidationException
from servicedesk.sla.application import SLAPolicyCreateDTO, SLAPolicyUpdateDTO
from servicedesk.sla.domain import AppliesTo, DEFAULT_SLA_ID, TimeTarget
from servicedesk.sla.infrastructure import SLAScheduler, YAMLPolicySource

POLICY_FILE = Path(__file__).resolve().parent.parent / "sla_policies.yaml"


def policy(sla_id: str, priority: str = "high", **overrides) -> SLAPolicyCreateDTO:
    data = {
        "sla_id": sla_id,
        "name": f"Policy {sla_id}",
        "priority": priority,
        "response_time": TimeTarget(hours=1, business_hours_only=False),
        "resolution_time": TimeTarget(hours=6, business_hours_only=False),
    }
    data.update(overrides)
    return SLAPolicyCreateDTO(**data)


async def defaults_for(desk, priority: str):
    page = await desk.policies.list_policies(priority=priority, limit=100)
    return [p.sla_id for p in page.data if p.is_default]


@pytest.mark.asyncio
async def test_category_match_beats_site_match_beats_default(desk):
    await desk.policies.create_policy(policy("SLA-DEFAULT", is_default=True))
    await desk.policies.create_policy(policy("SLA-NETWORK", applies_to=AppliesTo(categories=["network"])))
    await desk.policies.create_policy(policy("SLA-JEDDAH", applies_to=AppliesTo(sites=["jeddah"])))

    by_category = await desk.sla.calculate_sla("high", "network", "jeddah")
    by_site = await desk.sla.calculate_sla("high", "email", "jeddah")
    by_default = await desk.sla.calculate_sla("high", "email", "riyadh-hq")

    assert by_category.sla_id == "SLA-NETWORK"
    assert by_site.sla_id == "SLA-JEDDAH"
    assert by_default.sla_id == "SLA-DEFAULT"


@pytest.mark.asyncio
async def test_scoped_policy_for_other_priority_is_ignored(desk):
    await desk.policies.create_policy(policy("SLA-NET-LOW", priority="low", applies_to=AppliesTo(categories=["network"])))
    config = await desk.sla.calculate_sla("high", "network")
    assert config.sla_id == DEFAULT_SLA_ID


@pytest.mark.asyncio
async def test_inactive_policy_does_not_match(desk):
    await desk.policies.create_policy(policy("SLA-OLD", applies_to=AppliesTo(categories=["network"]), is_active=False))
    config = await desk.sla.calculate_sla("high", "network")
    assert config.sla_id == DEFAULT_SLA_ID


@pytest.mark.asyncio
async def test_new_default_demotes_previous(desk):
    await desk.policies.create_policy(policy("SLA-A", is_default=True))
    await desk.policies.create_policy(policy("SLA-B", is_default=True))
    await desk.policies.create_policy(policy("SLA-LOW", priority="low", is_default=True))

    assert await defaults_for(desk, "high") == ["SLA-B"]
    assert await defaults_for(desk, "low") == ["SLA-LOW"]

    await desk.policies.set_default("SLA-A")
    assert await defaults_for(desk, "high") == ["SLA-A"]


@pytest.mark.asyncio
async def test_concurrent_set_default_leaves_one_default(desk):
    for sla_id in ("SLA-A", "SLA-B", "SLA-C"):
        await desk.policies.create_policy(policy(sla_id))

    await asyncio.gather(*(desk.policies.set_default(s) for s in ("SLA-A", "SLA-B", "SLA-C")))

    assert len(await defaults_for(desk, "high")) == 1


@pytest.mark.asyncio
async def test_set_default_rejects_inactive_policy(desk):
    await desk.policies.create_policy(policy("SLA-A", is_active=False))
    with pytest.raises(ValidationException):
        await desk.policies.set_default("SLA-A")


@pytest.mark.asyncio
async def test_set_default_unknown_policy(desk):
    with pytest.raises(ResourceNotFoundException):
        await desk.policies.set_default("SLA-MISSING")


@pytest.mark.asyncio
async def test_deactivate_clears_default(desk):
    await desk.policies.create_policy(policy("SLA-A", is_default=True))

    retired = await desk.policies.deactivate_policy("SLA-A")

    assert retired.is_active is False
    assert retired.is_default is False
    assert (await desk.sla.calculate_sla("high")).sla_id == DEFAULT_SLA_ID


@pytest.mark.asyncio
async def test_update_policy_can_promote_to_default(desk):
    await desk.policies.create_policy(policy("SLA-A", is_default=True))
    await desk.policies.create_policy(policy("SLA-B"))

    updated = await desk.policies.update_policy(
        "SLA-B",
        SLAPolicyUpdateDTO(name="Promoted", is_default=True)
    )

    assert updated.name == "Promoted"
    assert await defaults_for(desk, "high") == ["SLA-B"]


@pytest.mark.asyncio
async def test_generated_policy_id(desk):
    created = await desk.policies.create_policy(policy(None))
    assert created.sla_id == "SLA-2025-00001"


@pytest.mark.asyncio
async def test_default_business_hours_use_configured_timezone(desk):
    created = await desk.policies.create_policy(policy("SLA-A"))
    assert created.business_hours.timezone == "Asia/Riyadh"
    assert [e.day for e in created.business_hours.schedule if e.is_working] == [0, 1, 2, 3, 4]


@pytest.mark.asyncio
async def test_yaml_seed_is_repeatable(desk):
    first = await desk.policies.load_policies_from_yaml(POLICY_FILE)
    second = await desk.policies.load_policies_from_yaml(POLICY_FILE)

    assert sorted(p.sla_id for p in first) == ["SLA-CRITICAL", "SLA-HIGH", "SLA-LOW", "SLA-MEDIUM"]
    assert second == []
    for priority in ("critical", "high", "medium", "low"):
        assert len(await defaults_for(desk, priority)) == 1


@pytest.mark.asyncio
async def test_yaml_matrix_is_ordered(desk):
    await desk.policies.load_policies_from_yaml(POLICY_FILE)
    critical = await desk.policies.get_policy("SLA-CRITICAL")
    assert [e.after_minutes for e in critical.escalation_matrix] == [30, 60, 120]


def test_missing_yaml_file_yields_nothing(tmp_path):
    assert YAMLPolicySource().read(tmp_path / "absent.yaml") == []


def test_invalid_yaml_policy_raises(tmp_path):
    path = tmp_path / "broken.yaml"
    path.write_text("policies:\n  - name: No priority\n")
    with pytest.raises(ConfigurationException):
        YAMLPolicySource().read(path)


# ========== Scheduler ==========

@pytest.mark.asyncio
async def test_scheduler_runs_first_sweep_on_start():
    swept = asyncio.Event()

    async def sweep():
        swept.set()

    scheduler = SLAScheduler(interval_seconds=3600)
    await scheduler.start(sweep)
    try:
        assert scheduler.is_running
        await asyncio.wait_for(swept.wait(), timeout=5)
        assert scheduler.next_run_time is not None
    finally:
        await scheduler.stop()

    assert not scheduler.is_running
    assert scheduler.next_run_time is None


@pytest.mark.asyncio
async def test_scheduler_without_first_sweep_still_schedules():
    async def sweep():
        pass

    scheduler = SLAScheduler(interval_seconds=3600, run_on_start=False)
    await scheduler.start(sweep)
    try:
        assert scheduler.is_running
        assert scheduler.next_run_time is not None
        assert scheduler.next_run_time > datetime.now(timezone.utc)
    finally:
        await scheduler.stop()


@pytest.mark.asyncio
async def test_scheduler_disabled_with_zero_interval():
    async def sweep():
        raise AssertionError("disabled scheduler must not sweep")

    scheduler = SLAScheduler(interval_seconds=0)
    await scheduler.start(sweep)

    assert not scheduler.is_running
    await scheduler.stop()
