# tests/conftest.py - Shared test fixtures
from datetime import datetime, timezone

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import create_async_engine

from servicedesk.changes.application import CabMemberDTO, CreateChangeDTO, ScheduleDTO
from servicedesk.changes.domain import RequestedBy
from servicedesk.config import Settings
from servicedesk.core.clock import FixedClock
from servicedesk.incidents.application import CreateIncidentDTO
from servicedesk.incidents.domain import Assignee, Requester
from servicedesk.main import build_in_memory_service_desk, build_sqlalchemy_service_desk
from servicedesk.problems.application import CreateProblemDTO
from servicedesk.problems.domain import ProblemOwner
from servicedesk.shared.domain import Actor
from servicedesk.shared.infrastructure.database import Base, create_session_maker
from servicedesk.sla.domain import BusinessHours, BusinessSchedule

# Monday 2025-01-06 09:00 in Riyadh
START = datetime(2025, 1, 6, 6, 0, tzinfo=timezone.utc)

AGENT = Actor(id="tech-1", name="Sara Agent")
MANAGER = Actor(id="mgr-1", name="Omar Manager")


@pytest.fixture
def settings():
    return Settings(
        environment="test",
        sla_evaluation_interval=0,
        repository_retry_backoff_seconds=0,
        id_generation_backoff_seconds=0,
    )


@pytest.fixture
def clock():
    return FixedClock(START)


@pytest.fixture
def desk(settings, clock):
    return build_in_memory_service_desk(settings, clock)


@pytest_asyncio.fixture(scope="function")
async def db_engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'servicedesk.db'}", echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return create_session_maker(db_engine)


@pytest.fixture
def sql_desk(session_factory, settings, clock):
    return build_sqlalchemy_service_desk(session_factory, settings, clock)


def weekday_hours(tz: str = "UTC", start: str = "08:00", end: str = "17:00", holidays=None) -> BusinessHours:
    """Monday to Friday working calendar."""
    return BusinessHours(
        timezone=tz,
        schedule=[
            BusinessSchedule(day=day, start_time=start, end_time=end, is_working=1 <= day <= 5)
            for day in range(7)
        ],
        holidays=holidays or [],
    )


def incident_dto(**overrides) -> CreateIncidentDTO:
    data = {
        "title": "Email server not responding",
        "description": "Outlook cannot connect since 08:45",
        "impact": "medium",
        "urgency": "medium",
        "category_id": "email",
        "requester": Requester(id="user-1", name="Lina User", email="lina@example.com"),
        "site_id": "riyadh-hq",
    }
    data.update(overrides)
    return CreateIncidentDTO(**data)


def technician(technician_id: str = "tech-1") -> Assignee:
    return Assignee(technician_id=technician_id, name="Sara Agent", email="sara@example.com", group_id="l1")


def change_dto(**overrides) -> CreateChangeDTO:
    data = {
        "type": "normal",
        "title": "Upgrade core switch firmware",
        "description": "Apply vendor firmware 9.3.2",
        "priority": "medium",
        "impact": "medium",
        "risk": "low",
        "risk_assessment": "Redundant pair, one unit at a time",
        "requested_by": RequestedBy(id="user-2", name="Faisal Engineer", email="faisal@example.com"),
        "implementation_plan": "Fail over, upgrade standby, fail back",
        "rollback_plan": "Boot previous image",
        "schedule": ScheduleDTO(
            planned_start=datetime(2025, 1, 10, 20, 0, tzinfo=timezone.utc),
            planned_end=datetime(2025, 1, 10, 22, 0, tzinfo=timezone.utc),
        ),
        "affected_services": ["network-core"],
        "site_id": "riyadh-hq",
    }
    data.update(overrides)
    return CreateChangeDTO(**data)


def cab_member(member_id: str) -> CabMemberDTO:
    return CabMemberDTO(member_id=member_id, name=f"CAB {member_id}", role="cab_member")


def problem_dto(**overrides) -> CreateProblemDTO:
    data = {
        "title": "Recurring mailbox disconnects",
        "description": "Several users lose Outlook connectivity every morning",
        "priority": "high",
        "impact": "medium",
        "category_id": "email",
        "owner": ProblemOwner(id="mgr-1", name="Omar Manager", email="omar@example.com"),
        "site_id": "riyadh-hq",
    }
    data.update(overrides)
    return CreateProblemDTO(**data)
