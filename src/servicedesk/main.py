"""
ServiceDesk Core - Composition Root
===================================

Wires repositories, the SLA engine and the three workflows together.

There are no module-level service instances: build a ServiceDesk with one
of the builders below (or service_desk_lifespan for a database-backed
process) and pass it down to whatever drives the workflows.

STARTUP (service_desk_lifespan):
1. Setup structured logging
2. Initialize database
3. Create database tables
4. Seed SLA policies from YAML
5. Start SLA scheduler

SHUTDOWN:
1. Stop SLA scheduler
2. Close database connections
"""

import uuid
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncGenerator, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from servicedesk.changes.application import ChangeWorkflow
from servicedesk.changes.infrastructure import InMemoryChangeRepository, SQLAlchemyChangeRepository
from servicedesk.config import Settings, get_settings
from servicedesk.core.clock import Clock, SystemClock
from servicedesk.incidents.application import IncidentWorkflow
from servicedesk.incidents.infrastructure import InMemoryIncidentRepository, SQLAlchemyIncidentRepository
from servicedesk.problems.application import ProblemWorkflow
from servicedesk.problems.infrastructure import InMemoryProblemRepository, SQLAlchemyProblemRepository
from servicedesk.sequences.application import ICounterRepository, SequenceIdGenerator
from servicedesk.sequences.infrastructure import InMemoryCounterRepository, SQLAlchemyCounterRepository
from servicedesk.shared.infrastructure.database import (
    close_database,
    create_tables,
    get_session_maker,
    init_database,
)
from servicedesk.shared.infrastructure.logging import get_logger, log_latency, setup_logging
from servicedesk.sla.application import ISLAPolicyRepository, SLAEngine, SLAPolicyService
from servicedesk.sla.application.dto import SLAEvaluationSummary
from servicedesk.sla.infrastructure import (
    InMemorySLAPolicyRepository,
    LoggingNotifier,
    SLAScheduler,
    SQLAlchemySLAPolicyRepository,
    YAMLPolicySource,
)

logger = get_logger(__name__)


@dataclass
class ServiceDesk:
    """Every service of one running ServiceDesk core."""
    settings: Settings
    clock: Clock
    ids: SequenceIdGenerator
    sla: SLAEngine
    policies: SLAPolicyService
    incidents: IncidentWorkflow
    problems: ProblemWorkflow
    changes: ChangeWorkflow
    scheduler: SLAScheduler

    async def run_sla_evaluation(self) -> SLAEvaluationSummary:
        """Scheduler job: one breach sweep over open incidents."""
        run_id = f"sla-sweep-{uuid.uuid4().hex[:12]}"
        with log_latency(logger, "sla_evaluation", correlation_id=run_id):
            return await self.incidents.evaluate_sla_breaches()


def _assemble(
    settings: Settings,
    clock: Clock,
    counters: ICounterRepository,
    policy_repository: ISLAPolicyRepository,
    incident_repository,
    problem_repository,
    change_repository
) -> ServiceDesk:
    ids = SequenceIdGenerator(
        counters,
        clock,
        padding=settings.id_sequence_padding,
        max_retries=settings.id_generation_max_retries,
        backoff_seconds=settings.id_generation_backoff_seconds,
    )
    sla_engine = SLAEngine(
        policy_repository,
        clock,
        escalation_thresholds=settings.escalation_thresholds_minutes,
    )

    return ServiceDesk(
        settings=settings,
        clock=clock,
        ids=ids,
        sla=sla_engine,
        policies=SLAPolicyService(
            policy_repository,
            ids,
            clock,
            default_timezone=settings.default_business_timezone,
            policy_source=YAMLPolicySource(),
        ),
        incidents=IncidentWorkflow(
            incident_repository,
            sla_engine,
            ids,
            clock,
            notifier=LoggingNotifier(),
            pause_on_pending=settings.sla_pause_on_pending,
        ),
        problems=ProblemWorkflow(problem_repository, incident_repository, ids, clock),
        changes=ChangeWorkflow(change_repository, ids, clock),
        scheduler=SLAScheduler(interval_seconds=settings.sla_evaluation_interval),
    )


def build_in_memory_service_desk(
    settings: Optional[Settings] = None,
    clock: Optional[Clock] = None
) -> ServiceDesk:
    """ServiceDesk backed by process-local repositories."""
    return _assemble(
        settings or get_settings(),
        clock or SystemClock(),
        InMemoryCounterRepository(),
        InMemorySLAPolicyRepository(),
        InMemoryIncidentRepository(),
        InMemoryProblemRepository(),
        InMemoryChangeRepository(),
    )


def build_sqlalchemy_service_desk(
    session_factory: async_sessionmaker[AsyncSession],
    settings: Optional[Settings] = None,
    clock: Optional[Clock] = None
) -> ServiceDesk:
    """ServiceDesk backed by the SQLAlchemy document store."""
    settings = settings or get_settings()
    retry = {
        "max_retries": settings.repository_max_retries,
        "retry_backoff_seconds": settings.repository_retry_backoff_seconds,
    }
    return _assemble(
        settings,
        clock or SystemClock(),
        SQLAlchemyCounterRepository(session_factory),
        SQLAlchemySLAPolicyRepository(session_factory, **retry),
        SQLAlchemyIncidentRepository(session_factory, **retry),
        SQLAlchemyProblemRepository(session_factory, **retry),
        SQLAlchemyChangeRepository(session_factory, **retry),
    )


@asynccontextmanager
async def service_desk_lifespan(
    settings: Optional[Settings] = None,
    clock: Optional[Clock] = None
) -> AsyncGenerator[ServiceDesk, None]:
    """
    Run a database-backed ServiceDesk for the duration of the block.

    Usage:
        async with service_desk_lifespan() as desk:
            await desk.incidents.create_incident(dto)
    """
    settings = settings or get_settings()

    # === STARTUP ===
    setup_logging(settings.log_level, settings.environment, settings.app_name)
    logger.info("Starting ServiceDesk core", extra={
        "version": settings.app_version,
        "environment": settings.environment
    })

    logger.info("Initializing database")
    engine = init_database(settings)
    try:
        logger.info("Creating database tables")
        await create_tables(engine)

        desk = build_sqlalchemy_service_desk(get_session_maker(), settings, clock)

        logger.info("Seeding SLA policies", extra={"path": str(settings.sla_policy_path)})
        await desk.policies.load_policies_from_yaml(settings.sla_policy_path)

        await desk.scheduler.start(desk.run_sla_evaluation)
        logger.info("ServiceDesk core started successfully")

        try:
            yield desk
        finally:
            # === SHUTDOWN ===
            logger.info("Shutting down ServiceDesk core")
            await desk.scheduler.stop()
    finally:
        await close_database()
        logger.info("ServiceDesk core shutdown complete")
