"""
SLA External Service Integrations
=================================

External services for SLA monitoring:
- YAML policy file reader
- Logging notifier (breach and escalation events as log records)
- APScheduler for background breach evaluation
"""

from datetime import datetime, timezone
from pathlib import Path
from typing import Awaitable, Callable, List, Optional

import yaml
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from pydantic import ValidationError

from servicedesk.core.exceptions import ConfigurationException
from servicedesk.shared.infrastructure.logging import get_logger
from servicedesk.sla.application.dto import SLAPolicyCreateDTO, SLAPolicyFileDTO
from servicedesk.sla.application.services import ISLANotifier, ISLAPolicySource
from servicedesk.sla.domain import EscalationLevel, SLABreachCheck

logger = get_logger(__name__)


class YAMLPolicySource(ISLAPolicySource):
    """
    Reads SLA policy definitions from a YAML file.

    Expected layout:
        policies:
          - sla_id: SLA-CRITICAL
            name: Critical
            priority: critical
            response_time: {hours: 0.5, business_hours_only: false}
            resolution_time: {hours: 4, business_hours_only: false}
            is_default: true
    """

    def read(self, path: Path) -> List[SLAPolicyCreateDTO]:
        if not path.exists():
            logger.warning(f"SLA policy file not found: {path}, no policies seeded")
            return []

        with open(path, "r") as f:
            data = yaml.safe_load(f) or {}

        try:
            return SLAPolicyFileDTO.model_validate(data).policies
        except ValidationError as e:
            raise ConfigurationException(
                f"Invalid SLA policy file: {path}",
                {"errors": str(e)}
            ) from e


class LoggingNotifier(ISLANotifier):
    """Notifier that records breach and escalation events in the log."""

    async def notify_breach(self, incident_id: str, check: SLABreachCheck) -> None:
        logger.warning(
            "SLA breached",
            extra={
                "incident_id": incident_id,
                "breach_type": check.breach_type.value if check.breach_type else None,
                "escalation_level": check.escalation_level
            }
        )

    async def notify_escalation(
        self,
        incident_id: str,
        level: int,
        escalation: Optional[EscalationLevel]
    ) -> None:
        logger.info(
            "Incident escalated",
            extra={
                "incident_id": incident_id,
                "escalation_level": level,
                "notify_role": escalation.notify_role.value if escalation else None,
                "notify_users": escalation.notify_users if escalation else [],
                "action": escalation.action if escalation else None
            }
        )


class SLAScheduler:
    """
    Runs the breach sweep on an APScheduler interval job.

    One sweep at a time: a run that overlaps the previous one is skipped
    and missed runs are coalesced into one. With run_on_start the first
    sweep fires immediately, catching incidents that breached while the
    process was down.
    """

    JOB_ID = "sla_breach_sweep"

    def __init__(self, interval_seconds: int = 60, run_on_start: bool = True):
        self.interval_seconds = interval_seconds
        self.run_on_start = run_on_start
        self._scheduler: Optional[AsyncIOScheduler] = None

    async def start(self, job_func: Callable[[], Awaitable[object]]) -> None:
        if self.is_running:
            logger.warning("SLA scheduler already running")
            return

        if self.interval_seconds <= 0:
            logger.info("SLA scheduler disabled", extra={"interval_seconds": self.interval_seconds})
            return

        scheduler = AsyncIOScheduler(timezone=timezone.utc)
        # An explicit next_run_time of None would add the job paused
        first_run = {"next_run_time": datetime.now(timezone.utc)} if self.run_on_start else {}
        scheduler.add_job(
            job_func,
            "interval",
            seconds=self.interval_seconds,
            id=self.JOB_ID,
            name="SLA Breach Sweep",
            **first_run,
            misfire_grace_time=self.interval_seconds,
            coalesce=True,
            max_instances=1,
            replace_existing=True
        )
        scheduler.start()
        self._scheduler = scheduler

        logger.info(
            "SLA scheduler started",
            extra={"interval_seconds": self.interval_seconds, "run_on_start": self.run_on_start}
        )

    async def stop(self) -> None:
        if self._scheduler is None:
            return

        self._scheduler.shutdown(wait=False)
        self._scheduler = None
        logger.info("SLA scheduler stopped")

    @property
    def is_running(self) -> bool:
        return self._scheduler is not None and self._scheduler.running

    @property
    def next_run_time(self) -> Optional[datetime]:
        """When the next sweep fires; None while stopped."""
        if self._scheduler is None:
            return None
        job = self._scheduler.get_job(self.JOB_ID)
        return job.next_run_time if job else None
