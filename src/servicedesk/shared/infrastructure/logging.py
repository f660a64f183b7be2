"""
Structured Logging
==================

One JSON object per log line on stdout.

Every record carries the service name and environment. Workflow modules
attach entity ids through `extra` (incident_id, problem_id, change_id,
sla_id) so a single incident can be followed across the SLA sweep,
escalations and problem links. A correlation_id groups the records of
one scheduler run.

Usage:
    from servicedesk.shared.infrastructure.logging import get_logger

    logger = get_logger(__name__)
    logger.info("Incident created", extra={"incident_id": "INC-2025-00001"})
"""

import logging
import sys
import time
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Iterator

from pythonjsonlogger.json import JsonFormatter

_REDACTED_KEYS = ("password", "token", "secret", "api_key")

# Libraries that are chatty at INFO
_QUIET_LOGGERS = ("sqlalchemy.engine", "aiosqlite", "apscheduler")


class ServiceDeskJsonFormatter(JsonFormatter):
    """Adds service, environment and an ISO timestamp to every record."""

    def __init__(self, *args, service: str, environment: str, **kwargs):
        super().__init__(*args, **kwargs)
        self._service = service
        self._environment = environment

    def add_fields(
        self,
        log_record: dict[str, Any],
        record: logging.LogRecord,
        message_dict: dict[str, Any],
    ) -> None:
        super().add_fields(log_record, record, message_dict)

        log_record.setdefault("timestamp", datetime.now(timezone.utc).isoformat())
        log_record["service"] = self._service
        log_record["environment"] = self._environment

        for key in list(log_record):
            if any(marker in key.lower() for marker in _REDACTED_KEYS):
                log_record[key] = "***REDACTED***"


def setup_logging(
    level: str = "INFO",
    environment: str = "development",
    service: str = "servicedesk-core",
) -> None:
    """
    Route every logger through one JSON handler on stdout.

    Args:
        level: Root level (DEBUG, INFO, WARNING, ERROR)
        environment: Deployment environment stamped on each record
        service: Service name stamped on each record
    """
    numeric_level = getattr(logging, level.upper())

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(numeric_level)
    handler.setFormatter(
        ServiceDeskJsonFormatter(
            "%(asctime)s %(name)s %(levelname)s %(message)s",
            datefmt="%Y-%m-%dT%H:%M:%S",
            service=service,
            environment=environment,
        )
    )

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.setLevel(numeric_level)
    root_logger.addHandler(handler)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


@contextmanager
def log_latency(logger: logging.Logger, operation: str, **extra_context: Any) -> Iterator[None]:
    """
    Log how long the block took, and whether it failed.

    Usage:
        with log_latency(logger, "sla_evaluation", correlation_id=run_id):
            await workflow.evaluate_sla_breaches()
    """
    start = time.perf_counter()
    outcome = "failed"
    try:
        yield
        outcome = "completed"
    finally:
        latency_ms = round((time.perf_counter() - start) * 1000, 2)
        log = logger.info if outcome == "completed" else logger.warning
        log(
            f"{operation} {outcome}",
            extra={"operation": operation, "outcome": outcome, "latency_ms": latency_ms, **extra_context},
        )
