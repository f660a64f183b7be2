"""
Configuration Module
====================

Application settings and configuration management using Pydantic,
plus the closed enumerations shared by every bounded context.
"""

from enum import Enum
from functools import lru_cache
from pathlib import Path
from typing import List

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Uses Pydantic for validation and type safety.
    """

    # ========== Application ==========
    app_name: str = Field(default="servicedesk-core", description="Application name")
    app_version: str = Field(default="1.0.0", description="Application version")
    environment: str = Field(default="development", description="Environment name")
    debug: bool = Field(default=False, description="Enable debug mode")
    log_level: str = Field(default="INFO", description="Root log level")

    # ========== Database ==========
    database_url: str = Field(
        default="postgresql+asyncpg://localhost:5432/servicedesk",
        description="Database connection URL (async driver)"
    )
    db_pool_size: int = Field(default=5, description="Database connection pool size", ge=1)
    db_max_overflow: int = Field(default=10, description="Max overflow connections", ge=0)

    # ========== Persistence ==========
    repository_max_retries: int = Field(
        default=5,
        description="Attempts for optimistic find-and-update before giving up",
        ge=1
    )
    repository_retry_backoff_seconds: float = Field(
        default=0.01,
        description="Base delay between find-and-update attempts",
        ge=0
    )

    # ========== SLA Configuration ==========
    sla_policy_path: Path = Field(
        default=Path("sla_policies.yaml"),
        description="Path to the SLA policy seed file"
    )
    sla_evaluation_interval: int = Field(
        default=60,
        description="Seconds between SLA breach sweeps (0 disables the scheduler)",
        ge=0
    )
    sla_pause_on_pending: bool = Field(
        default=True,
        description="Pause the SLA clock while an incident is pending"
    )
    escalation_thresholds_minutes: List[int] = Field(
        default=[60, 120, 240],
        description="Elapsed minutes for escalation levels 1..n when no matrix is configured"
    )
    default_business_timezone: str = Field(
        default="Asia/Riyadh",
        description="Timezone used by the default business calendar"
    )

    # ========== ID Generation ==========
    id_sequence_padding: int = Field(default=5, description="Zero padding of sequence numbers", ge=1)
    id_generation_max_retries: int = Field(
        default=5,
        description="Attempts for a contended counter increment",
        ge=1
    )
    id_generation_backoff_seconds: float = Field(
        default=0.01,
        description="Base backoff between counter attempts",
        ge=0
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        """Ensure environment is one of allowed values."""
        allowed = {"development", "staging", "production", "test"}
        if v not in allowed:
            raise ValueError(f"environment must be one of {allowed}")
        return v

    @field_validator("escalation_thresholds_minutes")
    @classmethod
    def validate_thresholds(cls, v: List[int]) -> List[int]:
        """Thresholds must be positive and strictly increasing."""
        if any(t <= 0 for t in v):
            raise ValueError("escalation thresholds must be positive")
        if any(b <= a for a, b in zip(v, v[1:])):
            raise ValueError("escalation thresholds must be strictly increasing")
        return v


@lru_cache()
def get_settings() -> Settings:
    """Returns cached Settings instance."""
    return Settings()


# ========== Constants ==========

class Priority(str, Enum):
    """Priority levels, derived from impact and urgency for incidents."""
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class Impact(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class Urgency(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class Channel(str, Enum):
    """Channels an incident can be reported through."""
    SELF_SERVICE = "self_service"
    EMAIL = "email"
    PHONE = "phone"
    CHAT = "chat"
    WALK_IN = "walk_in"
    API = "api"


class UserRole(str, Enum):
    END_USER = "end_user"
    TECHNICIAN = "technician"
    TEAM_LEAD = "team_lead"
    MANAGER = "manager"
    CAB_MEMBER = "cab_member"
    ADMIN = "admin"


class IncidentStatus(str, Enum):
    """Incident lifecycle statuses."""
    OPEN = "open"
    IN_PROGRESS = "in_progress"
    PENDING = "pending"
    RESOLVED = "resolved"
    CLOSED = "closed"
    CANCELLED = "cancelled"


class ProblemStatus(str, Enum):
    """Problem lifecycle statuses."""
    LOGGED = "logged"
    RCA_IN_PROGRESS = "rca_in_progress"
    KNOWN_ERROR = "known_error"
    RESOLVED = "resolved"
    CLOSED = "closed"


class ChangeStatus(str, Enum):
    """Change request lifecycle statuses."""
    DRAFT = "draft"
    CAB_REVIEW = "cab_review"
    APPROVED = "approved"
    REJECTED = "rejected"
    SCHEDULED = "scheduled"
    IMPLEMENTING = "implementing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class ChangeType(str, Enum):
    NORMAL = "normal"
    STANDARD = "standard"
    EMERGENCY = "emergency"


class RiskLevel(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class ApprovalStatus(str, Enum):
    """CAB decision and overall approval states."""
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class BreachType(str, Enum):
    """Which SLA clock was breached."""
    RESPONSE = "response"
    RESOLUTION = "resolution"


# ========== Lists for validation ==========

VALID_PRIORITIES = [p for p in Priority]
VALID_INCIDENT_STATUSES = [s for s in IncidentStatus]
VALID_PROBLEM_STATUSES = [s for s in ProblemStatus]
VALID_CHANGE_STATUSES = [s for s in ChangeStatus]
OPEN_INCIDENT_STATUSES = [
    IncidentStatus.OPEN, IncidentStatus.IN_PROGRESS, IncidentStatus.PENDING
]
