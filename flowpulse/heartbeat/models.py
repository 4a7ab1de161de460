"""
Heartbeat Models

Data models for checks, runs, and inbound ping reports.
"""

from datetime import datetime, timezone, timedelta
from enum import Enum
from typing import Any
from uuid import uuid4

from pydantic import BaseModel, Field


class CheckStatus(str, Enum):
    """Liveness classification of a check."""

    UP = "up"
    DOWN = "down"


class RunStatus(str, Enum):
    """Caller-reported outcome of a single workflow run."""

    SUCCESS = "success"
    FAILED = "failed"
    PENDING = "pending"


class Check(BaseModel):
    """
    A monitored heartbeat target.

    The heartbeat token is the capability embedded in the public ping URL
    and the only credential accepted for ingestion. It is generated
    independently of the check id.
    """

    # Identity
    id: str = Field(default_factory=lambda: str(uuid4()))
    heartbeat_token: str
    name: str
    owner_id: str

    # Cadence
    interval_minutes: int = 5
    grace_period_minutes: int = 0

    # State
    status: CheckStatus = CheckStatus.UP
    last_pinged_at: datetime | None = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    # Notification targets
    slack_webhook_url: str | None = None

    @property
    def late_after(self) -> timedelta:
        """Silence allowed before a ping counts as missed."""
        return timedelta(minutes=self.interval_minutes + self.grace_period_minutes)

    def is_overdue(self, now: datetime) -> bool:
        """Check whether the last ping is older than interval plus grace."""
        if self.last_pinged_at is None:
            return False
        return now - self.last_pinged_at > self.late_after


class CheckRun(BaseModel):
    """An immutable record of one accepted ping."""

    id: str = Field(default_factory=lambda: str(uuid4()))
    check_id: str
    status: RunStatus
    payload: dict[str, Any] = Field(default_factory=dict)
    error_message: str | None = None
    duration_ms: int | None = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    model_config = {"frozen": True}


class PingReport(BaseModel):
    """A validated, normalized ping body."""

    status: RunStatus = RunStatus.SUCCESS
    payload: dict[str, Any] = Field(default_factory=dict)
    error_message: str | None = None
    duration_ms: int | None = None
