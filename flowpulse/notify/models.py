"""
Notification Models

Jobs submitted to the dispatcher and the per-channel delivery outcome.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any
from uuid import uuid4

from pydantic import BaseModel, Field

from flowpulse.heartbeat.models import Check, CheckStatus, PingReport


class NotificationChannel(str, Enum):
    """Delivery channels."""

    EMAIL = "email"
    SLACK = "slack"


class NotificationReason(str, Enum):
    """What produced the notification."""

    FAILED_PING = "failed_ping"  # A ping reported failed/pending
    MISSED_PING = "missed_ping"  # No ping within interval + grace


class NotificationJob(BaseModel):
    """Everything a sender needs; built once so delivery never re-reads state."""

    id: str = Field(default_factory=lambda: str(uuid4()))
    reason: NotificationReason = NotificationReason.FAILED_PING

    check_id: str
    check_name: str
    owner_id: str
    status: CheckStatus
    last_pinged_at: datetime | None = None
    interval_minutes: int
    grace_period_minutes: int = 0
    slack_webhook_url: str | None = None

    # Report details (absent for missed pings)
    error_message: str | None = None
    payload: dict[str, Any] = Field(default_factory=dict)
    duration_ms: int | None = None

    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    # Delivery
    delivered_to: list[str] = Field(default_factory=list)
    delivery_errors: dict[str, str] = Field(default_factory=dict)

    @classmethod
    def for_ping(cls, check: Check, report: PingReport) -> "NotificationJob":
        """Build a job for a down-producing ping."""
        return cls(
            reason=NotificationReason.FAILED_PING,
            check_id=check.id,
            check_name=check.name,
            owner_id=check.owner_id,
            status=check.status,
            last_pinged_at=check.last_pinged_at,
            interval_minutes=check.interval_minutes,
            grace_period_minutes=check.grace_period_minutes,
            slack_webhook_url=check.slack_webhook_url,
            error_message=report.error_message,
            payload=report.payload,
            duration_ms=report.duration_ms,
        )

    @classmethod
    def for_missed_ping(cls, check: Check) -> "NotificationJob":
        """Build a job for a check that went silent."""
        return cls(
            reason=NotificationReason.MISSED_PING,
            check_id=check.id,
            check_name=check.name,
            owner_id=check.owner_id,
            status=check.status,
            last_pinged_at=check.last_pinged_at,
            interval_minutes=check.interval_minutes,
            grace_period_minutes=check.grace_period_minutes,
            slack_webhook_url=check.slack_webhook_url,
            error_message="No ping received within interval and grace period",
        )

    def mark_delivered(self, channel: NotificationChannel) -> None:
        """Mark the job as delivered to a channel."""
        self.delivered_to.append(channel.value)

    def mark_delivery_failed(self, channel: NotificationChannel, error: str) -> None:
        """Mark a delivery failure."""
        self.delivery_errors[channel.value] = error
