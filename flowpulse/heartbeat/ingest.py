"""
Ping Ingestion

Runs a ping through the pipeline:
Resolve check → Rate limit → Validate → Update status → Record run → Notify

Each stage may short-circuit with a PingError; nothing after a failed
stage runs. Rate limiting and validation happen before any write.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable

import structlog

from flowpulse.config import NotifyPolicy, Settings, get_settings
from flowpulse.heartbeat.errors import (
    CheckNotFoundError,
    MissingTokenError,
    PingError,
    RateLimitedError,
    StatusUpdateError,
)
from flowpulse.heartbeat.liveness import LivenessStateMachine, Transition
from flowpulse.heartbeat.models import CheckStatus
from flowpulse.heartbeat.ratelimit import check_rate_limit
from flowpulse.heartbeat.recorder import RunRecorder
from flowpulse.heartbeat.store import CheckStore, StoreError
from flowpulse.heartbeat.validation import parse_ping_body
from flowpulse.notify.dispatcher import NotificationDispatcher
from flowpulse.notify.models import NotificationJob

logger = structlog.get_logger(__name__)

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _redact(token: str) -> str:
    return f"{token[:6]}…" if len(token) > 6 else token


@dataclass(frozen=True)
class PingResult:
    """Outcome of an accepted ping."""

    check_id: str
    run_id: str | None
    check_status: CheckStatus
    notifications_sent: bool

    @property
    def partial(self) -> bool:
        """Status was updated but the run was not logged."""
        return self.run_id is None

    def to_body(self) -> dict[str, Any]:
        if self.partial:
            status, message = "partial_success", "Ping received but run was not logged"
        else:
            status, message = "ok", "Ping received successfully"
        return {
            "status": status,
            "message": message,
            "check_id": self.check_id,
            "run_id": self.run_id,
            "check_status": self.check_status.value,
            "notifications_sent": self.notifications_sent,
        }


class PingIngestor:
    """
    Heartbeat ingestion handler.

    The store and dispatcher are injected; the ingestor keeps no state of
    its own between pings.
    """

    def __init__(
        self,
        store: CheckStore,
        dispatcher: NotificationDispatcher,
        settings: Settings | None = None,
        clock: Clock | None = None,
    ) -> None:
        self.store = store
        self.dispatcher = dispatcher
        self.settings = settings or get_settings()
        self.clock = clock or utcnow
        self.state_machine = LivenessStateMachine(store)
        self.recorder = RunRecorder(store)

    def should_notify(self, transition: Transition) -> bool:
        """Apply the configured notify policy to a transition."""
        if transition.current != CheckStatus.DOWN:
            return False
        if self.settings.notify_policy == NotifyPolicy.ON_TRANSITION:
            return transition.went_down
        return True

    async def ingest(self, token: str | None, body: bytes | None = None) -> PingResult:
        """
        Process one ping.

        Args:
            token: Heartbeat token from the ping URL
            body: Raw request body (None for GET)

        Returns:
            PingResult for an accepted ping

        Raises:
            PingError: A stage rejected the ping
        """
        if not token:
            raise MissingTokenError()

        check = await self.store.get_by_token(token)
        if check is None:
            logger.info("Check not found for token", token=_redact(token))
            raise CheckNotFoundError()

        now = self.clock()
        decision = check_rate_limit(
            check.last_pinged_at,
            now,
            floor_seconds=self.settings.rate_limit_seconds,
        )
        if not decision.allowed:
            logger.info(
                "Ping rate limited",
                check_id=check.id,
                retry_after_seconds=decision.retry_after_seconds,
            )
            raise RateLimitedError(decision.retry_after_seconds)

        try:
            report = parse_ping_body(
                body,
                max_body_bytes=self.settings.max_body_bytes,
                max_error_message_length=self.settings.max_error_message_length,
                max_duration_ms=self.settings.max_duration_ms,
            )
        except PingError as e:
            logger.info("Rejected ping body", check_id=check.id, reason=e.message)
            raise

        try:
            transition = await self.state_machine.apply(check, report, now)
        except StoreError as e:
            logger.error("Failed to update check", check_id=check.id, error=str(e))
            raise StatusUpdateError() from e

        run = await self.recorder.record(transition.check, report, now)

        notifications_sent = False
        if self.should_notify(transition):
            job = NotificationJob.for_ping(transition.check, report)
            notifications_sent = await self.dispatcher.submit(job)

        logger.info(
            "Ping received",
            check_id=check.id,
            run_status=report.status.value,
            check_status=transition.current.value,
            run_logged=run is not None,
            notifications_sent=notifications_sent,
        )

        return PingResult(
            check_id=check.id,
            run_id=run.id if run else None,
            check_status=transition.current,
            notifications_sent=notifications_sent,
        )
