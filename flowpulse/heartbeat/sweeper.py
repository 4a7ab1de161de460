"""
Missed Ping Sweeper

APScheduler job that marks checks down when no ping has arrived within
interval + grace period, and notifies their owners. Opt-in: when disabled,
check status changes only through ping ingestion.
"""

from __future__ import annotations

from datetime import datetime

import structlog
from apscheduler.executors.asyncio import AsyncIOExecutor
from apscheduler.jobstores.memory import MemoryJobStore
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from flowpulse.heartbeat.ingest import Clock, utcnow
from flowpulse.heartbeat.models import Check, CheckStatus
from flowpulse.heartbeat.store import CheckStore, StoreError
from flowpulse.notify.dispatcher import NotificationDispatcher
from flowpulse.notify.models import NotificationJob

logger = structlog.get_logger(__name__)

SWEEP_JOB_ID = "missed-ping-sweep"


class MissedPingSweeper:
    """
    Periodically re-evaluates check liveness against cadence.

    Only up checks that have been pinged at least once are considered.
    The sweep does not write runs and does not move last_pinged_at, so the
    next real ping still decides the status.
    """

    def __init__(
        self,
        store: CheckStore,
        dispatcher: NotificationDispatcher,
        interval_seconds: int = 60,
        clock: Clock | None = None,
    ) -> None:
        self.store = store
        self.dispatcher = dispatcher
        self.interval_seconds = interval_seconds
        self.clock = clock or utcnow
        self._scheduler: AsyncIOScheduler | None = None

    def _create_scheduler(self) -> AsyncIOScheduler:
        """Create and configure the APScheduler instance."""
        return AsyncIOScheduler(
            jobstores={"default": MemoryJobStore()},
            executors={"default": AsyncIOExecutor()},
            job_defaults={
                "coalesce": True,  # Combine missed runs into one
                "max_instances": 1,
                "misfire_grace_time": self.interval_seconds,
            },
            timezone="UTC",
        )

    @property
    def is_running(self) -> bool:
        return self._scheduler is not None

    async def start(self) -> None:
        """Start sweeping on the configured interval."""
        if self._scheduler is not None:
            logger.warning("Sweeper already running")
            return

        self._scheduler = self._create_scheduler()
        self._scheduler.add_job(
            self.sweep,
            trigger=IntervalTrigger(seconds=self.interval_seconds),
            id=SWEEP_JOB_ID,
            name="sweep:missed-pings",
            replace_existing=True,
        )
        self._scheduler.start()
        logger.info("Missed ping sweeper started", interval_seconds=self.interval_seconds)

    async def stop(self) -> None:
        """Stop the scheduler."""
        if self._scheduler is None:
            return

        self._scheduler.shutdown(wait=False)
        self._scheduler = None
        logger.info("Missed ping sweeper stopped")

    async def sweep(self, now: datetime | None = None) -> list[Check]:
        """
        Mark overdue checks down.

        Returns:
            The checks that were marked down
        """
        now = now or self.clock()
        marked: list[Check] = []

        for check in await self.store.list_checks():
            if check.status != CheckStatus.UP or not check.is_overdue(now):
                continue

            try:
                updated = await self.store.mark_status(
                    check.id,
                    CheckStatus.DOWN,
                    if_last_pinged_at=check.last_pinged_at,
                )
            except StoreError as e:
                logger.error("Failed to mark overdue check down", check_id=check.id, error=str(e))
                continue

            if updated is None:
                # Pinged while we were sweeping
                continue

            logger.info(
                "Check missed its ping window",
                check_id=check.id,
                last_pinged_at=check.last_pinged_at.isoformat() if check.last_pinged_at else None,
            )
            await self.dispatcher.submit(NotificationJob.for_missed_ping(updated))
            marked.append(updated)

        return marked
