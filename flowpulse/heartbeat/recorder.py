"""
Run Recorder

Appends an immutable CheckRun for every accepted ping.
"""

from __future__ import annotations

from datetime import datetime

import structlog

from flowpulse.heartbeat.models import Check, CheckRun, PingReport
from flowpulse.heartbeat.store import CheckStore, StoreError

logger = structlog.get_logger(__name__)


class RunRecorder:
    """Writes run history. A failed write is reported, not raised."""

    def __init__(self, store: CheckStore) -> None:
        self.store = store

    async def record(self, check: Check, report: PingReport, now: datetime) -> CheckRun | None:
        """
        Append a run for an accepted ping.

        Returns:
            The stored run, or None if the insert failed
        """
        run = CheckRun(
            check_id=check.id,
            status=report.status,
            payload=report.payload,
            error_message=report.error_message,
            duration_ms=report.duration_ms,
            created_at=now,
        )

        try:
            return await self.store.insert_run(run)
        except StoreError as e:
            logger.error("Failed to record check run", check_id=check.id, error=str(e))
            return None
