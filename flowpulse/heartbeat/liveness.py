"""
Liveness State Machine

Maps a validated ping report to the check's up/down status and persists
it. A single report decides the status; there is no debouncing.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

import structlog

from flowpulse.heartbeat.models import Check, CheckStatus, PingReport, RunStatus
from flowpulse.heartbeat.store import CheckStore

logger = structlog.get_logger(__name__)


def derive_check_status(report: PingReport) -> CheckStatus:
    """Only a success report keeps a check up; failed and pending take it down."""
    if report.status == RunStatus.SUCCESS:
        return CheckStatus.UP
    return CheckStatus.DOWN


@dataclass(frozen=True)
class Transition:
    """A persisted status change (or re-affirmation)."""

    previous: CheckStatus
    current: CheckStatus
    check: Check

    @property
    def changed(self) -> bool:
        return self.previous != self.current

    @property
    def went_down(self) -> bool:
        """True on the up -> down edge only."""
        return self.previous == CheckStatus.UP and self.current == CheckStatus.DOWN


class LivenessStateMachine:
    """Applies ping reports to check status through the store."""

    def __init__(self, store: CheckStore) -> None:
        self.store = store

    async def apply(self, check: Check, report: PingReport, now: datetime) -> Transition:
        """
        Persist the status implied by a report.

        Raises:
            StoreError: If the update could not be written
        """
        new_status = derive_check_status(report)
        updated = await self.store.update_status(check.heartbeat_token, new_status, now)

        if check.status != new_status:
            logger.info(
                "Check status changed",
                check_id=check.id,
                previous=check.status.value,
                current=new_status.value,
            )

        return Transition(previous=check.status, current=new_status, check=updated)
