"""
Uptime Reporting

Uptime statistics computed from CheckRun history. A run counts as up only
when its reported status is success; failed and pending both count against
uptime. With no runs in the window uptime is 100%.
"""

from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone

from pydantic import BaseModel

from flowpulse.heartbeat.models import Check, CheckRun, RunStatus


class UptimeSummary(BaseModel):
    """Uptime for one check over a window."""

    check_id: str
    check_name: str
    total_runs: int
    successful_runs: int
    failed_runs: int
    uptime_percentage: float


class DailyUptime(BaseModel):
    """Uptime for one UTC day."""

    day: date
    total: int
    successful: int
    failed: int
    uptime: float


class Incident(BaseModel):
    """A non-success run."""

    run_id: str
    check_id: str
    status: RunStatus
    created_at: datetime
    duration_ms: int | None = None
    error_message: str | None = None


def _uptime(successful: int, total: int) -> float:
    if total == 0:
        return 100.0
    return round(successful / total * 100, 2)


def window_start(now: datetime, days: int) -> datetime:
    """Start of a trailing window of ``days`` days."""
    return now - timedelta(days=days)


def summarize_uptime(check: Check, runs: list[CheckRun]) -> UptimeSummary:
    """Summarize the given runs for a check."""
    total = len(runs)
    successful = sum(1 for r in runs if r.status == RunStatus.SUCCESS)
    return UptimeSummary(
        check_id=check.id,
        check_name=check.name,
        total_runs=total,
        successful_runs=successful,
        failed_runs=total - successful,
        uptime_percentage=_uptime(successful, total),
    )


def daily_uptime(runs: list[CheckRun], now: datetime, days: int) -> list[DailyUptime]:
    """
    Bucket runs into UTC days.

    Args:
        runs: Runs to bucket (outside the window are ignored)
        now: Reference time; its day is the last bucket
        days: Number of buckets

    Returns:
        One entry per day, oldest first
    """
    today = now.astimezone(timezone.utc).date()
    buckets: list[DailyUptime] = []

    for offset in range(days - 1, -1, -1):
        day = today - timedelta(days=offset)
        start = datetime.combine(day, time.min, tzinfo=timezone.utc)
        end = start + timedelta(days=1)

        day_runs = [r for r in runs if start <= r.created_at < end]
        successful = sum(1 for r in day_runs if r.status == RunStatus.SUCCESS)
        buckets.append(
            DailyUptime(
                day=day,
                total=len(day_runs),
                successful=successful,
                failed=len(day_runs) - successful,
                uptime=_uptime(successful, len(day_runs)),
            )
        )

    return buckets


def list_incidents(runs: list[CheckRun]) -> list[Incident]:
    """Non-success runs, newest first."""
    incidents = [
        Incident(
            run_id=r.id,
            check_id=r.check_id,
            status=r.status,
            created_at=r.created_at,
            duration_ms=r.duration_ms,
            error_message=r.error_message,
        )
        for r in runs
        if r.status != RunStatus.SUCCESS
    ]
    incidents.sort(key=lambda i: i.created_at, reverse=True)
    return incidents
