"""Checks router - uptime reports."""

from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, Query

from flowpulse.api.deps import get_now, get_store
from flowpulse.api.schemas.uptime import CheckUptimeResponse
from flowpulse.heartbeat.store import CheckStore
from flowpulse.reporting import daily_uptime, list_incidents, summarize_uptime
from flowpulse.reporting.uptime import window_start

router = APIRouter(prefix="/checks")


@router.get("/{check_id}/uptime", response_model=CheckUptimeResponse)
async def get_check_uptime(
    check_id: str,
    days: int = Query(default=7, ge=1, le=90),
    store: CheckStore = Depends(get_store),
    now: datetime = Depends(get_now),
) -> CheckUptimeResponse:
    """
    Uptime for a check over the last ``days`` days, computed from its runs.
    """
    check = await store.get_check(check_id)
    if check is None:
        raise HTTPException(status_code=404, detail="Check not found")

    runs = await store.list_runs(check_id, since=window_start(now, days))

    return CheckUptimeResponse(
        days=days,
        summary=summarize_uptime(check, runs),
        daily=daily_uptime(runs, now, days),
        incidents=list_incidents(runs),
    )
