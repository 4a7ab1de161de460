"""Uptime API Schemas."""

from pydantic import BaseModel

from flowpulse.reporting import DailyUptime, Incident, UptimeSummary


class CheckUptimeResponse(BaseModel):
    """Uptime report for one check."""

    days: int
    summary: UptimeSummary
    daily: list[DailyUptime]
    incidents: list[Incident]
