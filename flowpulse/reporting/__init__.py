"""Uptime reporting over recorded check runs."""

from flowpulse.reporting.uptime import (
    DailyUptime,
    Incident,
    UptimeSummary,
    daily_uptime,
    list_incidents,
    summarize_uptime,
)

__all__ = [
    "DailyUptime",
    "Incident",
    "UptimeSummary",
    "daily_uptime",
    "list_incidents",
    "summarize_uptime",
]
