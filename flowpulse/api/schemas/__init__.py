"""Pydantic schemas for API responses."""

from flowpulse.api.schemas.ping import PingErrorResponse, PingResponse, RateLimitedResponse
from flowpulse.api.schemas.uptime import CheckUptimeResponse

__all__ = [
    "PingResponse",
    "PingErrorResponse",
    "RateLimitedResponse",
    "CheckUptimeResponse",
]
