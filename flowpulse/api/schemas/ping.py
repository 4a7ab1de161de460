"""
Ping API Schemas

Response bodies of the heartbeat ingestion endpoint.
"""

from pydantic import BaseModel, Field


class PingResponse(BaseModel):
    """An accepted ping. ``status`` is ``partial_success`` when the run was not logged."""

    status: str = Field(..., description="ok or partial_success")
    message: str
    check_id: str
    run_id: str | None = None
    check_status: str = Field(..., description="up or down")
    notifications_sent: bool


class PingErrorResponse(BaseModel):
    """A rejected ping."""

    status: str
    message: str


class RateLimitedResponse(PingErrorResponse):
    """A ping inside the rate limit window."""

    retry_after_seconds: int
