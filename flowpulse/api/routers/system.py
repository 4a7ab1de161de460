"""System router - health checks."""

from datetime import datetime, timezone

from fastapi import APIRouter, Request
from pydantic import BaseModel


router = APIRouter()


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    version: str
    timestamp: str
    notification_worker: bool
    sweeper: bool


@router.get("/health", response_model=HealthResponse)
async def health_check(request: Request) -> HealthResponse:
    """Health check endpoint."""
    state = request.app.state
    sweeper = getattr(state, "sweeper", None)
    return HealthResponse(
        status="operational",
        version=state.settings.version,
        timestamp=datetime.now(timezone.utc).isoformat(),
        notification_worker=state.dispatcher.is_running,
        sweeper=sweeper is not None and sweeper.is_running,
    )
