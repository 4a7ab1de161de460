"""Request dependencies backed by app state."""

from datetime import datetime

from fastapi import Request

from flowpulse.heartbeat.ingest import PingIngestor
from flowpulse.heartbeat.store import CheckStore


def get_ingestor(request: Request) -> PingIngestor:
    return request.app.state.ingestor


def get_store(request: Request) -> CheckStore:
    return request.app.state.store


def get_now(request: Request) -> datetime:
    """Current time from the ingestor's clock."""
    return request.app.state.ingestor.clock()
