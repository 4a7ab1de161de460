"""
Heartbeat Ingestion

Check/run models, the check store, and the ping pipeline:
- Rate limiting per check
- Ping body validation
- Liveness state machine (up/down)
- Run recording
- Missed-ping sweeper

The pipeline lives in ``flowpulse.heartbeat.ingest`` and the sweeper in
``flowpulse.heartbeat.sweeper``; they are not re-exported here because
they depend on ``flowpulse.notify``.
"""

from flowpulse.heartbeat.models import (
    Check,
    CheckRun,
    CheckStatus,
    PingReport,
    RunStatus,
)
from flowpulse.heartbeat.store import (
    CheckStore,
    StoreError,
    generate_heartbeat_token,
    get_store,
)

__all__ = [
    # Models
    "Check",
    "CheckRun",
    "CheckStatus",
    "PingReport",
    "RunStatus",
    # Store
    "CheckStore",
    "StoreError",
    "generate_heartbeat_token",
    "get_store",
]
