"""
Ping Router

The public heartbeat endpoint: ``GET|POST /ping-handler?uuid=<token>``.
"""

from __future__ import annotations

from typing import Any

import structlog
from fastapi import APIRouter, Depends, Query, Request, Response
from fastapi.responses import JSONResponse

from flowpulse.api.deps import get_ingestor
from flowpulse.api.schemas.ping import PingErrorResponse, PingResponse, RateLimitedResponse
from flowpulse.heartbeat.errors import PingError
from flowpulse.heartbeat.ingest import PingIngestor

logger = structlog.get_logger(__name__)

router = APIRouter()


async def read_capped_body(request: Request, max_bytes: int) -> bytes:
    """
    Read at most ``max_bytes + 1`` bytes of the request body.

    An oversized body comes back one byte over the limit so validation
    rejects it with 413 at its own stage, without buffering the rest.
    """
    body = bytearray()
    async for chunk in request.stream():
        body.extend(chunk)
        if len(body) > max_bytes:
            return bytes(body[: max_bytes + 1])
    return bytes(body)


@router.api_route(
    "/ping-handler",
    methods=["GET", "POST"],
    response_model=PingResponse,
    responses={
        400: {"model": PingErrorResponse},
        404: {"model": PingErrorResponse},
        413: {"model": PingErrorResponse},
        429: {"model": RateLimitedResponse},
        500: {"model": PingErrorResponse},
    },
)
async def receive_ping(
    request: Request,
    uuid: str | None = Query(default=None, description="Heartbeat token"),
    ingestor: PingIngestor = Depends(get_ingestor),
) -> Any:
    """
    Record a heartbeat.

    POST may carry ``{status, payload, error_message, duration_ms}``;
    GET is always a successful run.
    """
    body = None
    if request.method == "POST":
        body = await read_capped_body(request, ingestor.settings.max_body_bytes)

    try:
        result = await ingestor.ingest(uuid, body)
    except PingError as e:
        return JSONResponse(
            status_code=e.status_code,
            content=e.to_body(),
            headers=e.headers(),
        )
    except Exception:
        logger.exception("Unexpected error handling ping")
        return JSONResponse(
            status_code=500,
            content={"status": "error", "message": "Internal server error"},
        )

    return result.to_body()


@router.options("/ping-handler", include_in_schema=False)
async def ping_preflight() -> Response:
    """Bare OPTIONS; real CORS preflights are answered by the middleware."""
    return Response(status_code=200)
