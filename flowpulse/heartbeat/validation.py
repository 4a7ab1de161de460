"""
Ping Body Validation

Parses and bounds-checks the optional JSON body of a ping. Nothing here
touches the store; every failure raises before any state is mutated.
"""

from __future__ import annotations

import json
from typing import Any

from pydantic import ValidationError

from flowpulse.heartbeat.errors import InvalidPayloadError, PayloadTooLargeError
from flowpulse.heartbeat.models import PingReport, RunStatus

MAX_BODY_BYTES = 10_240
MAX_ERROR_MESSAGE_LENGTH = 1000
MAX_DURATION_MS = 3_600_000

_REPORT_FIELDS = ("status", "payload", "error_message", "duration_ms")


def _duration_message(max_duration_ms: int) -> str:
    return f"duration_ms must be an integer between 0 and {max_duration_ms}"


def _describe(error: ValidationError, max_duration_ms: int) -> str:
    """Turn the first pydantic error into a caller-facing reason."""
    first = error.errors()[0]
    field = first["loc"][0] if first["loc"] else ""

    if field == "status":
        allowed = ", ".join(s.value for s in RunStatus)
        return f"Invalid status. Must be one of: {allowed}"
    if field == "payload":
        return "payload must be a JSON object"
    if field == "error_message":
        return "error_message must be a string"
    if field == "duration_ms":
        return _duration_message(max_duration_ms)
    return "Invalid request body"


def parse_ping_body(
    raw: bytes | None,
    max_body_bytes: int = MAX_BODY_BYTES,
    max_error_message_length: int = MAX_ERROR_MESSAGE_LENGTH,
    max_duration_ms: int = MAX_DURATION_MS,
) -> PingReport:
    """
    Parse a ping body into a normalized report.

    An absent or blank body yields the defaults (status ``success``,
    empty payload). JSON ``null`` for status or payload also means default.

    Args:
        raw: Raw request body bytes, or None for GET requests
        max_body_bytes: Size limit checked before JSON parsing
        max_error_message_length: Longest accepted error_message
        max_duration_ms: Largest accepted duration_ms (inclusive)

    Returns:
        The validated PingReport

    Raises:
        PayloadTooLargeError: Body exceeds max_body_bytes
        InvalidPayloadError: Malformed JSON or a field fails validation
    """
    if raw is None:
        return PingReport()

    if len(raw) > max_body_bytes:
        raise PayloadTooLargeError(max_body_bytes)

    if not raw.strip():
        return PingReport()

    try:
        data: Any = json.loads(raw)
    except ValueError as e:
        raise InvalidPayloadError("Invalid JSON body") from e

    if not isinstance(data, dict):
        raise InvalidPayloadError("Request body must be a JSON object")

    fields = {
        key: data[key]
        for key in _REPORT_FIELDS
        if data.get(key) is not None
    }

    # bool is an int subclass; true/false are not durations
    if isinstance(fields.get("duration_ms"), bool):
        raise InvalidPayloadError(_duration_message(max_duration_ms))

    try:
        report = PingReport.model_validate(fields)
    except ValidationError as e:
        raise InvalidPayloadError(_describe(e, max_duration_ms)) from e

    if report.error_message is not None and len(report.error_message) > max_error_message_length:
        raise InvalidPayloadError(
            f"error_message must be at most {max_error_message_length} characters"
        )

    if report.duration_ms is not None and not 0 <= report.duration_ms <= max_duration_ms:
        raise InvalidPayloadError(_duration_message(max_duration_ms))

    return report
