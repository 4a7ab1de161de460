"""
Ping Errors

Each ingestion stage short-circuits with one of these. The HTTP layer
renders them as ``{"status": ..., "message": ...}`` with ``status_code``.
"""

from typing import Any


class PingError(Exception):
    """Base class for ingestion failures."""

    status_code: int = 500
    status: str = "error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_body(self) -> dict[str, Any]:
        """Render the JSON response body."""
        return {"status": self.status, "message": self.message}

    def headers(self) -> dict[str, str]:
        """Extra response headers."""
        return {}


class MissingTokenError(PingError):
    status_code = 400

    def __init__(self) -> None:
        super().__init__("UUID parameter is required")


class CheckNotFoundError(PingError):
    status_code = 404
    status = "not_found"

    def __init__(self) -> None:
        super().__init__("Check not found")


class InvalidPayloadError(PingError):
    status_code = 400


class PayloadTooLargeError(PingError):
    status_code = 413

    def __init__(self, limit: int) -> None:
        super().__init__(f"Request body exceeds {limit} bytes")
        self.limit = limit


class RateLimitedError(PingError):
    status_code = 429
    status = "rate_limited"

    def __init__(self, retry_after_seconds: int) -> None:
        super().__init__(
            f"Too many pings. Retry after {retry_after_seconds} seconds"
        )
        self.retry_after_seconds = retry_after_seconds

    def to_body(self) -> dict[str, Any]:
        body = super().to_body()
        body["retry_after_seconds"] = self.retry_after_seconds
        return body

    def headers(self) -> dict[str, str]:
        return {"Retry-After": str(self.retry_after_seconds)}


class StatusUpdateError(PingError):
    status_code = 500

    def __init__(self) -> None:
        super().__init__("Failed to update check")
