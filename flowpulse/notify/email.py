"""
Email Notifications

Sends failure emails through the Resend HTTP API.
"""

from __future__ import annotations

import html
import json
from typing import Any

import httpx
import structlog

from flowpulse.notify.models import NotificationJob, NotificationReason

logger = structlog.get_logger(__name__)

RESEND_API_URL = "https://api.resend.com/emails"


class EmailNotConfiguredError(RuntimeError):
    """No Resend API key is configured."""


def build_failure_email(job: NotificationJob) -> dict[str, str]:
    """Build subject and HTML body for a failure email."""
    name = html.escape(job.check_name)

    if job.reason == NotificationReason.MISSED_PING:
        cause = "because we missed a scheduled ping"
    else:
        cause = "because your workflow reported a failed run"

    rows = [
        ("Check ID", job.check_id),
        ("Last ping", job.last_pinged_at.isoformat() if job.last_pinged_at else "never"),
        ("Interval", f"{job.interval_minutes} min"),
        ("Grace period", f"{job.grace_period_minutes} min"),
    ]
    if job.error_message:
        rows.append(("Error", job.error_message))
    if job.duration_ms is not None:
        rows.append(("Duration", f"{job.duration_ms} ms"))

    details = "".join(
        f"<li><strong>{label}:</strong> {html.escape(str(value))}</li>"
        for label, value in rows
    )

    payload_block = ""
    if job.payload:
        payload_json = html.escape(json.dumps(job.payload, indent=2, default=str))
        payload_block = f"<p>Payload:</p><pre>{payload_json}</pre>"

    body = (
        "<h2>Health Check Alert</h2>"
        "<p>Hello,</p>"
        f"<p>This is an automated alert to inform you that your check named "
        f"'<strong>{name}</strong>' has been marked as 'down' {cause}.</p>"
        f"<ul>{details}</ul>"
        f"{payload_block}"
        "<p>Please check your service and ensure it's responding correctly.</p>"
        "<p>Best regards,<br>Your Health Check System</p>"
    )

    return {
        "subject": f"⚠️ Alert: Your check '{job.check_name}' is down!",
        "html": body,
    }


class EmailNotifier:
    """Sends failure emails via Resend."""

    def __init__(
        self,
        api_key: str | None,
        from_address: str,
        api_url: str = RESEND_API_URL,
        timeout_seconds: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """
        Initialize the email notifier.

        Args:
            api_key: Resend API key (None disables sending)
            from_address: Sender, e.g. "Alerts <alerts@example.com>"
            api_url: Resend emails endpoint
            timeout_seconds: HTTP timeout
            client: Pre-built HTTP client (tests)
        """
        self._api_key = api_key
        self._from = from_address
        self._api_url = api_url
        self._timeout = timeout_seconds
        self._http_client = client

    @property
    def is_configured(self) -> bool:
        return bool(self._api_key)

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=self._timeout)
        return self._http_client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._http_client:
            await self._http_client.aclose()
            self._http_client = None

    async def send(self, job: NotificationJob, recipient: str) -> dict[str, Any]:
        """
        Send a failure email for a job.

        Returns:
            The Resend API response body

        Raises:
            EmailNotConfiguredError: No API key
            httpx.HTTPError: The request failed or Resend rejected it
        """
        if not self.is_configured:
            raise EmailNotConfiguredError("Resend API key not configured")

        logger.info(
            "Sending failure email",
            check_id=job.check_id,
            check_name=job.check_name,
        )

        message = build_failure_email(job)
        client = await self._get_client()
        response = await client.post(
            self._api_url,
            headers={"Authorization": f"Bearer {self._api_key}"},
            json={
                "from": self._from,
                "to": [recipient],
                "subject": message["subject"],
                "html": message["html"],
            },
        )
        response.raise_for_status()
        return response.json()
