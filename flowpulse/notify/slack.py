"""
Slack Notifications

Posts check alerts to a Slack Incoming Webhook. Stored webhook URLs are
matched against Slack's webhook shape before any request is made, so a
check cannot be pointed at an arbitrary host.
"""

from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import Any

import httpx
import structlog

from flowpulse.heartbeat.models import CheckStatus
from flowpulse.notify.models import NotificationJob

logger = structlog.get_logger(__name__)

SLACK_WEBHOOK_PATTERN = re.compile(
    r"^https://hooks\.slack\.com/services/[A-Z0-9]+/[A-Z0-9]+/[a-zA-Z0-9]+$"
)


class InvalidWebhookError(ValueError):
    """Webhook URL is not a Slack Incoming Webhook."""


def is_valid_slack_webhook(url: str | None) -> bool:
    """Check a URL against the Slack Incoming Webhook shape."""
    return bool(url) and SLACK_WEBHOOK_PATTERN.fullmatch(url) is not None


def _plural(count: int, unit: str) -> str:
    return f"{count} {unit}{'' if count == 1 else 's'}"


def format_time_since(last_pinged_at: datetime | None, now: datetime) -> str:
    """Render '12 minutes ago' / '3 hours ago'."""
    if last_pinged_at is None:
        return "never"

    minutes = max(int((now - last_pinged_at).total_seconds() // 60), 0)
    if minutes < 60:
        return f"{_plural(minutes, 'minute')} ago"
    return f"{_plural(minutes // 60, 'hour')} ago"


def build_slack_message(job: NotificationJob, now: datetime | None = None) -> dict[str, Any]:
    """Build the Block Kit message for a job."""
    now = now or datetime.now(timezone.utc)
    is_down = job.status == CheckStatus.DOWN

    color = "danger" if is_down else "good"
    emoji = "🚨" if is_down else "✅"
    last_ping = (
        job.last_pinged_at.strftime("%Y-%m-%d %H:%M:%S UTC")
        if job.last_pinged_at
        else "never"
    )

    if is_down:
        action = (
            f"⚠️ *Action Required:* This check has failed to ping within the "
            f"expected {_plural(job.interval_minutes, 'minute')} interval. "
            f"Please investigate immediately."
        )
    else:
        action = "✅ Check is now operational."

    blocks: list[dict[str, Any]] = [
        {
            "type": "header",
            "text": {
                "type": "plain_text",
                "text": f"{emoji} Check {'Down' if is_down else 'Up'} Alert",
                "emoji": True,
            },
        },
        {
            "type": "section",
            "fields": [
                {"type": "mrkdwn", "text": f"*Check Name:*\n{job.check_name}"},
                {"type": "mrkdwn", "text": f"*Status:*\n{'❌ Down' if is_down else '✅ Up'}"},
                {"type": "mrkdwn", "text": f"*Last Ping:*\n{format_time_since(job.last_pinged_at, now)}"},
                {"type": "mrkdwn", "text": f"*Expected Interval:*\nEvery {_plural(job.interval_minutes, 'minute')}"},
            ],
        },
        {
            "type": "context",
            "elements": [
                {
                    "type": "mrkdwn",
                    "text": f"Check ID: `{job.check_id}` | Last pinged at: {last_ping}",
                },
            ],
        },
        {"type": "divider"},
        {"type": "section", "text": {"type": "mrkdwn", "text": action}},
    ]

    if job.error_message:
        blocks.insert(2, {
            "type": "section",
            "text": {"type": "mrkdwn", "text": f"*Error:*\n```{job.error_message}```"},
        })

    return {
        "text": f"{emoji} {job.check_name} is {job.status.value}",  # Fallback
        "attachments": [{"color": color, "blocks": blocks}],
    }


class SlackNotifier:
    """Sends check alerts to Slack webhooks."""

    def __init__(
        self,
        timeout_seconds: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._timeout = timeout_seconds
        self._http_client = client

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

    async def send(self, job: NotificationJob) -> None:
        """
        Post a job to its Slack webhook.

        Raises:
            InvalidWebhookError: The stored URL is not a Slack webhook
            httpx.HTTPError: The request failed or Slack rejected it
        """
        if not is_valid_slack_webhook(job.slack_webhook_url):
            raise InvalidWebhookError("Invalid Slack webhook URL format")

        logger.info(
            "Sending Slack notification",
            check_id=job.check_id,
            check_name=job.check_name,
        )

        client = await self._get_client()
        response = await client.post(job.slack_webhook_url, json=build_slack_message(job))
        response.raise_for_status()
