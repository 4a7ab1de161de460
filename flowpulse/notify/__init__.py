"""
Notifications

Email (Resend) and Slack delivery for failing checks, behind a queue
so delivery never blocks ping ingestion.
"""

from flowpulse.notify.dispatcher import NotificationDispatcher, build_dispatcher
from flowpulse.notify.email import EmailNotifier
from flowpulse.notify.models import (
    NotificationChannel,
    NotificationJob,
    NotificationReason,
)
from flowpulse.notify.slack import SlackNotifier, is_valid_slack_webhook

__all__ = [
    "NotificationDispatcher",
    "build_dispatcher",
    "EmailNotifier",
    "SlackNotifier",
    "is_valid_slack_webhook",
    "NotificationChannel",
    "NotificationJob",
    "NotificationReason",
]
