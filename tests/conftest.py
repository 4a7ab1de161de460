"""
Pytest configuration and shared fixtures.
"""

from datetime import datetime, timedelta, timezone

import pytest

from flowpulse.config import Settings
from flowpulse.heartbeat.ingest import PingIngestor
from flowpulse.heartbeat.models import Check
from flowpulse.heartbeat.store import CheckStore
from flowpulse.notify.dispatcher import NotificationDispatcher
from flowpulse.notify.models import NotificationJob

VALID_SLACK_WEBHOOK = "https://hooks.slack.com/services/T0123ABC/B0456DEF/abcDEF123xyz"
OWNER_EMAIL = "owner@example.com"


class FakeClock:
    """Controllable clock for rate limit and sweeper tests."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2026, 10, 18, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


class RecordingEmailNotifier:
    """Email sender that records instead of calling Resend."""

    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.sent: list[tuple[NotificationJob, str]] = []

    async def send(self, job: NotificationJob, recipient: str) -> dict:
        if self.fail:
            raise RuntimeError("resend unavailable")
        self.sent.append((job, recipient))
        return {"id": "email-1"}


class RecordingSlackNotifier:
    """Slack sender that records instead of posting."""

    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.sent: list[NotificationJob] = []

    async def send(self, job: NotificationJob) -> None:
        if self.fail:
            raise RuntimeError("slack unavailable")
        self.sent.append(job)


@pytest.fixture
def settings() -> Settings:
    """Default settings, isolated from the environment's .env file."""
    return Settings(_env_file=None, notification_worker_enabled=False)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store() -> CheckStore:
    """Fresh in-memory store for each test."""
    return CheckStore()


@pytest.fixture
def email_notifier() -> RecordingEmailNotifier:
    return RecordingEmailNotifier()


@pytest.fixture
def slack_notifier() -> RecordingSlackNotifier:
    return RecordingSlackNotifier()


@pytest.fixture
def dispatcher(
    store: CheckStore,
    email_notifier: RecordingEmailNotifier,
    slack_notifier: RecordingSlackNotifier,
) -> NotificationDispatcher:
    """Dispatcher that delivers inline to recording notifiers."""
    return NotificationDispatcher(
        owner_lookup=store.get_owner_email,
        email_notifier=email_notifier,
        slack_notifier=slack_notifier,
    )


@pytest.fixture
def ingestor(
    store: CheckStore,
    dispatcher: NotificationDispatcher,
    settings: Settings,
    clock: FakeClock,
) -> PingIngestor:
    return PingIngestor(store, dispatcher, settings=settings, clock=clock)


@pytest.fixture
async def check(store: CheckStore) -> Check:
    """A never-pinged check whose owner has an email on file."""
    await store.register_owner("owner-1", OWNER_EMAIL)
    return await store.create_check(
        name="Nightly CRM sync",
        owner_id="owner-1",
        interval_minutes=60,
        grace_period_minutes=10,
    )


@pytest.fixture
async def slack_check(store: CheckStore) -> Check:
    """A check with a Slack webhook configured."""
    await store.register_owner("owner-1", OWNER_EMAIL)
    return await store.create_check(
        name="Zapier invoice export",
        owner_id="owner-1",
        interval_minutes=15,
        grace_period_minutes=5,
        slack_webhook_url=VALID_SLACK_WEBHOOK,
    )
