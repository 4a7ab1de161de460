"""
Tests for the ping ingestion pipeline.
"""

import json

import pytest

from flowpulse.config import NotifyPolicy, Settings
from flowpulse.heartbeat.errors import (
    CheckNotFoundError,
    InvalidPayloadError,
    MissingTokenError,
    PayloadTooLargeError,
    RateLimitedError,
    StatusUpdateError,
)
from flowpulse.heartbeat.ingest import PingIngestor
from flowpulse.heartbeat.models import Check, CheckRun, CheckStatus, RunStatus
from flowpulse.heartbeat.store import CheckStore, StoreError
from flowpulse.notify.dispatcher import NotificationDispatcher

from tests.conftest import (
    OWNER_EMAIL,
    FakeClock,
    RecordingEmailNotifier,
    RecordingSlackNotifier,
)


def _body(**fields) -> bytes:
    return json.dumps(fields).encode()


class TestRejections:
    """Tests for stages that short-circuit."""

    @pytest.mark.asyncio
    async def test_missing_token(self, ingestor: PingIngestor) -> None:
        """Test a missing uuid is a 400."""
        with pytest.raises(MissingTokenError):
            await ingestor.ingest(None)
        with pytest.raises(MissingTokenError):
            await ingestor.ingest("")

    @pytest.mark.asyncio
    async def test_unknown_token(self, ingestor: PingIngestor, store: CheckStore) -> None:
        """Test an unknown token is a 404."""
        with pytest.raises(CheckNotFoundError):
            await ingestor.ingest("does-not-exist")

    @pytest.mark.asyncio
    async def test_invalid_body_mutates_nothing(
        self, ingestor: PingIngestor, store: CheckStore, check: Check
    ) -> None:
        """Test validation failures leave the check and runs untouched."""
        with pytest.raises(InvalidPayloadError):
            await ingestor.ingest(check.heartbeat_token, _body(duration_ms=-1))
        with pytest.raises(PayloadTooLargeError):
            await ingestor.ingest(check.heartbeat_token, b" " * 10_241)

        stored = await store.get_check(check.id)
        assert stored.last_pinged_at is None
        assert await store.list_runs(check.id) == []

    @pytest.mark.asyncio
    async def test_rate_limited_mutates_nothing(
        self,
        ingestor: PingIngestor,
        store: CheckStore,
        check: Check,
        clock: FakeClock,
    ) -> None:
        """Test a second ping 10 seconds later is throttled."""
        await ingestor.ingest(check.heartbeat_token)
        clock.advance(10)

        with pytest.raises(RateLimitedError) as exc_info:
            await ingestor.ingest(check.heartbeat_token, _body(status="failed"))

        assert exc_info.value.retry_after_seconds == 20
        assert exc_info.value.headers() == {"Retry-After": "20"}
        stored = await store.get_check(check.id)
        assert stored.status == CheckStatus.UP
        assert len(await store.list_runs(check.id)) == 1

    @pytest.mark.asyncio
    async def test_status_update_failure(
        self,
        ingestor: PingIngestor,
        store: CheckStore,
        check: Check,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        """Test a failed status write is a 500 and no run is recorded."""
        async def broken_update(*args, **kwargs):
            raise StoreError("connection reset")

        monkeypatch.setattr(store, "update_status", broken_update)

        with pytest.raises(StatusUpdateError):
            await ingestor.ingest(check.heartbeat_token)
        assert await store.list_runs(check.id) == []


class TestAcceptedPings:
    """Tests for pings that are accepted."""

    @pytest.mark.asyncio
    async def test_success_ping(
        self,
        ingestor: PingIngestor,
        store: CheckStore,
        check: Check,
        email_notifier: RecordingEmailNotifier,
        clock: FakeClock,
    ) -> None:
        """Test a success report sets up, logs a run, and notifies nobody."""
        result = await ingestor.ingest(
            check.heartbeat_token, _body(status="success", duration_ms=120)
        )

        assert result.check_id == check.id
        assert result.check_status == CheckStatus.UP
        assert result.notifications_sent is False
        assert result.partial is False

        runs = await store.list_runs(check.id)
        assert len(runs) == 1
        assert runs[0].id == result.run_id
        assert runs[0].status == RunStatus.SUCCESS
        assert runs[0].duration_ms == 120

        stored = await store.get_check(check.id)
        assert stored.last_pinged_at == clock.now
        assert email_notifier.sent == []

    @pytest.mark.asyncio
    async def test_get_ping_without_body(self, ingestor: PingIngestor, check: Check) -> None:
        """Test a bodiless ping counts as success."""
        result = await ingestor.ingest(check.heartbeat_token, None)
        assert result.check_status == CheckStatus.UP

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", ["failed", "pending"])
    async def test_down_ping_notifies(
        self,
        ingestor: PingIngestor,
        store: CheckStore,
        slack_check: Check,
        email_notifier: RecordingEmailNotifier,
        slack_notifier: RecordingSlackNotifier,
        status: str,
    ) -> None:
        """Test failed and pending both take the check down and notify."""
        result = await ingestor.ingest(
            slack_check.heartbeat_token,
            _body(status=status, error_message="timeout", payload={"step": 3}),
        )

        assert result.check_status == CheckStatus.DOWN
        assert result.notifications_sent is True
        assert (await store.get_check(slack_check.id)).status == CheckStatus.DOWN

        job, recipient = email_notifier.sent[0]
        assert recipient == OWNER_EMAIL
        assert job.check_id == slack_check.id
        assert job.error_message == "timeout"
        assert job.payload == {"step": 3}
        assert job.status == CheckStatus.DOWN

        assert len(slack_notifier.sent) == 1
        assert slack_notifier.sent[0].slack_webhook_url == slack_check.slack_webhook_url

    @pytest.mark.asyncio
    async def test_notifications_sent_even_when_delivery_fails(
        self, store: CheckStore, settings: Settings, clock: FakeClock, slack_check: Check
    ) -> None:
        """Test delivery failures do not change the response."""
        dispatcher = NotificationDispatcher(
            owner_lookup=store.get_owner_email,
            email_notifier=RecordingEmailNotifier(fail=True),
            slack_notifier=RecordingSlackNotifier(fail=True),
        )
        ingestor = PingIngestor(store, dispatcher, settings=settings, clock=clock)

        result = await ingestor.ingest(slack_check.heartbeat_token, _body(status="failed"))

        assert result.notifications_sent is True
        assert result.check_status == CheckStatus.DOWN

    @pytest.mark.asyncio
    async def test_repeated_success_appends_runs(
        self, ingestor: PingIngestor, store: CheckStore, check: Check, clock: FakeClock
    ) -> None:
        """Test each accepted ping after the window adds exactly one run."""
        for expected in range(1, 4):
            result = await ingestor.ingest(check.heartbeat_token)
            assert result.check_status == CheckStatus.UP
            assert len(await store.list_runs(check.id)) == expected
            clock.advance(30)

    @pytest.mark.asyncio
    async def test_partial_success_when_run_insert_fails(
        self,
        ingestor: PingIngestor,
        store: CheckStore,
        check: Check,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        """Test a failed run insert keeps the status update and reports partial success."""
        async def broken_insert(run: CheckRun) -> CheckRun:
            raise StoreError("check_runs unavailable")

        monkeypatch.setattr(store, "insert_run", broken_insert)

        result = await ingestor.ingest(check.heartbeat_token, _body(status="failed"))

        assert result.partial is True
        assert result.run_id is None
        assert result.to_body()["status"] == "partial_success"
        assert (await store.get_check(check.id)).status == CheckStatus.DOWN


class TestNotifyPolicy:
    """Tests for every_ping vs on_transition."""

    async def _ping_down_twice(
        self, policy: NotifyPolicy, store: CheckStore, check: Check
    ) -> tuple[bool, bool]:
        clock = FakeClock()
        dispatcher = NotificationDispatcher(
            owner_lookup=store.get_owner_email,
            email_notifier=RecordingEmailNotifier(),
        )
        settings = Settings(_env_file=None, notify_policy=policy)
        ingestor = PingIngestor(store, dispatcher, settings=settings, clock=clock)

        first = await ingestor.ingest(check.heartbeat_token, _body(status="failed"))
        clock.advance(60)
        second = await ingestor.ingest(check.heartbeat_token, _body(status="failed"))
        return first.notifications_sent, second.notifications_sent

    @pytest.mark.asyncio
    async def test_every_ping(self, store: CheckStore, check: Check) -> None:
        """Test the default reminds on every failing ping."""
        assert await self._ping_down_twice(NotifyPolicy.EVERY_PING, store, check) == (True, True)

    @pytest.mark.asyncio
    async def test_on_transition(self, store: CheckStore, check: Check) -> None:
        """Test on_transition only notifies on the up -> down edge."""
        assert await self._ping_down_twice(NotifyPolicy.ON_TRANSITION, store, check) == (True, False)
