"""
Integration tests for the HTTP surface.

Tests: request -> ingest -> store -> notify, through FastAPI.
"""

import asyncio
import json

import pytest
from fastapi import Request
from fastapi.testclient import TestClient

from flowpulse.api.main import create_app
from flowpulse.api.routers.ping import read_capped_body
from flowpulse.config import Settings
from flowpulse.heartbeat.models import Check, CheckStatus, RunStatus
from flowpulse.heartbeat.store import CheckStore, StoreError
from flowpulse.notify.dispatcher import NotificationDispatcher

from tests.conftest import (
    OWNER_EMAIL,
    VALID_SLACK_WEBHOOK,
    FakeClock,
    RecordingEmailNotifier,
    RecordingSlackNotifier,
)

pytestmark = pytest.mark.integration


@pytest.fixture
def seeded_check(store: CheckStore) -> Check:
    """A check with an owner email and a Slack webhook."""

    async def seed() -> Check:
        await store.register_owner("owner-1", OWNER_EMAIL)
        return await store.create_check(
            name="Make.com order sync",
            owner_id="owner-1",
            interval_minutes=30,
            slack_webhook_url=VALID_SLACK_WEBHOOK,
        )

    return asyncio.run(seed())


@pytest.fixture
def client(
    settings: Settings,
    store: CheckStore,
    dispatcher: NotificationDispatcher,
    clock: FakeClock,
) -> TestClient:
    app = create_app(settings=settings, store=store, dispatcher=dispatcher, clock=clock)
    return TestClient(app)


def _runs(store: CheckStore, check_id: str) -> list:
    return asyncio.run(store.list_runs(check_id))


class TestPingScenarios:
    """End-to-end ping scenarios."""

    def test_unknown_token(self, client: TestClient, store: CheckStore) -> None:
        """Test an unknown uuid is a 404 and nothing is written."""
        response = client.get("/ping-handler", params={"uuid": "does-not-exist"})

        assert response.status_code == 404
        assert response.json() == {"status": "not_found", "message": "Check not found"}
        assert asyncio.run(store.list_checks()) == []

    def test_missing_uuid(self, client: TestClient) -> None:
        """Test a request without uuid is a 400."""
        response = client.post("/ping-handler", content=b"{}")
        assert response.status_code == 400
        assert response.json()["message"] == "UUID parameter is required"

    def test_success_post(
        self,
        client: TestClient,
        store: CheckStore,
        seeded_check: Check,
        email_notifier: RecordingEmailNotifier,
    ) -> None:
        """Test a success report is accepted and logged."""
        response = client.post(
            "/ping-handler",
            params={"uuid": seeded_check.heartbeat_token},
            json={"status": "success", "duration_ms": 120},
        )

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "ok"
        assert body["message"] == "Ping received successfully"
        assert body["check_id"] == seeded_check.id
        assert body["check_status"] == "up"
        assert body["notifications_sent"] is False

        runs = _runs(store, seeded_check.id)
        assert len(runs) == 1
        assert runs[0].id == body["run_id"]
        assert runs[0].duration_ms == 120
        assert email_notifier.sent == []

    def test_failed_then_rate_limited(
        self,
        client: TestClient,
        store: CheckStore,
        seeded_check: Check,
        clock: FakeClock,
        email_notifier: RecordingEmailNotifier,
        slack_notifier: RecordingSlackNotifier,
    ) -> None:
        """Test a failure notifies both channels and a quick retry is throttled."""
        response = client.post(
            "/ping-handler",
            params={"uuid": seeded_check.heartbeat_token},
            json={"status": "failed", "error_message": "Zap step 4 errored"},
        )

        assert response.status_code == 200
        assert response.json()["check_status"] == "down"
        assert response.json()["notifications_sent"] is True
        assert email_notifier.sent[0][1] == OWNER_EMAIL
        assert len(slack_notifier.sent) == 1

        clock.advance(10)
        throttled = client.post(
            "/ping-handler",
            params={"uuid": seeded_check.heartbeat_token},
            json={"status": "success"},
        )

        assert throttled.status_code == 429
        assert throttled.json()["status"] == "rate_limited"
        assert throttled.json()["retry_after_seconds"] == 20
        assert throttled.headers["Retry-After"] == "20"

        stored = asyncio.run(store.get_check(seeded_check.id))
        assert stored.status == CheckStatus.DOWN
        assert len(_runs(store, seeded_check.id)) == 1

    def test_get_ignores_body(
        self, client: TestClient, store: CheckStore, seeded_check: Check
    ) -> None:
        """Test GET always records a success run."""
        response = client.request(
            "GET",
            "/ping-handler",
            params={"uuid": seeded_check.heartbeat_token},
            content=json.dumps({"status": "failed"}),
        )
        assert response.status_code == 200
        assert _runs(store, seeded_check.id)[0].status == RunStatus.SUCCESS


class TestPingErrors:
    """Error responses."""

    def test_payload_too_large(self, client: TestClient, seeded_check: Check) -> None:
        """Test bodies over 10,240 bytes are refused."""
        response = client.post(
            "/ping-handler",
            params={"uuid": seeded_check.heartbeat_token},
            content=b" " * 10_241,
        )
        assert response.status_code == 413
        assert response.json()["status"] == "error"

    def test_invalid_json(self, client: TestClient, seeded_check: Check) -> None:
        """Test malformed JSON is a 400."""
        response = client.post(
            "/ping-handler",
            params={"uuid": seeded_check.heartbeat_token},
            content=b"{not json",
        )
        assert response.status_code == 400
        assert response.json()["message"] == "Invalid JSON body"

    def test_status_update_failure(
        self,
        client: TestClient,
        store: CheckStore,
        seeded_check: Check,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        """Test a failed status write is a 500."""

        async def broken_update(*args, **kwargs):
            raise StoreError("connection reset")

        monkeypatch.setattr(store, "update_status", broken_update)

        response = client.get("/ping-handler", params={"uuid": seeded_check.heartbeat_token})
        assert response.status_code == 500
        assert response.json() == {"status": "error", "message": "Failed to update check"}

    def test_partial_success(
        self,
        client: TestClient,
        store: CheckStore,
        seeded_check: Check,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        """Test a failed run insert still answers 200."""

        async def broken_insert(run):
            raise StoreError("check_runs unavailable")

        monkeypatch.setattr(store, "insert_run", broken_insert)

        response = client.get("/ping-handler", params={"uuid": seeded_check.heartbeat_token})
        assert response.status_code == 200
        assert response.json()["status"] == "partial_success"
        assert response.json()["run_id"] is None


class TestCors:
    """CORS handling."""

    def test_preflight(self, client: TestClient) -> None:
        """Test browsers get permissive CORS headers."""
        response = client.options(
            "/ping-handler",
            headers={
                "Origin": "https://app.example.com",
                "Access-Control-Request-Method": "POST",
                "Access-Control-Request-Headers": "content-type",
            },
        )
        assert response.status_code == 200
        assert response.headers["access-control-allow-origin"] == "*"

    def test_bare_options(self, client: TestClient) -> None:
        """Test OPTIONS without an Origin is an empty 200."""
        response = client.options("/ping-handler")
        assert response.status_code == 200
        assert response.content == b""


class TestReadEndpoints:
    """Health and uptime."""

    def test_health(self, client: TestClient) -> None:
        """Test the health endpoint reports workers."""
        response = client.get("/health")
        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "operational"
        assert body["notification_worker"] is False
        assert body["sweeper"] is False

    def test_uptime(
        self, client: TestClient, seeded_check: Check, clock: FakeClock
    ) -> None:
        """Test uptime reflects recorded runs."""
        token = seeded_check.heartbeat_token
        client.get("/ping-handler", params={"uuid": token})
        clock.advance(30)
        client.post("/ping-handler", params={"uuid": token}, json={"status": "failed"})

        response = client.get(f"/checks/{seeded_check.id}/uptime", params={"days": 7})

        assert response.status_code == 200
        body = response.json()
        assert body["summary"]["total_runs"] == 2
        assert body["summary"]["uptime_percentage"] == 50.0
        assert len(body["daily"]) == 7
        assert len(body["incidents"]) == 1

    def test_uptime_unknown_check(self, client: TestClient) -> None:
        """Test uptime for an unknown check is a 404."""
        assert client.get("/checks/nope/uptime").status_code == 404

    def test_uptime_days_bounds(self, client: TestClient, seeded_check: Check) -> None:
        """Test days outside 1..90 is rejected."""
        response = client.get(f"/checks/{seeded_check.id}/uptime", params={"days": 0})
        assert response.status_code == 422


class TestBodyLimit:
    """The body is read up to the size limit and no further."""

    def test_large_streamed_body(self, client: TestClient, store: CheckStore, seeded_check: Check) -> None:
        """Test a large chunked upload is refused with 413 and writes nothing."""

        def chunks():
            for _ in range(64):
                yield b" " * 65_536

        response = client.post(
            "/ping-handler",
            params={"uuid": seeded_check.heartbeat_token},
            content=chunks(),
        )

        assert response.status_code == 413
        assert _runs(store, seeded_check.id) == []

    def test_body_at_limit_accepted(self, client: TestClient, seeded_check: Check) -> None:
        """Test a body of exactly 10,240 bytes still goes through."""
        body = b'{"status": "success"}'
        body += b" " * (10_240 - len(body))

        response = client.post(
            "/ping-handler",
            params={"uuid": seeded_check.heartbeat_token},
            content=body,
        )
        assert response.status_code == 200

    @pytest.mark.asyncio
    async def test_reading_stops_past_limit(self) -> None:
        """Test the reader stops pulling chunks once the limit is exceeded."""
        received = 0

        async def receive() -> dict:
            nonlocal received
            received += 1
            return {"type": "http.request", "body": b"x" * 4096, "more_body": True}

        request = Request({"type": "http", "method": "POST", "path": "/ping-handler", "headers": []}, receive)
        body = await read_capped_body(request, 10_240)

        assert len(body) == 10_241
        assert received == 3
