"""HTTP-level tests for the visit routes and health endpoint."""

import json
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any
from unittest.mock import MagicMock

import pytest
from aiohttp.test_utils import TestClient, TestServer
from icalendar import Calendar

from visitbot.api.server import _make_app
from visitbot.config_loader import Config
from visitbot.core.exceptions import VisitStoreError
from visitbot.domain.visit_store import JsonVisitStore

pytestmark = pytest.mark.integration

NOW = datetime(2025, 1, 15, 8, 0, tzinfo=UTC)  # 15:00 in Jakarta
TOKEN = {"X-Internal-Token": "tok-123"}


def _write_visits(path: Path, documents: dict[str, dict[str, Any]]) -> None:
    path.write_text(json.dumps(documents), encoding="utf-8")


@pytest.fixture
def config(store_path: Path) -> Config:
    return Config.from_dict(
        {
            "store_path": str(store_path),
            "internal_api_token": "tok-123",
            "cron_secret": "cron-456",
            "reminders_enabled": True,
            "daily_digest_enabled": True,
        }
    )


@pytest.fixture
def seeded(store_path: Path) -> Path:
    _write_visits(
        store_path,
        {
            "soon": {
                "doctor_name": "Dr. Sari",
                "hospital": "RS Medika",
                "base_time": (NOW + timedelta(minutes=10)).isoformat(),
            },
            "monthly": {
                "doctor_name": "Dr. Budi",
                "base_time": "2024-12-16T09:00:00",
                "recurrence": "monthly",
            },
            "done": {"base_time": "2025-01-16T10:00:00", "status": "Selesai"},
        },
    )
    return store_path


async def _client(config: Config, store: Any, sender: Any) -> TestClient:
    app = _make_app(config, store, sender, time_provider=lambda: NOW)
    client = TestClient(TestServer(app))
    await client.start_server()
    return client


@pytest.fixture
async def client(config: Config, store: JsonVisitStore, fake_sender, seeded: Path):
    test_client = await _client(config, store, fake_sender)
    yield test_client
    await test_client.close()


class TestCalendarFeed:
    async def test_calendar_feed_when_requested_then_ics_with_download_headers(self, client: TestClient) -> None:
        resp = await client.get("/api/visits/calendar.ics?months=2")

        assert resp.status == 200
        assert resp.headers["Content-Type"] == "text/calendar; charset=utf-8"
        assert resp.headers["Content-Disposition"] == 'attachment; filename="visits.ics"'
        assert resp.headers["Cache-Control"] == "no-store"
        events = list(Calendar.from_ical(await resp.read()).walk("VEVENT"))
        # one-off visit + monthly offsets 0..2; the done visit is excluded
        assert len(events) == 4

    async def test_calendar_feed_when_months_out_of_range_then_clamped(self, client: TestClient) -> None:
        resp = await client.get("/api/visits/calendar.ics?months=500")

        events = list(Calendar.from_ical(await resp.read()).walk("VEVENT"))
        assert len(events) == 1 + 37

    async def test_calendar_feed_when_request_id_sent_then_echoed(self, client: TestClient) -> None:
        resp = await client.get("/api/visits/calendar.ics", headers={"X-Request-ID": "req-1"})

        assert resp.headers["X-Request-ID"] == "req-1"


class TestReminderRoute:
    async def test_reminders_when_unauthorized_then_401_with_hint(self, client: TestClient, fake_sender) -> None:
        resp = await client.post("/api/visits/reminders")

        assert resp.status == 401
        body = await resp.json()
        assert body["ok"] is False
        assert body["error"] == "unauthorized"
        assert body["hint"]
        assert fake_sender.sent == []

    async def test_reminders_when_authorized_then_sends_due_visit_once(
        self, client: TestClient, fake_sender, store: JsonVisitStore
    ) -> None:
        first = await client.post("/api/visits/reminders", headers=TOKEN, json={"minutes_ahead": 60})
        second = await client.post("/api/visits/reminders", headers=TOKEN, json={"minutes_ahead": 60})

        assert await first.json() == {"ok": True, "minutes_ahead": 60, "checked": 2, "sent": 1}
        assert (await second.json())["sent"] == 0
        assert len(fake_sender.sent) == 1
        assert store.get("soon").last_notified_occurrence == NOW + timedelta(minutes=10)

    async def test_reminders_when_cron_secret_in_query_then_authorized(self, client: TestClient) -> None:
        resp = await client.post("/api/visits/reminders?cron_secret=cron-456&minutes_ahead=5000")

        assert resp.status == 200
        assert (await resp.json())["minutes_ahead"] == 1440

    async def test_reminders_when_body_not_json_then_defaults(self, client: TestClient) -> None:
        resp = await client.post("/api/visits/reminders", headers=TOKEN, data="not json")

        assert resp.status == 200
        assert (await resp.json())["minutes_ahead"] == 60

    async def test_reminders_when_store_fails_then_500(self, config: Config, fake_sender) -> None:
        broken = MagicMock()
        broken.list_scheduled.side_effect = VisitStoreError("disk gone")
        test_client = await _client(config, broken, fake_sender)
        try:
            resp = await test_client.post("/api/visits/reminders", headers=TOKEN)

            assert resp.status == 500
            assert await resp.json() == {"ok": False, "error": "internal error"}
        finally:
            await test_client.close()


class TestDailyDigestRoute:
    async def test_daily_when_unauthorized_then_401(self, client: TestClient) -> None:
        resp = await client.post("/api/visits/reminders/daily", json={})

        assert resp.status == 401

    async def test_daily_when_dry_run_then_preview(self, client: TestClient, fake_sender) -> None:
        resp = await client.post(
            "/api/visits/reminders/daily", headers=TOKEN, json={"dry_run": True}
        )

        body = await resp.json()
        assert resp.status == 200
        assert body["target_date"] == "2025-01-16"
        assert body["timezone"] == "Asia/Jakarta"
        assert [p["id"] for p in body["preview"]] == ["monthly"]
        assert fake_sender.sent == []

    async def test_daily_when_sent_then_counts_reported(self, client: TestClient, fake_sender) -> None:
        resp = await client.post(
            "/api/visits/reminders/daily", headers=TOKEN, json={"mode": "per_schedule"}
        )

        body = await resp.json()
        assert (body["matched"], body["sent"], body["mode"]) == (1, 1, "per_schedule")
        assert len(fake_sender.sent) == 1

    async def test_daily_when_target_date_invalid_then_400(self, client: TestClient) -> None:
        resp = await client.post(
            "/api/visits/reminders/daily", headers=TOKEN, json={"target_date": "16/01/2025"}
        )

        assert resp.status == 400
        assert (await resp.json())["ok"] is False

    async def test_daily_when_target_date_is_a_number_then_400(self, client: TestClient) -> None:
        resp = await client.post(
            "/api/visits/reminders/daily", headers=TOKEN, json={"target_date": 20250116}
        )

        assert resp.status == 400
        assert (await resp.json())["error"] == "invalid target_date, expected YYYY-MM-DD"


class TestAlertsAndHealth:
    async def test_alerts_when_default_days_then_today_and_tomorrow(self, client: TestClient) -> None:
        resp = await client.get("/api/visits/alerts")

        body = await resp.json()
        assert body["days"] == 1
        assert [(a["source_visit_id"], a["day_offset"]) for a in body["alerts"]] == [
            ("soon", 0),
            ("monthly", 1),
        ]

    async def test_alerts_when_days_out_of_range_then_clamped(self, client: TestClient) -> None:
        resp = await client.get("/api/visits/alerts?days=90")

        assert (await resp.json())["days"] == 30

    async def test_health_when_after_dispatch_then_ok_with_counts(self, client: TestClient) -> None:
        await client.post("/api/visits/reminders", headers=TOKEN)

        resp = await client.get("/api/health")

        body = await resp.json()
        assert resp.status == 200
        assert body["status"] == "ok"
        assert body["server_time_iso"] == "2025-01-15T08:00:00Z"
        assert body["reminder_dispatch"]["sent"] == 1
