"""Shared fixtures for visitbot tests."""

from collections.abc import AsyncIterator, Generator
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

import pytest

from visitbot.core.http_client import close_all_clients
from visitbot.core.telegram_sender import SendResult
from visitbot.domain.visit_store import JsonVisitStore


def pytest_configure(config: Any) -> None:
    config.addinivalue_line("markers", "unit: fast isolated tests")
    config.addinivalue_line("markers", "integration: HTTP-level tests against the aiohttp app")


class FakeSender:
    """Notification sender recording every message it is asked to send."""

    def __init__(self, ok: bool = True, delay: float = 0.0, fail_on: set[int] | None = None) -> None:
        self.ok = ok
        self.delay = delay
        self.fail_on = fail_on or set()
        self.sent: list[str] = []
        self.calls = 0

    async def send(self, text: str) -> SendResult:
        import asyncio

        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if not self.ok or self.calls in self.fail_on:
            return SendResult(ok=False, status=500, error="boom")
        self.sent.append(text)
        return SendResult(ok=True, status=200)


@pytest.fixture
def fake_sender() -> FakeSender:
    return FakeSender()


@pytest.fixture
def make_sender() -> type[FakeSender]:
    """The FakeSender class, for tests that need failing or slow senders."""
    return FakeSender


@pytest.fixture
def store_path(tmp_path: Path) -> Path:
    return tmp_path / "visits.json"


@pytest.fixture
def store(store_path: Path) -> JsonVisitStore:
    return JsonVisitStore(store_path)


@pytest.fixture
def now() -> datetime:
    """A fixed reference instant: 2025-01-15 08:00 UTC."""
    return datetime(2025, 1, 15, 8, 0, tzinfo=UTC)


@pytest.fixture(autouse=True)
def clean_test_environment(monkeypatch: Any) -> Generator[None, Any, None]:
    """Clear env vars that change clock, timezone or config between tests."""
    for name in (
        "VISITBOT_TEST_TIME",
        "VISITBOT_VISIT_TIMEZONE",
        "VISITBOT_DEBUG",
        "VISITBOT_LOG_LEVEL",
    ):
        monkeypatch.delenv(name, raising=False)
    yield


@pytest.fixture(autouse=True)
async def cleanup_shared_http_clients() -> AsyncIterator[None]:
    """Close shared httpx clients after every test."""
    yield
    await close_all_clients()
