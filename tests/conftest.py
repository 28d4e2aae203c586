"""Shared test fixtures for all test modules."""

from collections.abc import Callable
from pathlib import Path
from typing import Any

import httpx
import pytest

from fleetwatch.adapters.storage.in_memory import InMemoryRepository
from fleetwatch.core.errors import ProbeTimeoutError
from fleetwatch.core.models import Alert
from fleetwatch.core.ports import ProbeResponse

# 2024-03-13T12:00:00Z, a Wednesday
FIXED_NOW = 1710331200.0


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now: float = FIXED_NOW) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeProbeClient:
    """ProbeClientPort double keyed by URL.

    A value may be a ProbeResponse or an exception instance to raise.
    Unknown URLs answer 200 with a healthy body.
    """

    def __init__(self, responses: dict[str, Any] | None = None) -> None:
        self.responses = responses or {}
        self.calls: list[tuple[str, float]] = []

    async def get(self, url: str, timeout: float) -> ProbeResponse:
        self.calls.append((url, timeout))
        outcome = self.responses.get(url, ProbeResponse(200, {"status": "healthy"}))
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome


class RecordingSink:
    """NotificationSinkPort double that records every alert it receives."""

    def __init__(self) -> None:
        self.sent: list[Alert] = []

    async def send(self, alert: Alert) -> bool:
        self.sent.append(alert)
        return True


class FailingSink:
    """NotificationSinkPort double that always raises."""

    def __init__(self, error: Exception | None = None) -> None:
        self.error = error or RuntimeError("provider unavailable")
        self.attempts = 0

    async def send(self, alert: Alert) -> bool:
        self.attempts += 1
        raise self.error


@pytest.fixture
def clock() -> FakeClock:
    """Provide a controllable clock fixed at FIXED_NOW."""
    return FakeClock()


@pytest.fixture
def repository() -> InMemoryRepository:
    """Provide an empty in-memory repository."""
    return InMemoryRepository()


@pytest.fixture
def sqlite_db_path(tmp_path: Path) -> str:
    """Provide a temporary database path for SQLite repository tests."""
    return str(tmp_path / "fleetwatch.db")


@pytest.fixture
def probe_client() -> FakeProbeClient:
    return FakeProbeClient()


@pytest.fixture
def timeout_error() -> ProbeTimeoutError:
    return ProbeTimeoutError("timeout of 10000ms exceeded")


@pytest.fixture
def recording_sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
def failing_sink() -> FailingSink:
    return FailingSink()


@pytest.fixture
def fake_probe_client_factory() -> Callable[..., FakeProbeClient]:
    return FakeProbeClient


@pytest.fixture
def recording_sink_factory() -> Callable[[], RecordingSink]:
    return RecordingSink


# === ASGI Test Fixtures ===


@pytest.fixture
def basic_asgi_app():
    """Basic ASGI app fixture that returns 200 OK."""
    from fleetwatch.adapters.frameworks.asgi import Receive, Scope, Send

    async def app(scope: Scope, receive: Receive, send: Send) -> None:
        await send({"type": "http.response.start", "status": 200, "headers": []})
        await send({"type": "http.response.body", "body": b"OK"})

    return app


@pytest.fixture
def asgi_test_client():
    """Factory fixture that creates an httpx.AsyncClient for ASGI testing.

    Usage:
        async def test_something(asgi_test_client):
            async with asgi_test_client(app) as client:
                response = await client.get("/endpoint")
    """

    def _get_client(app):
        return httpx.AsyncClient(
            transport=httpx.ASGITransport(app=app), base_url="http://test"
        )

    return _get_client
