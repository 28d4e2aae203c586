"""Tests for HealthProbe and response classification."""

import asyncio

import pytest

from fleetwatch.core.errors import (
    NotFoundError,
    ProbeTransportError,
    RepositoryError,
    ValidationError,
)
from fleetwatch.core.models import HealthQuery, ServiceStatus, ServiceTarget
from fleetwatch.core.ports import ProbeResponse
from fleetwatch.services.health import HealthProbe, classify

API = ServiceTarget("api", "http://api.internal/health")
WEB = ServiceTarget("web", "http://web.internal/health")


class TestClassify:
    """Tests for classify()."""

    @pytest.mark.core
    @pytest.mark.parametrize(
        ("body", "expected"),
        [
            ({"status": "healthy"}, ServiceStatus.HEALTHY),
            ({"status": "Degraded"}, ServiceStatus.DEGRADED),
            ({"status": "UNHEALTHY"}, ServiceStatus.UNHEALTHY),
            ({"status": "maintenance"}, ServiceStatus.MAINTENANCE),
            ({"status": "sleepy"}, ServiceStatus.UNKNOWN),
            ({"ok": True}, ServiceStatus.UNKNOWN),
            ("plain text", ServiceStatus.UNKNOWN),
            (None, ServiceStatus.UNKNOWN),
        ],
    )
    def test_2xx_uses_declared_status(self, body, expected) -> None:
        assert classify(200, body) == expected

    @pytest.mark.core
    @pytest.mark.parametrize("code", [301, 404, 500, 503])
    def test_non_2xx_is_unhealthy(self, code: int) -> None:
        assert classify(code, {"status": "healthy"}) == ServiceStatus.UNHEALTHY


class TestProbeAll:
    """Tests for probing the registered roster."""

    @pytest.mark.core
    async def test_probes_every_service_and_persists(
        self, repository, fake_probe_client_factory, clock
    ) -> None:
        client = fake_probe_client_factory(
            {WEB.url: ProbeResponse(200, {"status": "degraded", "details": {"version": "2.1"}})}
        )
        probe = HealthProbe(repository, client, [API, WEB], timeout=5.0, clock=clock)

        snapshots = await probe.probe_all()

        by_name = {s.service_name: s for s in snapshots}
        assert by_name["api"].status == ServiceStatus.HEALTHY
        assert by_name["web"].status == ServiceStatus.DEGRADED
        assert by_name["web"].metadata == {"status_code": 200, "version": "2.1"}
        assert by_name["web"].checked_at == clock.now
        assert by_name["web"].response_time_ms is not None
        assert {url for url, _ in client.calls} == {API.url, WEB.url}
        assert all(timeout == 5.0 for _, timeout in client.calls)
        assert len(await repository.query_health(HealthQuery())) == 2

    @pytest.mark.core
    async def test_timeout_becomes_unhealthy_snapshot(
        self, repository, fake_probe_client_factory, timeout_error
    ) -> None:
        client = fake_probe_client_factory({API.url: timeout_error})
        probe = HealthProbe(repository, client, [API])

        [snapshot] = await probe.probe_all()

        assert snapshot.status == ServiceStatus.UNHEALTHY
        assert "timeout" in snapshot.error_message
        assert snapshot.metadata["is_timeout"] is True
        assert snapshot.metadata["is_network_error"] is False
        stored = await repository.query_health(HealthQuery(service_name="api"))
        assert stored == [snapshot]

    @pytest.mark.core
    async def test_transport_error_is_network_error(
        self, repository, fake_probe_client_factory
    ) -> None:
        client = fake_probe_client_factory({API.url: ProbeTransportError("connection refused")})
        probe = HealthProbe(repository, client, [API])

        [snapshot] = await probe.probe_all()

        assert snapshot.status == ServiceStatus.UNHEALTHY
        assert snapshot.error_message == "connection refused"
        assert snapshot.metadata["is_network_error"] is True

    @pytest.mark.core
    async def test_non_2xx_records_http_error(
        self, repository, fake_probe_client_factory
    ) -> None:
        client = fake_probe_client_factory({API.url: ProbeResponse(503, {"status": "healthy"})})
        probe = HealthProbe(repository, client, [API])

        [snapshot] = await probe.probe_all()

        assert snapshot.status == ServiceStatus.UNHEALTHY
        assert snapshot.error_message == "HTTP 503"
        assert snapshot.metadata["status_code"] == 503

    @pytest.mark.core
    async def test_one_failure_does_not_hide_others(
        self, repository, fake_probe_client_factory, timeout_error
    ) -> None:
        client = fake_probe_client_factory({API.url: timeout_error})
        probe = HealthProbe(repository, client, [API, WEB])

        snapshots = await probe.probe_all()

        assert {s.service_name: s.status for s in snapshots} == {
            "api": ServiceStatus.UNHEALTHY,
            "web": ServiceStatus.HEALTHY,
        }

    @pytest.mark.core
    async def test_snapshot_returned_when_persistence_fails(
        self, repository, probe_client, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        async def broken_insert(snapshot) -> None:
            raise RepositoryError("disk full")

        monkeypatch.setattr(repository, "insert_health_snapshot", broken_insert)
        probe = HealthProbe(repository, probe_client, [API])

        [snapshot] = await probe.probe_all()

        assert snapshot.status == ServiceStatus.HEALTHY

    @pytest.mark.core
    async def test_unexpected_client_error_becomes_unhealthy_snapshot(
        self, repository, fake_probe_client_factory
    ) -> None:
        client = fake_probe_client_factory({API.url: RuntimeError("boom")})
        probe = HealthProbe(repository, client, [API, WEB])

        snapshots = await probe.probe_all()

        by_name = {s.service_name: s for s in snapshots}
        assert by_name["api"].status == ServiceStatus.UNHEALTHY
        assert by_name["api"].error_message == "boom"
        assert by_name["api"].metadata["is_network_error"] is True
        assert by_name["web"].status == ServiceStatus.HEALTHY
        stored = await repository.query_health(HealthQuery(service_name="api"))
        assert [s.status for s in stored] == [ServiceStatus.UNHEALTHY]

    @pytest.mark.core
    async def test_slow_persistence_is_bounded(
        self, repository, probe_client, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        async def stalled_insert(snapshot) -> None:
            await asyncio.sleep(10)

        monkeypatch.setattr(repository, "insert_health_snapshot", stalled_insert)
        probe = HealthProbe(repository, probe_client, [API], write_timeout=0.01)

        [snapshot] = await asyncio.wait_for(probe.probe_all(), timeout=1)

        assert snapshot.status == ServiceStatus.HEALTHY

    @pytest.mark.core
    async def test_empty_roster(self, repository, probe_client) -> None:
        assert await HealthProbe(repository, probe_client).probe_all() == []


class TestProbeOne:
    """Tests for ad-hoc probes."""

    @pytest.mark.core
    async def test_converts_timeout_to_seconds(self, repository, probe_client) -> None:
        probe = HealthProbe(repository, probe_client)

        snapshot = await probe.probe_one("adhoc", "http://adhoc/health", timeout_ms=2500)

        assert snapshot.service_name == "adhoc"
        assert probe_client.calls == [("http://adhoc/health", 2.5)]

    @pytest.mark.core
    @pytest.mark.parametrize("timeout_ms", [999, 30001, 0])
    async def test_rejects_timeout_out_of_bounds(
        self, repository, probe_client, timeout_ms: int
    ) -> None:
        probe = HealthProbe(repository, probe_client)

        with pytest.raises(ValidationError):
            await probe.probe_one("adhoc", "http://adhoc", timeout_ms=timeout_ms)
        assert probe_client.calls == []

    @pytest.mark.core
    @pytest.mark.parametrize(("name", "url"), [("", "http://x"), ("x", "")])
    async def test_requires_name_and_url(self, repository, probe_client, name, url) -> None:
        with pytest.raises(ValidationError):
            await HealthProbe(repository, probe_client).probe_one(name, url)


class TestReadSide:
    """Tests for health lookups."""

    @pytest.mark.core
    async def test_get_service_health_returns_latest(
        self, repository, probe_client, clock
    ) -> None:
        probe = HealthProbe(repository, probe_client, [API], clock=clock)
        await probe.probe_all()
        clock.advance(60)
        await probe.probe_all()

        latest = await probe.get_service_health("api")

        assert latest.checked_at == clock.now

    @pytest.mark.core
    async def test_get_service_health_unknown_service(self, repository, probe_client) -> None:
        with pytest.raises(NotFoundError):
            await HealthProbe(repository, probe_client).get_service_health("ghost")

    @pytest.mark.core
    async def test_get_services_by_status(
        self, repository, fake_probe_client_factory, timeout_error
    ) -> None:
        client = fake_probe_client_factory({API.url: timeout_error})
        probe = HealthProbe(repository, client, [API, WEB])
        await probe.probe_all()

        unhealthy = await probe.get_services_by_status("unhealthy")
        every = await probe.get_all_services_health()

        assert [s.service_name for s in unhealthy] == ["api"]
        assert [s.service_name for s in every] == ["api", "web"]
