"""Tests for NotificationRouter."""

import asyncio

import pytest

from fleetwatch.core.errors import NotFoundError, ValidationError
from fleetwatch.core.models import Alert, AlertSeverity, AlertStatus
from fleetwatch.services.notifications import NotificationRouter


def make_alert(severity: AlertSeverity = AlertSeverity.CRITICAL) -> Alert:
    return Alert(
        id="a-1",
        service_name="payments",
        alert_type="service_unhealthy",
        severity=severity,
        status=AlertStatus.ACTIVE,
        title="Service payments is unhealthy",
        description="",
        created_at=1710331200.0,
    )


class SilentSink:
    async def send(self, alert: Alert) -> bool:
        return False


class HangingSink:
    async def send(self, alert: Alert) -> bool:
        await asyncio.sleep(10)
        return True


class ClosableSink:
    def __init__(self) -> None:
        self.closed = False

    async def send(self, alert: Alert) -> bool:
        return True

    async def aclose(self) -> None:
        self.closed = True


class TestDispatch:
    """Tests for severity-gated fan-out."""

    @pytest.mark.core
    async def test_one_failing_channel_does_not_block_another(
        self, clock, recording_sink, failing_sink
    ) -> None:
        router = NotificationRouter(clock=clock)
        router.register("email", recording_sink)
        router.register("slack", failing_sink, min_severity=AlertSeverity.CRITICAL)

        report = await router.dispatch(make_alert())

        assert report.alert_id == "a-1"
        assert report.succeeded == ["email"]
        assert report.failed == ["slack"]
        assert report.results[1].error == "provider unavailable"
        assert len(recording_sink.sent) == 1

    @pytest.mark.core
    async def test_channels_below_min_severity_are_skipped(
        self, clock, recording_sink_factory
    ) -> None:
        email, pager = recording_sink_factory(), recording_sink_factory()
        router = NotificationRouter(clock=clock)
        router.register("email", email, min_severity="medium")
        router.register("pagerduty", pager, min_severity=AlertSeverity.CRITICAL)

        report = await router.dispatch(make_alert(AlertSeverity.HIGH))

        assert report.succeeded == ["email"]
        assert pager.sent == []
        assert router.channels_for(AlertSeverity.LOW) == []
        assert router.channels_for(AlertSeverity.CRITICAL) == ["email", "pagerduty"]

    @pytest.mark.core
    async def test_disabled_channel_is_skipped(self, clock, recording_sink) -> None:
        router = NotificationRouter(clock=clock)
        router.register("email", recording_sink, enabled=False)

        report = await router.dispatch(make_alert())

        assert report.results == []
        assert router.status() == {"email": False}

    @pytest.mark.core
    async def test_false_return_is_a_failure(self, clock) -> None:
        router = NotificationRouter(clock=clock)
        router.register("webhook", SilentSink())

        report = await router.dispatch(make_alert())

        assert report.results[0].error == "channel reported failure"

    @pytest.mark.core
    async def test_slow_channel_times_out(self, clock, recording_sink) -> None:
        router = NotificationRouter(timeout=0.01, clock=clock)
        router.register("slow", HangingSink())
        router.register("fast", recording_sink)

        report = await router.dispatch(make_alert())

        assert report.succeeded == ["fast"]
        assert "timed out" in report.results[0].error

    @pytest.mark.core
    def test_register_requires_name(self, recording_sink) -> None:
        with pytest.raises(ValidationError):
            NotificationRouter().register("", recording_sink)

    @pytest.mark.core
    def test_register_rejects_unknown_severity(self, recording_sink) -> None:
        with pytest.raises(ValidationError):
            NotificationRouter().register("email", recording_sink, min_severity="urgent")


class TestSendTest:
    """Tests for test notifications."""

    @pytest.mark.core
    async def test_bypasses_gating_and_enabled_flag(self, clock, recording_sink) -> None:
        router = NotificationRouter(source_name="monitor", clock=clock)
        router.register(
            "pagerduty", recording_sink, min_severity=AlertSeverity.CRITICAL, enabled=False
        )

        result = await router.send_test("pagerduty")

        assert result.success
        [alert] = recording_sink.sent
        assert alert.id == "test-alert"
        assert alert.severity == AlertSeverity.LOW
        assert alert.service_name == "monitor"
        assert alert.value == 100
        assert alert.threshold == 90

    @pytest.mark.core
    async def test_failure_is_reported(self, clock, failing_sink) -> None:
        router = NotificationRouter(clock=clock)
        router.register("slack", failing_sink)

        result = await router.send_test("slack")

        assert not result.success
        assert result.error == "provider unavailable"

    @pytest.mark.core
    async def test_unknown_channel(self) -> None:
        with pytest.raises(NotFoundError):
            await NotificationRouter().send_test("carrier-pigeon")


class TestClose:
    """Tests for releasing sink resources."""

    @pytest.mark.core
    async def test_aclose_closes_sinks_that_support_it(self, recording_sink) -> None:
        closable = ClosableSink()
        router = NotificationRouter()
        router.register("webhook", closable)
        router.register("plain", recording_sink)

        await router.aclose()

        assert closable.closed
