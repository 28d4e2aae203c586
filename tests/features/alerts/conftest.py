"""Step definitions for alert lifecycle BDD scenarios."""

import asyncio
from collections.abc import Coroutine
from dataclasses import dataclass, field
from typing import Any, TypeVar

import pytest
from pytest_bdd import given, parsers, then, when

from fleetwatch.adapters.storage.in_memory import InMemoryRepository
from fleetwatch.core.errors import InvalidStateError
from fleetwatch.core.models import (
    Alert,
    AlertQuery,
    AlertSeverity,
    AlertStatus,
    HealthSnapshot,
    MetricSample,
    ServiceStatus,
)
from fleetwatch.engine import MonitoringEngine
from fleetwatch.services.notifications import NotificationRouter

T = TypeVar("T")

NOW = 1710331200.0


def run_async(coro: Coroutine[Any, Any, T]) -> T:
    """Run a coroutine to completion from a synchronous step."""
    return asyncio.run(coro)


class InboxSink:
    """Notification sink that keeps every alert it receives."""

    def __init__(self) -> None:
        self.inbox: list[Alert] = []

    async def send(self, alert: Alert) -> bool:
        self.inbox.append(alert)
        return True


@dataclass
class AlertScenarioContext:
    """Shared state between steps in an alert scenario."""

    repository: InMemoryRepository = field(default_factory=InMemoryRepository)
    router: NotificationRouter = field(default_factory=lambda: NotificationRouter(clock=lambda: NOW))
    sinks: dict[str, InboxSink] = field(default_factory=dict)
    engine: MonitoringEngine | None = None
    alert: Alert | None = None


@pytest.fixture
def ctx() -> AlertScenarioContext:
    """Fresh scenario context for each test."""
    return AlertScenarioContext()


# === Background Steps ===


@given(parsers.parse('an in-memory monitoring engine for service "{service}"'))
def step_engine(ctx: AlertScenarioContext, probe_client, service: str) -> None:
    ctx.engine = MonitoringEngine(
        ctx.repository, probe_client, ctx.router, service_name=service, clock=lambda: NOW
    )


@given(parsers.parse('a notification channel "{name}" accepting "{severity}" alerts'))
def step_channel(ctx: AlertScenarioContext, name: str, severity: str) -> None:
    sink = InboxSink()
    ctx.sinks[name] = sink
    ctx.router.register(name, sink, min_severity=AlertSeverity.parse(severity))


# === Given ===


@given(parsers.parse('the service "{service}" probes as unhealthy'))
def step_unhealthy(ctx: AlertScenarioContext, service: str) -> None:
    run_async(
        ctx.repository.insert_health_snapshot(
            HealthSnapshot(
                service,
                f"http://{service}.internal/health",
                ServiceStatus.UNHEALTHY,
                NOW,
                10000.0,
                "timeout of 10000ms exceeded",
            )
        )
    )


@given(parsers.parse('the metric "{metric}" for "{service}" is {value:g}'))
def step_metric(ctx: AlertScenarioContext, metric: str, service: str, value: float) -> None:
    run_async(ctx.repository.insert_metric(MetricSample(service, metric, value, NOW)))


# === When ===


def _evaluate(ctx: AlertScenarioContext) -> None:
    assert ctx.engine is not None
    created = run_async(ctx.engine.evaluate_alerts())
    if created:
        ctx.alert = created[-1]


@given("the alert rules are evaluated")
@when("the alert rules are evaluated")
def step_evaluate(ctx: AlertScenarioContext) -> None:
    _evaluate(ctx)


@when("the alert rules are evaluated twice")
def step_evaluate_twice(ctx: AlertScenarioContext) -> None:
    _evaluate(ctx)
    _evaluate(ctx)


@when(parsers.parse('the alert is acknowledged by "{actor}"'))
def step_acknowledge(ctx: AlertScenarioContext, actor: str) -> None:
    assert ctx.engine is not None and ctx.alert is not None
    ctx.alert = run_async(ctx.engine.acknowledge_alert(ctx.alert.id, actor))


@given(parsers.parse('the alert is resolved by "{actor}"'))
@when(parsers.parse('the alert is resolved by "{actor}"'))
def step_resolve(ctx: AlertScenarioContext, actor: str) -> None:
    assert ctx.engine is not None and ctx.alert is not None
    ctx.alert = run_async(ctx.engine.resolve_alert(ctx.alert.id, actor))


# === Then ===


@then(
    parsers.parse(
        'exactly {count:d} active alert of type "{alert_type}" exists for "{service}"'
    )
)
def step_active_count(
    ctx: AlertScenarioContext, count: int, alert_type: str, service: str
) -> None:
    alerts = run_async(
        ctx.repository.query_alerts(
            AlertQuery(service_name=service, alert_type=alert_type, status=AlertStatus.ACTIVE)
        )
    )
    assert len(alerts) == count


@then(parsers.parse('the alert severity is "{severity}"'))
def step_severity(ctx: AlertScenarioContext, severity: str) -> None:
    assert ctx.alert is not None
    assert ctx.alert.severity == AlertSeverity.parse(severity)


@then(parsers.parse('the alert status is "{status}"'))
def step_status(ctx: AlertScenarioContext, status: str) -> None:
    assert ctx.alert is not None
    assert ctx.alert.status == AlertStatus.parse(status)


@then(parsers.re(r'channel "(?P<name>[^"]+)" received (?P<count>\d+) notifications?'))
def step_received(ctx: AlertScenarioContext, name: str, count: str) -> None:
    assert len(ctx.sinks[name].inbox) == int(count)


@then("acknowledging the alert again is rejected")
def step_reacknowledge(ctx: AlertScenarioContext) -> None:
    assert ctx.engine is not None and ctx.alert is not None
    with pytest.raises(InvalidStateError):
        run_async(ctx.engine.acknowledge_alert(ctx.alert.id, "someone-else"))
