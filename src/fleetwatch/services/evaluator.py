"""Fixed-threshold alert rules evaluated on a periodic tick."""

import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime, timezone

from fleetwatch.core.aggregation import AggregationQueries
from fleetwatch.core.errors import DuplicateAlertError
from fleetwatch.core.logs import get_logger, log_exception
from fleetwatch.core.models import (
    Alert,
    AlertDraft,
    AlertSeverity,
    AlertStatus,
    HealthSnapshot,
    ServiceStatus,
)
from fleetwatch.core.ports import RepositoryPort
from fleetwatch.services.lifecycle import AlertLifecycle
from fleetwatch.services.scheduler import PeriodicTask

logger = get_logger(__name__)

DEFAULT_EVALUATION_INTERVAL = 60.0
DEFAULT_EVALUATION_WINDOW = 5 * 60.0


@dataclass(frozen=True)
class AlertThresholds:
    """Rule thresholds. ``error_rate`` is a percentage."""

    cpu: float = 80.0
    memory: float = 85.0
    response_time_ms: float = 5000.0
    error_rate: float = 10.0


@dataclass(frozen=True)
class MetricNames:
    """Metric names the system rules read; must match what the collector writes."""

    cpu: str = "cpu.usage"
    memory: str = "memory.usage.percentage"
    response_time: str = "response_time"


def _iso(timestamp: float) -> str:
    return datetime.fromtimestamp(timestamp, tz=timezone.utc).isoformat()


class AlertEvaluator:
    """Runs every rule once per tick and raises at most one ACTIVE alert per key.

    Rules run in order (service health, system metrics, request performance)
    and each is isolated: a rule that fails is logged and the remaining rules
    still run. Before creating an alert the evaluator looks for an ACTIVE
    alert with the same (service, alert type); if the repository still
    rejects the insert as a duplicate the detection is dropped silently.
    """

    def __init__(
        self,
        repository: RepositoryPort,
        lifecycle: AlertLifecycle,
        service_name: str,
        thresholds: AlertThresholds = AlertThresholds(),
        metric_names: MetricNames = MetricNames(),
        interval: float = DEFAULT_EVALUATION_INTERVAL,
        window: float = DEFAULT_EVALUATION_WINDOW,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._repository = repository
        self._lifecycle = lifecycle
        self.service_name = service_name
        self.thresholds = thresholds
        self.metric_names = metric_names
        self.window = window
        self._clock = clock
        self._queries = AggregationQueries(repository, clock)
        self._task = PeriodicTask("alert-evaluator", interval, self.evaluate, run_immediately=True)

    @property
    def task(self) -> PeriodicTask:
        return self._task

    def start(self) -> None:
        self._task.start()

    async def stop(self) -> None:
        await self._task.stop()

    async def evaluate(self) -> list[Alert]:
        """Run one tick. Returns the alerts created during it."""
        rules: list[tuple[str, Callable[[], Awaitable[list[Alert]]]]] = [
            ("service_health", self._service_health_rule),
            ("cpu", self._cpu_rule),
            ("memory", self._memory_rule),
            ("response_time", self._response_time_rule),
            ("error_rate", self._error_rate_rule),
            ("performance_response_time", self._performance_latency_rule),
        ]
        created: list[Alert] = []
        for name, rule in rules:
            try:
                created.extend(await rule())
            except Exception:
                log_exception("Alert rule evaluation failed", logger, rule=name)
        logger.debug("Alert evaluation completed", extra={"alerts_created": len(created)})
        return created

    async def _raise_once(self, draft: AlertDraft) -> list[Alert]:
        existing = await self._repository.find_alert(
            draft.service_name, draft.alert_type, AlertStatus.ACTIVE
        )
        if existing is not None:
            return []
        try:
            return [await self._lifecycle.create(draft)]
        except DuplicateAlertError:
            logger.debug(
                "Duplicate alert suppressed",
                extra={"service_name": draft.service_name, "alert_type": draft.alert_type},
            )
            return []

    # --- Service health ---

    async def _service_health_rule(self) -> list[Alert]:
        created: list[Alert] = []
        for snapshot in await self._repository.latest_health_by_service():
            if snapshot.status == ServiceStatus.UNHEALTHY:
                draft = self._unhealthy_draft(snapshot)
            elif snapshot.status == ServiceStatus.DEGRADED:
                draft = self._degraded_draft(snapshot)
            else:
                continue
            try:
                created.extend(await self._raise_once(draft))
            except Exception:
                log_exception(
                    "Service health condition failed",
                    logger,
                    service_name=snapshot.service_name,
                    alert_type=draft.alert_type,
                )
        return created

    def _unhealthy_draft(self, snapshot: HealthSnapshot) -> AlertDraft:
        name = snapshot.service_name
        return AlertDraft(
            service_name=name,
            alert_type="service_unhealthy",
            severity=AlertSeverity.CRITICAL,
            title=f"Service {name} is unhealthy",
            description=(
                f"Service {name} is currently unhealthy. "
                f"Last error: {snapshot.error_message or 'Unknown error'}"
            ),
            value=snapshot.response_time_ms or 0.0,
            threshold=self.thresholds.response_time_ms,
            labels={
                "service_url": snapshot.service_url,
                "last_checked": _iso(snapshot.checked_at),
                "error_message": snapshot.error_message or "Unknown error",
            },
        )

    def _degraded_draft(self, snapshot: HealthSnapshot) -> AlertDraft:
        name = snapshot.service_name
        return AlertDraft(
            service_name=name,
            alert_type="service_degraded",
            severity=AlertSeverity.HIGH,
            title=f"Service {name} is degraded",
            description=f"Service {name} is currently degraded but still responding.",
            value=snapshot.response_time_ms or 0.0,
            threshold=self.thresholds.response_time_ms,
            labels={
                "service_url": snapshot.service_url,
                "last_checked": _iso(snapshot.checked_at),
            },
        )

    # --- System metrics ---

    def _metric_draft(
        self,
        alert_type: str,
        title: str,
        description: str,
        value: float,
        threshold: float,
        severity: AlertSeverity,
    ) -> AlertDraft:
        return AlertDraft(
            service_name=self.service_name,
            alert_type=alert_type,
            severity=severity,
            title=title,
            description=description,
            value=value,
            threshold=threshold,
            labels={
                "metric_value": str(value),
                "threshold": str(threshold),
                "timestamp": _iso(self._clock()),
            },
        )

    async def _cpu_rule(self) -> list[Alert]:
        latest = await self._queries.latest_metric(self.service_name, self.metric_names.cpu)
        limit = self.thresholds.cpu
        if latest is None or latest.value <= limit:
            return []
        return await self._raise_once(
            self._metric_draft(
                "cpu_high",
                "CPU usage is high",
                f"CPU usage is {latest.value:.2f}%, which exceeds the threshold of {limit}%",
                latest.value,
                limit,
                AlertSeverity.HIGH,
            )
        )

    async def _memory_rule(self) -> list[Alert]:
        latest = await self._queries.latest_metric(self.service_name, self.metric_names.memory)
        limit = self.thresholds.memory
        if latest is None or latest.value <= limit:
            return []
        return await self._raise_once(
            self._metric_draft(
                "memory_high",
                "Memory usage is high",
                f"Memory usage is {latest.value:.2f}%, which exceeds the threshold of {limit}%",
                latest.value,
                limit,
                AlertSeverity.HIGH,
            )
        )

    async def _response_time_rule(self) -> list[Alert]:
        end = self._clock()
        aggregate = await self._queries.metric_aggregate(
            self.service_name, self.metric_names.response_time, end - self.window, end
        )
        limit = self.thresholds.response_time_ms
        if aggregate.count == 0 or aggregate.average <= limit:
            return []
        return await self._raise_once(
            self._metric_draft(
                "response_time_high",
                "Response time is high",
                f"Average response time is {aggregate.average:.2f}ms, "
                f"which exceeds the threshold of {limit}ms",
                aggregate.average,
                limit,
                AlertSeverity.MEDIUM,
            )
        )

    # --- Request performance ---

    async def _error_rate_rule(self) -> list[Alert]:
        end = self._clock()
        summary = await self._queries.performance_summary(
            self.service_name, end - self.window, end
        )
        limit = self.thresholds.error_rate
        if summary.error_rate <= limit:
            return []
        return await self._raise_once(
            self._metric_draft(
                "error_rate_high",
                "Error rate is high",
                f"Error rate is {summary.error_rate:.2f}%, which exceeds the threshold of {limit}%",
                summary.error_rate,
                limit,
                AlertSeverity.HIGH,
            )
        )

    async def _performance_latency_rule(self) -> list[Alert]:
        end = self._clock()
        summary = await self._queries.performance_summary(
            self.service_name, end - self.window, end
        )
        limit = self.thresholds.response_time_ms
        if summary.average_response_time <= limit:
            return []
        return await self._raise_once(
            self._metric_draft(
                "performance_response_time_high",
                "Performance response time is high",
                f"Average response time is {summary.average_response_time:.2f}ms, "
                f"which exceeds the threshold of {limit}ms",
                summary.average_response_time,
                limit,
                AlertSeverity.MEDIUM,
            )
        )
