"""Composition root: one instance of every component, owned explicitly.

``MonitoringEngine.from_settings`` builds the default wiring (SQLite
repository, httpx probe client, configured notification sinks); the
constructor accepts pre-built components so any of them can be replaced.
"""

import time
from collections.abc import Callable, Sequence
from types import TracebackType
from typing import Any, Protocol

from fleetwatch.adapters.http import HttpxProbeClient
from fleetwatch.adapters.notifications import EmailSink, PagerDutySink, SlackWebhookSink
from fleetwatch.adapters.storage.sqlite import SQLiteRepository
from fleetwatch.config import Settings
from fleetwatch.core.aggregation import AggregationQueries
from fleetwatch.core.errors import ValidationError
from fleetwatch.core.logs import get_logger
from fleetwatch.core.models import (
    Alert,
    AlertDraft,
    AlertStatus,
    AlertSummary,
    AlertTrend,
    ChannelResult,
    EndpointErrorRate,
    EndpointLatency,
    HealthSnapshot,
    HealthSummary,
    MetricAggregate,
    MetricSample,
    MetricsSummary,
    MetricType,
    PerformanceSample,
    PerformanceSummary,
    ServiceStatus,
    ServiceTarget,
)
from fleetwatch.core.ports import ProbeClientPort, RepositoryPort
from fleetwatch.services.buffer import MetricBuffer
from fleetwatch.services.collector import SystemMetricsCollector
from fleetwatch.services.evaluator import AlertEvaluator, AlertThresholds, MetricNames
from fleetwatch.services.health import HealthProbe
from fleetwatch.services.lifecycle import AlertLifecycle
from fleetwatch.services.notifications import NotificationRouter
from fleetwatch.services.scheduler import PeriodicTask

logger = get_logger(__name__)

_DAY_SECONDS = 24 * 60 * 60


class _Closable(Protocol):
    async def aclose(self) -> None: ...


def build_router(settings: Settings) -> NotificationRouter:
    """Register a sink for every channel whose credentials are configured."""
    router = NotificationRouter(
        timeout=settings.notification_timeout, source_name=settings.service_name
    )
    email = settings.email
    if email.smtp_host and email.recipients:
        router.register(
            "email",
            EmailSink(
                smtp_host=email.smtp_host,
                smtp_port=email.smtp_port,
                smtp_user=email.smtp_user,
                smtp_password=email.smtp_password,
                from_address=email.from_address,
                recipients=email.recipients,
                use_tls=email.use_tls,
                source_name=settings.service_name,
                timeout=settings.notification_timeout,
            ),
            email.min_severity,
            email.enabled,
        )
    slack = settings.slack
    if slack.webhook_url:
        router.register(
            "slack",
            SlackWebhookSink(
                slack.webhook_url, slack.channel, timeout=settings.notification_timeout
            ),
            slack.min_severity,
            slack.enabled,
        )
    pagerduty = settings.pagerduty
    if pagerduty.integration_key:
        router.register(
            "pagerduty",
            PagerDutySink(
                pagerduty.integration_key,
                pagerduty.events_url,
                timeout=settings.notification_timeout,
            ),
            pagerduty.min_severity,
            pagerduty.enabled,
        )
    return router


class MonitoringEngine:
    """Owns the buffer, probe, evaluator, lifecycle, router and collector.

    ``start()`` launches every periodic task; ``stop()`` halts them and
    performs a final buffer flush. ``aclose()`` additionally releases the
    HTTP clients and database connection the engine created.
    """

    def __init__(
        self,
        repository: RepositoryPort,
        probe_client: ProbeClientPort,
        router: NotificationRouter,
        service_name: str = "fleetwatch",
        services: Sequence[ServiceTarget] = (),
        buffer_capacity: int = 100,
        flush_interval: float = 30.0,
        health_check_interval: float = 60.0,
        probe_timeout: float = 10.0,
        alert_check_interval: float = 60.0,
        evaluation_window: float = 300.0,
        thresholds: AlertThresholds = AlertThresholds(),
        metric_names: MetricNames = MetricNames(),
        collect_system_metrics: bool = False,
        metrics_collection_interval: float = 30.0,
        retention_days: int = 30,
        cleanup_interval: float = float(_DAY_SECONDS),
        repository_timeout: float | None = None,
        clock: Callable[[], float] = time.time,
        owned: Sequence[_Closable] = (),
    ) -> None:
        self.service_name = service_name
        self.retention_days = retention_days
        self._repository = repository
        self._clock = clock
        self._owned = list(owned)

        self.router = router
        self.queries = AggregationQueries(repository, clock)
        self.buffer = MetricBuffer(
            repository,
            capacity=buffer_capacity,
            flush_interval=flush_interval,
            write_timeout=repository_timeout,
            clock=clock,
        )
        self.health = HealthProbe(
            repository,
            probe_client,
            services,
            interval=health_check_interval,
            timeout=probe_timeout,
            clock=clock,
            write_timeout=repository_timeout,
        )
        self.lifecycle = AlertLifecycle(
            repository, router, clock, write_timeout=repository_timeout
        )
        self.evaluator = AlertEvaluator(
            repository,
            self.lifecycle,
            service_name,
            thresholds=thresholds,
            metric_names=metric_names,
            interval=alert_check_interval,
            window=evaluation_window,
            clock=clock,
        )
        self.collector: SystemMetricsCollector | None = None
        if collect_system_metrics:
            self.collector = SystemMetricsCollector(
                self.buffer,
                service_name,
                metric_names=metric_names,
                interval=metrics_collection_interval,
                clock=clock,
            )
        self._cleanup_task = PeriodicTask("retention-cleanup", cleanup_interval, self.cleanup)

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        repository: RepositoryPort | None = None,
        probe_client: ProbeClientPort | None = None,
        router: NotificationRouter | None = None,
        clock: Callable[[], float] = time.time,
    ) -> "MonitoringEngine":
        owned: list[_Closable] = []
        if repository is None:
            sqlite = SQLiteRepository(settings.database_path, settings.repository_timeout)
            owned.append(sqlite)
            repository = sqlite
        if probe_client is None:
            httpx_client = HttpxProbeClient(user_agent=settings.user_agent)
            owned.append(httpx_client)
            probe_client = httpx_client
        if router is None:
            router = build_router(settings)
            owned.append(router)
        return cls(
            repository,
            probe_client,
            router,
            service_name=settings.service_name,
            services=settings.service_targets,
            buffer_capacity=settings.buffer_capacity,
            flush_interval=settings.flush_interval,
            health_check_interval=settings.health_check_interval,
            probe_timeout=settings.probe_timeout,
            alert_check_interval=settings.alert_check_interval,
            evaluation_window=settings.evaluation_window,
            thresholds=settings.thresholds.to_thresholds(),
            metric_names=settings.metric_names.to_metric_names(),
            collect_system_metrics=settings.collect_system_metrics,
            metrics_collection_interval=settings.metrics_collection_interval,
            retention_days=settings.retention_days,
            cleanup_interval=settings.cleanup_interval,
            repository_timeout=settings.repository_timeout,
            clock=clock,
            owned=owned,
        )

    # --- Lifecycle ---

    def _tasks(self) -> dict[str, PeriodicTask]:
        tasks = {
            "metric_buffer": self.buffer.flush_task,
            "health_probe": self.health.task,
            "alert_evaluator": self.evaluator.task,
            "retention_cleanup": self._cleanup_task,
        }
        if self.collector is not None:
            tasks["system_metrics"] = self.collector.task
        return tasks

    async def start(self) -> None:
        self.buffer.start()
        if self.collector is not None:
            self.collector.start()
        self.health.start()
        self.evaluator.start()
        self._cleanup_task.start()
        logger.info(
            "Monitoring engine started",
            extra={"service_name": self.service_name, "services": len(self.health.services)},
        )

    async def stop(self) -> None:
        await self._cleanup_task.stop()
        await self.evaluator.stop()
        await self.health.stop()
        if self.collector is not None:
            await self.collector.stop()
        await self.buffer.stop()
        logger.info("Monitoring engine stopped", extra={"service_name": self.service_name})

    async def aclose(self) -> None:
        await self.stop()
        for resource in self._owned:
            await resource.aclose()

    async def __aenter__(self) -> "MonitoringEngine":
        await self.start()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()

    def status(self) -> dict[str, Any]:
        return {
            "tasks": {
                name: {"running": task.is_running, "interval": task.interval}
                for name, task in self._tasks().items()
            },
            "buffer": self.buffer.sizes,
            "monitored_services": len(self.health.services),
            "channels": self.router.status(),
        }

    async def cleanup(self, retention_days: int | None = None) -> dict[str, int]:
        """Prune resolved alerts and observations older than the retention window."""
        days = self.retention_days if retention_days is None else retention_days
        if days <= 0:
            raise ValidationError(f"retention_days must be positive, got {days}")
        removed = {"alerts": await self.lifecycle.prune(days)}
        removed.update(
            await self._repository.delete_observations_before(
                self._clock() - days * _DAY_SECONDS
            )
        )
        logger.info("Retention cleanup completed", extra=removed)
        return removed

    # --- Ingestion ---

    async def record_metric(self, sample: MetricSample) -> None:
        await self.buffer.record_metric(sample)

    async def record_custom_metric(
        self,
        service_name: str,
        metric_name: str,
        value: float,
        metric_type: MetricType | str = MetricType.GAUGE,
        labels: dict[str, str] | None = None,
    ) -> MetricSample:
        return await self.buffer.record_custom_metric(
            service_name, metric_name, value, metric_type, labels
        )

    async def record_performance(self, sample: PerformanceSample) -> None:
        await self.buffer.record_performance(sample)

    # --- Health ---

    async def probe_all(self) -> list[HealthSnapshot]:
        return await self.health.probe_all()

    async def probe_one(
        self, service_name: str, service_url: str, timeout_ms: int = 10000
    ) -> HealthSnapshot:
        return await self.health.probe_one(service_name, service_url, timeout_ms)

    async def get_all_services_health(self) -> list[HealthSnapshot]:
        return await self.health.get_all_services_health()

    async def get_service_health(self, service_name: str) -> HealthSnapshot:
        return await self.health.get_service_health(service_name)

    async def get_services_by_status(
        self, status: ServiceStatus | str
    ) -> list[HealthSnapshot]:
        return await self.health.get_services_by_status(status)

    async def get_health_summary(self, service_name: str, hours: float = 24) -> HealthSummary:
        return await self.queries.health_summary(service_name, hours)

    # --- Aggregation ---

    async def get_aggregated_summary(
        self,
        service_name: str,
        start: float | None = None,
        end: float | None = None,
        endpoint: str | None = None,
    ) -> PerformanceSummary:
        return await self.queries.performance_summary(service_name, start, end, endpoint)

    async def get_slowest_endpoints(
        self,
        service_name: str,
        start: float | None = None,
        end: float | None = None,
        limit: int = 10,
    ) -> list[EndpointLatency]:
        return await self.queries.slowest_endpoints(service_name, start, end, limit)

    async def get_error_rates(
        self,
        service_name: str,
        start: float | None = None,
        end: float | None = None,
        limit: int | None = None,
    ) -> list[EndpointErrorRate]:
        return await self.queries.error_rates(service_name, start, end, limit)

    async def get_metric_aggregate(
        self,
        service_name: str,
        metric_name: str,
        start: float | None = None,
        end: float | None = None,
    ) -> MetricAggregate:
        return await self.queries.metric_aggregate(service_name, metric_name, start, end)

    async def get_metrics_summary(self, service_name: str, hours: float = 24) -> MetricsSummary:
        return await self.queries.metrics_summary(service_name, hours)

    async def get_response_time_percentiles(
        self,
        service_name: str,
        start: float | None = None,
        end: float | None = None,
        endpoint: str | None = None,
    ) -> dict[int, float]:
        return await self.queries.response_time_percentiles(service_name, start, end, endpoint)

    # --- Alerts ---

    async def evaluate_alerts(self) -> list[Alert]:
        return await self.evaluator.evaluate()

    async def create_alert(self, draft: AlertDraft) -> Alert:
        return await self.lifecycle.create(draft)

    async def acknowledge_alert(self, alert_id: str, acknowledged_by: str) -> Alert:
        return await self.lifecycle.acknowledge(alert_id, acknowledged_by)

    async def resolve_alert(self, alert_id: str, resolved_by: str | None = None) -> Alert:
        return await self.lifecycle.resolve(alert_id, resolved_by)

    async def suppress_alert(self, alert_id: str) -> Alert:
        return await self.lifecycle.suppress(alert_id)

    async def get_alert(self, alert_id: str) -> Alert:
        return await self.lifecycle.get(alert_id)

    async def get_active_alerts(self, limit: int = 100, offset: int = 0) -> list[Alert]:
        return await self.lifecycle.get_active(limit, offset)

    async def get_critical_alerts(self, limit: int = 50) -> list[Alert]:
        return await self.lifecycle.get_critical(limit)

    async def get_alerts_by_service(
        self,
        service_name: str,
        status: AlertStatus | str | None = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[Alert]:
        return await self.lifecycle.get_by_service(service_name, status, limit, offset)

    async def get_alerts_summary(self, service_name: str | None = None) -> AlertSummary:
        return await self.lifecycle.summarize(service_name)

    async def get_alert_trends(
        self,
        start: float | None = None,
        end: float | None = None,
        service_name: str | None = None,
        bucket: str = "day",
    ) -> list[AlertTrend]:
        start, end = self.queries.resolve_range(start, end)
        return await self.lifecycle.trends(start, end, service_name, bucket)

    async def send_test_notification(self, channel: str) -> ChannelResult:
        return await self.router.send_test(channel)

