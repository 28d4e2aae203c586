"""In-memory storage adapter for observations and alerts."""

from collections.abc import Sequence

from fleetwatch.core.errors import DuplicateAlertError, NotFoundError
from fleetwatch.core.models import (
    Alert,
    AlertQuery,
    AlertStatus,
    HealthQuery,
    HealthSnapshot,
    MetricQuery,
    MetricSample,
    PerformanceQuery,
    PerformanceSample,
)


def _in_range(timestamp: float, start: float | None, end: float | None) -> bool:
    if start is not None and timestamp < start:
        return False
    return end is None or timestamp <= end


class InMemoryRepository:
    """In-memory implementation of RepositoryPort.

    Stores everything in lists and dicts. Suitable for testing and
    single-process deployments where persistence is not required.
    Enforces the one-ACTIVE-alert-per-dedup-key constraint like the
    SQLite adapter does.
    """

    def __init__(self) -> None:
        self._metrics: list[MetricSample] = []
        self._performance: list[PerformanceSample] = []
        self._health: list[HealthSnapshot] = []
        self._alerts: dict[str, Alert] = {}

    # --- Observations ---

    async def insert_metric(self, sample: MetricSample) -> None:
        self._metrics.append(sample)

    async def insert_metric_batch(self, samples: Sequence[MetricSample]) -> int:
        self._metrics.extend(samples)
        return len(samples)

    async def insert_performance(self, sample: PerformanceSample) -> None:
        self._performance.append(sample)

    async def insert_performance_batch(
        self, samples: Sequence[PerformanceSample]
    ) -> int:
        self._performance.extend(samples)
        return len(samples)

    async def insert_health_snapshot(self, snapshot: HealthSnapshot) -> None:
        self._health.append(snapshot)

    async def query_metrics(self, query: MetricQuery) -> list[MetricSample]:
        rows = [
            m
            for m in self._metrics
            if (query.service_name is None or m.service_name == query.service_name)
            and (query.metric_name is None or m.metric_name == query.metric_name)
            and _in_range(m.timestamp, query.start, query.end)
        ]
        rows.sort(key=lambda m: m.timestamp, reverse=query.newest_first)
        return rows if query.limit is None else rows[: query.limit]

    async def query_performance(
        self, query: PerformanceQuery
    ) -> list[PerformanceSample]:
        rows = [
            p
            for p in self._performance
            if (query.service_name is None or p.service_name == query.service_name)
            and (query.endpoint is None or p.endpoint == query.endpoint)
            and (query.method is None or p.method == query.method)
            and _in_range(p.timestamp, query.start, query.end)
        ]
        rows.sort(key=lambda p: p.timestamp)
        return rows if query.limit is None else rows[: query.limit]

    async def query_health(self, query: HealthQuery) -> list[HealthSnapshot]:
        rows = [
            h
            for h in self._health
            if (query.service_name is None or h.service_name == query.service_name)
            and (query.status is None or h.status == query.status)
            and _in_range(h.checked_at, query.start, query.end)
        ]
        return sorted(rows, key=lambda h: h.checked_at, reverse=True)

    async def latest_health_by_service(self) -> list[HealthSnapshot]:
        latest: dict[str, HealthSnapshot] = {}
        for snapshot in self._health:
            current = latest.get(snapshot.service_name)
            if current is None or snapshot.checked_at >= current.checked_at:
                latest[snapshot.service_name] = snapshot
        return sorted(latest.values(), key=lambda h: h.service_name)

    async def delete_observations_before(self, cutoff: float) -> dict[str, int]:
        before = len(self._metrics), len(self._performance), len(self._health)
        self._metrics = [m for m in self._metrics if m.timestamp >= cutoff]
        self._performance = [p for p in self._performance if p.timestamp >= cutoff]
        self._health = [h for h in self._health if h.checked_at >= cutoff]
        return {
            "metrics": before[0] - len(self._metrics),
            "performance": before[1] - len(self._performance),
            "health": before[2] - len(self._health),
        }

    # --- Alerts ---

    async def find_alert(
        self, service_name: str, alert_type: str, status: AlertStatus
    ) -> Alert | None:
        matches = await self.query_alerts(
            AlertQuery(service_name=service_name, alert_type=alert_type, status=status)
        )
        return matches[0] if matches else None

    async def get_alert(self, alert_id: str) -> Alert | None:
        return self._alerts.get(alert_id)

    async def query_alerts(self, query: AlertQuery) -> list[Alert]:
        rows = [
            a
            for a in self._alerts.values()
            if (query.service_name is None or a.service_name == query.service_name)
            and (query.alert_type is None or a.alert_type == query.alert_type)
            and (query.status is None or a.status == query.status)
            and (query.severity is None or a.severity == query.severity)
            and _in_range(a.created_at, query.start, query.end)
        ]
        return sorted(rows, key=lambda a: a.created_at, reverse=True)

    async def create_alert(self, alert: Alert) -> Alert:
        if alert.status == AlertStatus.ACTIVE and any(
            a.status == AlertStatus.ACTIVE and a.dedup_key == alert.dedup_key
            for a in self._alerts.values()
        ):
            raise DuplicateAlertError(
                f"ACTIVE alert already exists for {alert.service_name}/{alert.alert_type}"
            )
        self._alerts[alert.id] = alert
        return alert

    async def update_alert(self, alert: Alert) -> Alert:
        if alert.id not in self._alerts:
            raise NotFoundError(f"Alert {alert.id} not found")
        self._alerts[alert.id] = alert
        return alert

    async def delete_alerts_older_than(
        self, cutoff: float, status: AlertStatus
    ) -> int:
        doomed = [
            alert_id
            for alert_id, a in self._alerts.items()
            if a.status == status
            and a.resolved_at is not None
            and a.resolved_at < cutoff
        ]
        for alert_id in doomed:
            del self._alerts[alert_id]
        return len(doomed)
