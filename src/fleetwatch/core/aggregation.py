"""Read-side summaries over persisted metrics, performance and health records.

The module-level functions are pure; ``AggregationQueries`` binds them to a
repository and a clock. Every query defaults to a trailing 24 hour window
when no explicit range is given, and every statistic over an empty input is 0.
"""

import math
import time
from collections import Counter, defaultdict
from collections.abc import Callable, Iterable, Sequence

from fleetwatch.core.errors import ValidationError
from fleetwatch.core.models import (
    EndpointErrorRate,
    EndpointLatency,
    EndpointStats,
    HealthQuery,
    HealthSummary,
    MetricAggregate,
    MetricQuery,
    MetricSample,
    MetricsSummary,
    PerformanceQuery,
    PerformanceSample,
    PerformanceSummary,
    ServiceStatus,
)
from fleetwatch.core.ports import RepositoryPort

DEFAULT_WINDOW_SECONDS = 24 * 60 * 60
DEFAULT_PERCENTILES = (50, 90, 95, 99)
MAX_LIMIT = 1000
TOP_ENDPOINTS = 10


def percentile(values: Sequence[float], p: float) -> float:
    """Nearest-rank percentile.

    Sorts ascending and picks index ``ceil(p/100 * n) - 1`` clamped to
    ``[0, n-1]``. Returns 0.0 for empty input.
    """
    if not values:
        return 0.0
    ordered = sorted(values)
    index = math.ceil(p / 100 * len(ordered)) - 1
    index = min(max(index, 0), len(ordered) - 1)
    return ordered[index]


def summarize(values: Sequence[float]) -> MetricAggregate:
    """Count, mean, min, max and standard percentiles of ``values``."""
    if not values:
        return MetricAggregate()
    return MetricAggregate(
        count=len(values),
        average=sum(values) / len(values),
        minimum=min(values),
        maximum=max(values),
        p50=percentile(values, 50),
        p90=percentile(values, 90),
        p95=percentile(values, 95),
        p99=percentile(values, 99),
    )


def error_rate(status_codes: Iterable[int]) -> float:
    """Percentage of status codes that are >= 400. 0.0 for empty input."""
    codes = list(status_codes)
    if not codes:
        return 0.0
    errors = sum(1 for code in codes if code >= 400)
    return errors / len(codes) * 100


def summarize_performance(
    service_name: str,
    samples: Sequence[PerformanceSample],
    start: float,
    end: float,
    percentiles: Sequence[int] = DEFAULT_PERCENTILES,
) -> PerformanceSummary:
    """Build a performance summary for samples observed in ``[start, end]``."""
    latencies = [s.response_time_ms for s in samples]
    duration = end - start
    status_codes = Counter(s.status_code for s in samples)

    per_endpoint: dict[str, list[float]] = defaultdict(list)
    for sample in samples:
        per_endpoint[sample.endpoint].append(sample.response_time_ms)
    top_endpoints = sorted(
        (
            EndpointStats(
                endpoint=endpoint,
                count=len(times),
                average_response_time=sum(times) / len(times),
            )
            for endpoint, times in per_endpoint.items()
        ),
        key=lambda stats: stats.count,
        reverse=True,
    )[:TOP_ENDPOINTS]

    return PerformanceSummary(
        service_name=service_name,
        start=start,
        end=end,
        total_requests=len(samples),
        average_response_time=sum(latencies) / len(latencies) if latencies else 0.0,
        min_response_time=min(latencies, default=0.0),
        max_response_time=max(latencies, default=0.0),
        percentiles={p: percentile(latencies, p) for p in percentiles},
        error_rate=error_rate(status_codes.elements()),
        throughput=len(samples) / duration if duration > 0 else 0.0,
        status_codes=dict(status_codes),
        top_endpoints=top_endpoints,
    )


def rank_slowest(
    samples: Iterable[PerformanceSample], limit: int
) -> list[EndpointLatency]:
    """Group by (endpoint, method) and order by mean latency descending."""
    groups: dict[tuple[str, str], list[float]] = defaultdict(list)
    for sample in samples:
        groups[(sample.endpoint, sample.method)].append(sample.response_time_ms)
    ranked = sorted(
        (
            EndpointLatency(
                endpoint=endpoint,
                method=method,
                average_response_time=sum(times) / len(times),
                count=len(times),
            )
            for (endpoint, method), times in groups.items()
        ),
        key=lambda row: row.average_response_time,
        reverse=True,
    )
    return ranked[:limit]


def rank_error_rates(
    samples: Iterable[PerformanceSample], limit: int | None = None
) -> list[EndpointErrorRate]:
    """Group by (endpoint, method) and order by error rate descending."""
    groups: dict[tuple[str, str], list[int]] = defaultdict(list)
    for sample in samples:
        groups[(sample.endpoint, sample.method)].append(sample.status_code)
    ranked = sorted(
        (
            EndpointErrorRate(
                endpoint=endpoint,
                method=method,
                error_rate=error_rate(codes),
                total_requests=len(codes),
                error_requests=sum(1 for code in codes if code >= 400),
            )
            for (endpoint, method), codes in groups.items()
        ),
        key=lambda row: row.error_rate,
        reverse=True,
    )
    return ranked if limit is None else ranked[:limit]


def validate_limit(limit: int, maximum: int = MAX_LIMIT) -> int:
    if isinstance(limit, bool) or not isinstance(limit, int):
        raise ValidationError(f"limit must be an integer, got {limit!r}")
    if not 1 <= limit <= maximum:
        raise ValidationError(f"limit must be between 1 and {maximum}, got {limit}")
    return limit


class AggregationQueries:
    """Summaries computed from repository reads. Holds no state of its own."""

    def __init__(
        self,
        repository: RepositoryPort,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._repository = repository
        self._clock = clock

    def resolve_range(
        self,
        start: float | None = None,
        end: float | None = None,
        default_window: float = DEFAULT_WINDOW_SECONDS,
    ) -> tuple[float, float]:
        """Fill in a missing bound and reject inverted ranges.

        A missing ``end`` is now; a missing ``start`` is ``end - default_window``.
        """
        resolved_end = self._clock() if end is None else end
        resolved_start = resolved_end - default_window if start is None else start
        if resolved_start > resolved_end:
            raise ValidationError(
                f"start ({resolved_start}) must not be after end ({resolved_end})"
            )
        return resolved_start, resolved_end

    async def latest_metric(
        self, service_name: str, metric_name: str
    ) -> MetricSample | None:
        rows = await self._repository.query_metrics(
            MetricQuery(
                service_name=service_name,
                metric_name=metric_name,
                limit=1,
                newest_first=True,
            )
        )
        return rows[0] if rows else None

    async def metric_aggregate(
        self,
        service_name: str,
        metric_name: str,
        start: float | None = None,
        end: float | None = None,
    ) -> MetricAggregate:
        """Average, min, max and percentiles of one metric over a time range."""
        start, end = self.resolve_range(start, end)
        samples = await self._repository.query_metrics(
            MetricQuery(
                service_name=service_name,
                metric_name=metric_name,
                start=start,
                end=end,
            )
        )
        return summarize([s.value for s in samples])

    async def metrics_summary(
        self, service_name: str, hours: float = 24
    ) -> MetricsSummary:
        if hours <= 0:
            raise ValidationError(f"hours must be positive, got {hours}")
        start, end = self.resolve_range(default_window=hours * 3600)
        samples = await self._repository.query_metrics(
            MetricQuery(service_name=service_name, start=start, end=end)
        )
        by_name: dict[str, list[float]] = defaultdict(list)
        for sample in samples:
            by_name[sample.metric_name].append(sample.value)
        return MetricsSummary(
            service_name=service_name,
            total_metrics=len(samples),
            metric_names=sorted(by_name),
            averages={name: sum(v) / len(v) for name, v in by_name.items()},
        )

    async def _performance_samples(
        self,
        service_name: str,
        start: float,
        end: float,
        endpoint: str | None = None,
    ) -> list[PerformanceSample]:
        return await self._repository.query_performance(
            PerformanceQuery(
                service_name=service_name, endpoint=endpoint, start=start, end=end
            )
        )

    async def performance_summary(
        self,
        service_name: str,
        start: float | None = None,
        end: float | None = None,
        endpoint: str | None = None,
    ) -> PerformanceSummary:
        """Request count, latency statistics, error rate (%) and throughput (req/s)."""
        start, end = self.resolve_range(start, end)
        samples = await self._performance_samples(service_name, start, end, endpoint)
        return summarize_performance(service_name, samples, start, end)

    async def response_time_percentiles(
        self,
        service_name: str,
        start: float | None = None,
        end: float | None = None,
        endpoint: str | None = None,
        percentiles: Sequence[int] = DEFAULT_PERCENTILES,
    ) -> dict[int, float]:
        for p in percentiles:
            if not 0 <= p <= 100:
                raise ValidationError(f"percentile must be within [0, 100], got {p}")
        start, end = self.resolve_range(start, end)
        samples = await self._performance_samples(service_name, start, end, endpoint)
        latencies = [s.response_time_ms for s in samples]
        return {p: percentile(latencies, p) for p in percentiles}

    async def slowest_endpoints(
        self,
        service_name: str,
        start: float | None = None,
        end: float | None = None,
        limit: int = 10,
    ) -> list[EndpointLatency]:
        validate_limit(limit)
        start, end = self.resolve_range(start, end)
        samples = await self._performance_samples(service_name, start, end)
        return rank_slowest(samples, limit)

    async def error_rates(
        self,
        service_name: str,
        start: float | None = None,
        end: float | None = None,
        limit: int | None = None,
    ) -> list[EndpointErrorRate]:
        if limit is not None:
            validate_limit(limit)
        start, end = self.resolve_range(start, end)
        samples = await self._performance_samples(service_name, start, end)
        return rank_error_rates(samples, limit)

    async def health_summary(
        self, service_name: str, hours: float = 24
    ) -> HealthSummary:
        """Check counts, mean probe latency and uptime % for one service."""
        if hours <= 0:
            raise ValidationError(f"hours must be positive, got {hours}")
        start, end = self.resolve_range(default_window=hours * 3600)
        snapshots = await self._repository.query_health(
            HealthQuery(service_name=service_name, start=start, end=end)
        )
        statuses = Counter(s.status for s in snapshots)
        timings = [
            s.response_time_ms for s in snapshots if s.response_time_ms is not None
        ]
        total = len(snapshots)
        return HealthSummary(
            service_name=service_name,
            total_checks=total,
            healthy_checks=statuses[ServiceStatus.HEALTHY],
            unhealthy_checks=statuses[ServiceStatus.UNHEALTHY],
            degraded_checks=statuses[ServiceStatus.DEGRADED],
            average_response_time=sum(timings) / len(timings) if timings else 0.0,
            uptime=statuses[ServiceStatus.HEALTHY] / total * 100 if total else 0.0,
            last_checked=max((s.checked_at for s in snapshots), default=None),
        )
