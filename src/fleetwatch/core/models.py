"""Core domain models for fleet monitoring data."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from fleetwatch.core.errors import ValidationError


class _ParsableEnum(str, Enum):
    """String enum that parses case-insensitively and rejects unknown values."""

    @classmethod
    def parse(cls, value: "str | _ParsableEnum") -> Any:
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            try:
                return cls(value.upper())
            except ValueError:
                pass
        choices = ", ".join(member.value for member in cls)
        raise ValidationError(f"Unknown {cls.__name__} {value!r} (expected one of {choices})")


class MetricType(_ParsableEnum):
    COUNTER = "COUNTER"
    GAUGE = "GAUGE"
    HISTOGRAM = "HISTOGRAM"
    SUMMARY = "SUMMARY"


class ServiceStatus(_ParsableEnum):
    HEALTHY = "HEALTHY"
    UNHEALTHY = "UNHEALTHY"
    DEGRADED = "DEGRADED"
    UNKNOWN = "UNKNOWN"
    MAINTENANCE = "MAINTENANCE"


class AlertSeverity(_ParsableEnum):
    """Alert severity with an explicit rank for ordering and gating."""

    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]


_SEVERITY_RANK = {
    AlertSeverity.LOW: 0,
    AlertSeverity.MEDIUM: 1,
    AlertSeverity.HIGH: 2,
    AlertSeverity.CRITICAL: 3,
}


class AlertStatus(_ParsableEnum):
    ACTIVE = "ACTIVE"
    ACKNOWLEDGED = "ACKNOWLEDGED"
    RESOLVED = "RESOLVED"
    SUPPRESSED = "SUPPRESSED"


@dataclass(frozen=True)
class MetricSample:
    """A single system or custom metric measurement.

    Attributes:
        service_name: Service the measurement belongs to.
        metric_name: Metric name (e.g., cpu.usage).
        value: The metric value.
        timestamp: Unix timestamp in seconds.
        metric_type: Counter, gauge, histogram or summary.
        labels: Key-value pairs for metric dimensions.
    """

    service_name: str
    metric_name: str
    value: float
    timestamp: float
    metric_type: MetricType = MetricType.GAUGE
    labels: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class PerformanceSample:
    """Timing of one handled request.

    Attributes:
        service_name: Service that handled the request.
        endpoint: Request path.
        method: HTTP method.
        response_time_ms: Handling time in milliseconds.
        status_code: HTTP status code returned.
        timestamp: Unix timestamp in seconds.
        request_size: Request body size in bytes, if known.
        response_size: Response body size in bytes, if known.
    """

    service_name: str
    endpoint: str
    method: str
    response_time_ms: float
    status_code: int
    timestamp: float
    request_size: int | None = None
    response_size: int | None = None


@dataclass(frozen=True)
class HealthSnapshot:
    """Outcome of one health probe execution."""

    service_name: str
    service_url: str
    status: ServiceStatus
    checked_at: float
    response_time_ms: float | None = None
    error_message: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class Alert:
    """A persisted alert.

    Instances are immutable; lifecycle transitions produce replacements via
    ``dataclasses.replace`` and write them back through the repository.
    """

    id: str
    service_name: str
    alert_type: str
    severity: AlertSeverity
    status: AlertStatus
    title: str
    description: str
    created_at: float
    value: float | None = None
    threshold: float | None = None
    labels: dict[str, str] = field(default_factory=dict)
    acknowledged_at: float | None = None
    acknowledged_by: str | None = None
    resolved_at: float | None = None

    @property
    def dedup_key(self) -> tuple[str, str]:
        return (self.service_name, self.alert_type)


@dataclass(frozen=True)
class AlertDraft:
    """Caller-supplied data for a new alert (status and timestamps are assigned)."""

    service_name: str
    alert_type: str
    severity: AlertSeverity
    title: str
    description: str = ""
    value: float | None = None
    threshold: float | None = None
    labels: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class ServiceTarget:
    """A registered service to probe."""

    name: str
    url: str


# --- Query filters ---


@dataclass(frozen=True)
class MetricQuery:
    service_name: str | None = None
    metric_name: str | None = None
    start: float | None = None
    end: float | None = None
    limit: int | None = None
    newest_first: bool = False


@dataclass(frozen=True)
class PerformanceQuery:
    service_name: str | None = None
    endpoint: str | None = None
    method: str | None = None
    start: float | None = None
    end: float | None = None
    limit: int | None = None


@dataclass(frozen=True)
class HealthQuery:
    service_name: str | None = None
    status: ServiceStatus | None = None
    start: float | None = None
    end: float | None = None


@dataclass(frozen=True)
class AlertQuery:
    service_name: str | None = None
    alert_type: str | None = None
    status: AlertStatus | None = None
    severity: AlertSeverity | None = None
    start: float | None = None
    end: float | None = None


# --- Aggregation results ---


@dataclass(frozen=True)
class MetricAggregate:
    count: int = 0
    average: float = 0.0
    minimum: float = 0.0
    maximum: float = 0.0
    p50: float = 0.0
    p90: float = 0.0
    p95: float = 0.0
    p99: float = 0.0


@dataclass(frozen=True)
class EndpointStats:
    endpoint: str
    count: int
    average_response_time: float


@dataclass(frozen=True)
class PerformanceSummary:
    service_name: str
    start: float
    end: float
    total_requests: int = 0
    average_response_time: float = 0.0
    min_response_time: float = 0.0
    max_response_time: float = 0.0
    percentiles: dict[int, float] = field(default_factory=dict)
    error_rate: float = 0.0
    throughput: float = 0.0
    status_codes: dict[int, int] = field(default_factory=dict)
    top_endpoints: list[EndpointStats] = field(default_factory=list)


@dataclass(frozen=True)
class EndpointLatency:
    endpoint: str
    method: str
    average_response_time: float
    count: int


@dataclass(frozen=True)
class EndpointErrorRate:
    endpoint: str
    method: str
    error_rate: float
    total_requests: int
    error_requests: int


@dataclass(frozen=True)
class MetricsSummary:
    service_name: str
    total_metrics: int
    metric_names: list[str]
    averages: dict[str, float]


@dataclass(frozen=True)
class HealthSummary:
    service_name: str
    total_checks: int
    healthy_checks: int
    unhealthy_checks: int
    degraded_checks: int
    average_response_time: float
    uptime: float
    last_checked: float | None


@dataclass(frozen=True)
class AlertSummary:
    total: int
    by_status: dict[AlertStatus, int]
    by_severity: dict[AlertSeverity, int]

    @property
    def active(self) -> int:
        return self.by_status[AlertStatus.ACTIVE]

    @property
    def critical(self) -> int:
        return self.by_severity[AlertSeverity.CRITICAL]


@dataclass(frozen=True)
class AlertTrend:
    period: str
    severity: AlertSeverity
    count: int


# --- Notification results ---


@dataclass(frozen=True)
class ChannelResult:
    channel: str
    success: bool
    error: str | None = None


@dataclass(frozen=True)
class DispatchReport:
    """Per-channel outcome of one alert dispatch."""

    alert_id: str
    results: list[ChannelResult] = field(default_factory=list)

    @property
    def succeeded(self) -> list[str]:
        return [r.channel for r in self.results if r.success]

    @property
    def failed(self) -> list[str]:
        return [r.channel for r in self.results if not r.success]
