"""Port interfaces for the engine's external collaborators.

These protocols define the contracts that storage, HTTP and notification
adapters must implement. The core domain depends only on these interfaces,
not concrete implementations.
"""

from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable

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


@runtime_checkable
class RepositoryPort(Protocol):
    """Port for durable storage of observations and alerts.

    Adapters implementing this protocol own all persisted state.
    Examples: InMemoryRepository, SQLiteRepository.
    """

    async def insert_metric(self, sample: MetricSample) -> None:
        """Persist a single metric sample."""
        ...

    async def insert_metric_batch(self, samples: Sequence[MetricSample]) -> int:
        """Persist metric samples in one write. Returns the number written."""
        ...

    async def insert_performance(self, sample: PerformanceSample) -> None:
        """Persist a single performance sample."""
        ...

    async def insert_performance_batch(
        self, samples: Sequence[PerformanceSample]
    ) -> int:
        """Persist performance samples in one write. Returns the number written."""
        ...

    async def insert_health_snapshot(self, snapshot: HealthSnapshot) -> None:
        """Persist one health probe outcome."""
        ...

    async def query_metrics(self, query: MetricQuery) -> list[MetricSample]:
        """Return metric samples matching the filter.

        Ordered by timestamp ascending, or descending when
        ``query.newest_first`` is set.
        """
        ...

    async def query_performance(
        self, query: PerformanceQuery
    ) -> list[PerformanceSample]:
        """Return performance samples matching the filter, oldest first."""
        ...

    async def query_health(self, query: HealthQuery) -> list[HealthSnapshot]:
        """Return health snapshots matching the filter, newest first."""
        ...

    async def latest_health_by_service(self) -> list[HealthSnapshot]:
        """Return the most recent snapshot (by checked_at) of every service."""
        ...

    async def find_alert(
        self, service_name: str, alert_type: str, status: AlertStatus
    ) -> Alert | None:
        """Return the newest alert for the dedup key in the given status."""
        ...

    async def get_alert(self, alert_id: str) -> Alert | None:
        """Return the alert with the given id, or None."""
        ...

    async def query_alerts(self, query: AlertQuery) -> list[Alert]:
        """Return alerts matching the filter, newest first."""
        ...

    async def create_alert(self, alert: Alert) -> Alert:
        """Persist a new alert.

        Raises:
            DuplicateAlertError: an ACTIVE alert already exists for the
                alert's (service_name, alert_type) pair.
        """
        ...

    async def update_alert(self, alert: Alert) -> Alert:
        """Replace a stored alert by id."""
        ...

    async def delete_alerts_older_than(
        self, cutoff: float, status: AlertStatus
    ) -> int:
        """Delete alerts in ``status`` resolved before ``cutoff``. Returns count."""
        ...

    async def delete_observations_before(self, cutoff: float) -> dict[str, int]:
        """Delete metric, performance and health rows older than ``cutoff``."""
        ...


@dataclass(frozen=True)
class ProbeResponse:
    """Outcome of a probe HTTP GET that reached the server."""

    status_code: int
    body: Any = None


@runtime_checkable
class ProbeClientPort(Protocol):
    """Port for issuing health-check HTTP requests."""

    async def get(self, url: str, timeout: float) -> ProbeResponse:
        """GET ``url`` with a timeout in seconds.

        Raises:
            ProbeTimeoutError: the request exceeded ``timeout``.
            ProbeTransportError: the request failed before a response arrived.
        """
        ...


@runtime_checkable
class NotificationSinkPort(Protocol):
    """Port for one notification channel (email, chat, paging)."""

    async def send(self, alert: Alert) -> bool:
        """Deliver the alert. Returns False or raises on failure."""
        ...
