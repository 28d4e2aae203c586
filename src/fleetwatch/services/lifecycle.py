"""Alert state machine, listings, summaries, trends and retention."""

import asyncio
import time
import uuid
from collections import Counter
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from typing import TypeVar

from fleetwatch.core.aggregation import validate_limit
from fleetwatch.core.errors import (
    InvalidStateError,
    NotFoundError,
    RepositoryError,
    ValidationError,
)
from fleetwatch.core.logs import get_logger, log_exception
from fleetwatch.core.models import (
    Alert,
    AlertDraft,
    AlertQuery,
    AlertSeverity,
    AlertStatus,
    AlertSummary,
    AlertTrend,
)
from fleetwatch.core.ports import RepositoryPort
from fleetwatch.services.notifications import NotificationRouter

logger = get_logger(__name__)

T = TypeVar("T")

TREND_BUCKETS = ("hour", "day", "week")
DEFAULT_RETENTION_DAYS = 30
_DAY_SECONDS = 24 * 60 * 60

_ACKNOWLEDGEABLE = frozenset({AlertStatus.ACTIVE, AlertStatus.ACKNOWLEDGED})


def bucket_period(timestamp: float, bucket: str) -> str:
    """UTC bucket label for a timestamp.

    hour: ``YYYY-MM-DDTHH:00:00.000Z``; day: ``YYYY-MM-DD``; week: the
    ``YYYY-MM-DD`` of the Sunday starting that week.
    """
    moment = datetime.fromtimestamp(timestamp, tz=timezone.utc)
    if bucket == "hour":
        return moment.strftime("%Y-%m-%dT%H:00:00.000Z")
    if bucket == "day":
        return moment.strftime("%Y-%m-%d")
    if bucket == "week":
        # isoweekday: Monday=1 .. Sunday=7
        week_start = moment - timedelta(days=moment.isoweekday() % 7)
        return week_start.strftime("%Y-%m-%d")
    raise ValidationError(f"bucket must be one of {', '.join(TREND_BUCKETS)}, got {bucket!r}")


def sort_by_severity(alerts: list[Alert]) -> list[Alert]:
    """Highest severity first, newest first within a severity."""
    return sorted(alerts, key=lambda a: (a.severity.rank, a.created_at), reverse=True)


def _string_labels(labels: Mapping[str, object]) -> dict[str, str]:
    """Stringify label values, dropping unset ones."""
    return {key: str(value) for key, value in labels.items() if value is not None}


def _validate_offset(offset: int) -> int:
    if isinstance(offset, bool) or not isinstance(offset, int) or offset < 0:
        raise ValidationError(f"offset must be a non-negative integer, got {offset!r}")
    return offset


class AlertLifecycle:
    """Owns every alert mutation.

    ``ACTIVE -> ACKNOWLEDGED -> RESOLVED`` and ``ACTIVE -> RESOLVED``;
    ACTIVE or ACKNOWLEDGED alerts may also be moved to SUPPRESSED. A
    RESOLVED alert is never reopened.
    """

    def __init__(
        self,
        repository: RepositoryPort,
        router: NotificationRouter | None = None,
        clock: Callable[[], float] = time.time,
        id_factory: Callable[[], str] = lambda: str(uuid.uuid4()),
        write_timeout: float | None = None,
    ) -> None:
        self._repository = repository
        self._router = router
        self._clock = clock
        self._id_factory = id_factory
        self.write_timeout = write_timeout

    async def _bounded(self, write: Awaitable[T]) -> T:
        try:
            return await asyncio.wait_for(write, timeout=self.write_timeout)
        except asyncio.TimeoutError as exc:
            raise RepositoryError(
                f"Repository write timed out after {self.write_timeout}s"
            ) from exc

    async def _update(self, alert: Alert) -> Alert:
        return await self._bounded(self._repository.update_alert(alert))

    # --- Transitions ---

    async def create(self, draft: AlertDraft) -> Alert:
        """Persist a new ACTIVE alert, then notify.

        Raises:
            ValidationError: a required field is empty.
            DuplicateAlertError: an ACTIVE alert already exists for the key.
        """
        for field_name in ("service_name", "alert_type", "title"):
            if not getattr(draft, field_name):
                raise ValidationError(f"{field_name} is required")
        alert = Alert(
            id=self._id_factory(),
            service_name=draft.service_name,
            alert_type=draft.alert_type,
            severity=AlertSeverity.parse(draft.severity),
            status=AlertStatus.ACTIVE,
            title=draft.title,
            description=draft.description,
            created_at=self._clock(),
            value=draft.value,
            threshold=draft.threshold,
            labels=_string_labels(draft.labels),
        )
        await self._bounded(self._repository.create_alert(alert))
        logger.warning(
            "Alert created",
            extra={
                "alert_id": alert.id,
                "service_name": alert.service_name,
                "alert_type": alert.alert_type,
                "severity": alert.severity.value,
            },
        )
        await self._notify(alert)
        return alert

    async def acknowledge(self, alert_id: str, acknowledged_by: str) -> Alert:
        if not acknowledged_by:
            raise ValidationError("acknowledged_by is required")
        alert = await self.get(alert_id)
        if alert.status not in _ACKNOWLEDGEABLE:
            raise InvalidStateError(
                f"Alert {alert_id} is {alert.status.value} and cannot be acknowledged"
            )
        updated = await self._update(
            replace(
                alert,
                status=AlertStatus.ACKNOWLEDGED,
                acknowledged_at=self._clock(),
                acknowledged_by=acknowledged_by,
            )
        )
        logger.info(
            "Alert acknowledged",
            extra={"alert_id": alert_id, "acknowledged_by": acknowledged_by},
        )
        return updated

    async def resolve(self, alert_id: str, resolved_by: str | None = None) -> Alert:
        alert = await self.get(alert_id)
        if alert.status == AlertStatus.RESOLVED:
            raise InvalidStateError(f"Alert {alert_id} is already resolved")
        labels = dict(alert.labels)
        if resolved_by:
            labels["resolved_by"] = resolved_by
        updated = await self._update(
            replace(
                alert,
                status=AlertStatus.RESOLVED,
                resolved_at=self._clock(),
                labels=labels,
            )
        )
        logger.info(
            "Alert resolved", extra={"alert_id": alert_id, "resolved_by": resolved_by}
        )
        return updated

    async def suppress(self, alert_id: str) -> Alert:
        alert = await self.get(alert_id)
        if alert.status not in _ACKNOWLEDGEABLE:
            raise InvalidStateError(
                f"Alert {alert_id} is {alert.status.value} and cannot be suppressed"
            )
        updated = await self._update(replace(alert, status=AlertStatus.SUPPRESSED))
        logger.info("Alert suppressed", extra={"alert_id": alert_id})
        return updated

    # --- Reads ---

    async def get(self, alert_id: str) -> Alert:
        alert = await self._repository.get_alert(alert_id)
        if alert is None:
            raise NotFoundError(f"Alert {alert_id} not found")
        return alert

    async def get_active(self, limit: int = 100, offset: int = 0) -> list[Alert]:
        validate_limit(limit)
        _validate_offset(offset)
        alerts = await self._repository.query_alerts(AlertQuery(status=AlertStatus.ACTIVE))
        return sort_by_severity(alerts)[offset : offset + limit]

    async def get_critical(self, limit: int = 50) -> list[Alert]:
        validate_limit(limit)
        alerts = await self._repository.query_alerts(
            AlertQuery(status=AlertStatus.ACTIVE, severity=AlertSeverity.CRITICAL)
        )
        return alerts[:limit]

    async def get_by_service(
        self,
        service_name: str,
        status: AlertStatus | str | None = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[Alert]:
        validate_limit(limit)
        _validate_offset(offset)
        alerts = await self._repository.query_alerts(
            AlertQuery(
                service_name=service_name,
                status=AlertStatus.parse(status) if status is not None else None,
            )
        )
        return sort_by_severity(alerts)[offset : offset + limit]

    async def summarize(self, service_name: str | None = None) -> AlertSummary:
        alerts = await self._repository.query_alerts(AlertQuery(service_name=service_name))
        by_status = Counter(a.status for a in alerts)
        by_severity = Counter(a.severity for a in alerts)
        return AlertSummary(
            total=len(alerts),
            by_status={status: by_status[status] for status in AlertStatus},
            by_severity={severity: by_severity[severity] for severity in AlertSeverity},
        )

    async def trends(
        self,
        start: float,
        end: float,
        service_name: str | None = None,
        bucket: str = "day",
    ) -> list[AlertTrend]:
        """Alert counts per (bucket, severity) for alerts created in [start, end].

        Only non-zero combinations are returned, ordered by period and then by
        severity rank descending.
        """
        if bucket not in TREND_BUCKETS:
            raise ValidationError(
                f"bucket must be one of {', '.join(TREND_BUCKETS)}, got {bucket!r}"
            )
        if start > end:
            raise ValidationError(f"start ({start}) must not be after end ({end})")
        alerts = await self._repository.query_alerts(
            AlertQuery(service_name=service_name, start=start, end=end)
        )
        counts = Counter((bucket_period(a.created_at, bucket), a.severity) for a in alerts)
        return [
            AlertTrend(period=period, severity=severity, count=count)
            for (period, severity), count in sorted(
                counts.items(), key=lambda item: (item[0][0], -item[0][1].rank)
            )
        ]

    # --- Retention ---

    async def prune(self, retention_days: float = DEFAULT_RETENTION_DAYS) -> int:
        """Delete RESOLVED alerts resolved more than ``retention_days`` ago."""
        if retention_days <= 0:
            raise ValidationError(f"retention_days must be positive, got {retention_days}")
        cutoff = self._clock() - retention_days * _DAY_SECONDS
        deleted = await self._repository.delete_alerts_older_than(cutoff, AlertStatus.RESOLVED)
        logger.info(
            "Resolved alerts pruned",
            extra={"deleted": deleted, "retention_days": retention_days},
        )
        return deleted

    async def _notify(self, alert: Alert) -> None:
        if self._router is None:
            return
        try:
            await self._router.dispatch(alert)
        except Exception:
            log_exception("Alert notification failed", logger, alert_id=alert.id)
