"""SQLite storage adapter for observations and alerts."""

import json
import sqlite3
from collections.abc import AsyncIterator, Sequence
from contextlib import asynccontextmanager
from typing import Any

from fleetwatch.adapters.storage.sqlite_base import SQLiteStorageBase, _safe_json_loads
from fleetwatch.core.errors import DuplicateAlertError, NotFoundError, RepositoryError
from fleetwatch.core.models import (
    Alert,
    AlertQuery,
    AlertSeverity,
    AlertStatus,
    HealthQuery,
    HealthSnapshot,
    MetricQuery,
    MetricSample,
    MetricType,
    PerformanceQuery,
    PerformanceSample,
    ServiceStatus,
)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS metrics (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    service_name TEXT NOT NULL,
    metric_name TEXT NOT NULL,
    metric_type TEXT NOT NULL,
    value REAL NOT NULL,
    timestamp REAL NOT NULL,
    labels TEXT NOT NULL DEFAULT '{}'
);
CREATE INDEX IF NOT EXISTS idx_metrics_lookup
    ON metrics(service_name, metric_name, timestamp);

CREATE TABLE IF NOT EXISTS performance_metrics (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    service_name TEXT NOT NULL,
    endpoint TEXT NOT NULL,
    method TEXT NOT NULL,
    response_time_ms REAL NOT NULL,
    status_code INTEGER NOT NULL,
    timestamp REAL NOT NULL,
    request_size INTEGER,
    response_size INTEGER
);
CREATE INDEX IF NOT EXISTS idx_performance_lookup
    ON performance_metrics(service_name, timestamp);

CREATE TABLE IF NOT EXISTS service_health (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    service_name TEXT NOT NULL,
    service_url TEXT NOT NULL,
    status TEXT NOT NULL,
    checked_at REAL NOT NULL,
    response_time_ms REAL,
    error_message TEXT,
    metadata TEXT NOT NULL DEFAULT '{}'
);
CREATE INDEX IF NOT EXISTS idx_health_lookup
    ON service_health(service_name, checked_at);

CREATE TABLE IF NOT EXISTS alerts (
    id TEXT PRIMARY KEY,
    service_name TEXT NOT NULL,
    alert_type TEXT NOT NULL,
    severity TEXT NOT NULL,
    status TEXT NOT NULL,
    title TEXT NOT NULL,
    description TEXT NOT NULL DEFAULT '',
    created_at REAL NOT NULL,
    value REAL,
    threshold REAL,
    labels TEXT NOT NULL DEFAULT '{}',
    acknowledged_at REAL,
    acknowledged_by TEXT,
    resolved_at REAL
);
CREATE INDEX IF NOT EXISTS idx_alerts_created ON alerts(created_at);
CREATE UNIQUE INDEX IF NOT EXISTS idx_alerts_one_active
    ON alerts(service_name, alert_type) WHERE status = 'ACTIVE';
"""

_METRIC_COLUMNS = "service_name, metric_name, metric_type, value, timestamp, labels"
_PERFORMANCE_COLUMNS = (
    "service_name, endpoint, method, response_time_ms, status_code, timestamp, "
    "request_size, response_size"
)
_HEALTH_COLUMNS = (
    "service_name, service_url, status, checked_at, response_time_ms, "
    "error_message, metadata"
)
_ALERT_COLUMNS = (
    "id, service_name, alert_type, severity, status, title, description, "
    "created_at, value, threshold, labels, acknowledged_at, acknowledged_by, "
    "resolved_at"
)

_INSERT_METRIC = f"INSERT INTO metrics ({_METRIC_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?)"
_INSERT_PERFORMANCE = (
    f"INSERT INTO performance_metrics ({_PERFORMANCE_COLUMNS}) "
    "VALUES (?, ?, ?, ?, ?, ?, ?, ?)"
)
_INSERT_HEALTH = (
    f"INSERT INTO service_health ({_HEALTH_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?)"
)
_INSERT_ALERT = (
    f"INSERT INTO alerts ({_ALERT_COLUMNS}) "
    "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)"
)
_UPDATE_ALERT = """
UPDATE alerts SET
    severity = ?, status = ?, title = ?, description = ?, value = ?,
    threshold = ?, labels = ?, acknowledged_at = ?, acknowledged_by = ?,
    resolved_at = ?
WHERE id = ?
"""
_SELECT_LATEST_HEALTH = f"""
SELECT {_HEALTH_COLUMNS} FROM service_health AS h
WHERE h.id = (
    SELECT id FROM service_health
    WHERE service_name = h.service_name
    ORDER BY checked_at DESC, id DESC
    LIMIT 1
)
ORDER BY h.service_name ASC
"""


def _filters(
    equals: Sequence[tuple[str, Any]],
    time_column: str,
    start: float | None,
    end: float | None,
) -> tuple[str, tuple[Any, ...]]:
    """Build a WHERE clause from optional equality and inclusive range filters."""
    clauses: list[str] = []
    params: list[Any] = []
    for column, value in equals:
        if value is not None:
            clauses.append(f"{column} = ?")
            params.append(value)
    if start is not None:
        clauses.append(f"{time_column} >= ?")
        params.append(start)
    if end is not None:
        clauses.append(f"{time_column} <= ?")
        params.append(end)
    where = f" WHERE {' AND '.join(clauses)}" if clauses else ""
    return where, tuple(params)


def _metric_row(sample: MetricSample) -> tuple[Any, ...]:
    return (
        sample.service_name,
        sample.metric_name,
        sample.metric_type.value,
        sample.value,
        sample.timestamp,
        json.dumps(sample.labels),
    )


def _performance_row(sample: PerformanceSample) -> tuple[Any, ...]:
    return (
        sample.service_name,
        sample.endpoint,
        sample.method,
        sample.response_time_ms,
        sample.status_code,
        sample.timestamp,
        sample.request_size,
        sample.response_size,
    )


def _to_health(row: Sequence[Any]) -> HealthSnapshot:
    return HealthSnapshot(
        service_name=row[0],
        service_url=row[1],
        status=ServiceStatus(row[2]),
        checked_at=row[3],
        response_time_ms=row[4],
        error_message=row[5],
        metadata=_safe_json_loads(row[6]),
    )


def _to_alert(row: Sequence[Any]) -> Alert:
    return Alert(
        id=row[0],
        service_name=row[1],
        alert_type=row[2],
        severity=AlertSeverity(row[3]),
        status=AlertStatus(row[4]),
        title=row[5],
        description=row[6],
        created_at=row[7],
        value=row[8],
        threshold=row[9],
        labels=_safe_json_loads(row[10]),
        acknowledged_at=row[11],
        acknowledged_by=row[12],
        resolved_at=row[13],
    )


class SQLiteRepository(SQLiteStorageBase):
    """SQLite implementation of RepositoryPort.

    Stores observations and alerts in a SQLite database using aiosqlite for
    non-blocking async operations. Uses WAL mode for concurrent access.

    A partial unique index allows at most one ACTIVE alert per
    (service_name, alert_type); inserting a second raises
    DuplicateAlertError. Any other sqlite failure surfaces as
    RepositoryError.
    """

    def __init__(self, db_path: str, timeout: float = 5.0) -> None:
        super().__init__(db_path, _SCHEMA, timeout)

    @asynccontextmanager
    async def _translate_errors(self, operation: str) -> AsyncIterator[None]:
        try:
            yield
        except sqlite3.Error as exc:
            raise RepositoryError(f"{operation} failed: {exc}") from exc

    # --- Observations ---

    async def insert_metric(self, sample: MetricSample) -> None:
        async with self._translate_errors("insert_metric"):
            await self._execute(_INSERT_METRIC, _metric_row(sample))

    async def insert_metric_batch(self, samples: Sequence[MetricSample]) -> int:
        async with self._translate_errors("insert_metric_batch"):
            return await self._execute_many(
                _INSERT_METRIC, [_metric_row(s) for s in samples]
            )

    async def insert_performance(self, sample: PerformanceSample) -> None:
        async with self._translate_errors("insert_performance"):
            await self._execute(_INSERT_PERFORMANCE, _performance_row(sample))

    async def insert_performance_batch(
        self, samples: Sequence[PerformanceSample]
    ) -> int:
        async with self._translate_errors("insert_performance_batch"):
            return await self._execute_many(
                _INSERT_PERFORMANCE, [_performance_row(s) for s in samples]
            )

    async def insert_health_snapshot(self, snapshot: HealthSnapshot) -> None:
        async with self._translate_errors("insert_health_snapshot"):
            await self._execute(
                _INSERT_HEALTH,
                (
                    snapshot.service_name,
                    snapshot.service_url,
                    snapshot.status.value,
                    snapshot.checked_at,
                    snapshot.response_time_ms,
                    snapshot.error_message,
                    json.dumps(snapshot.metadata, default=str),
                ),
            )

    async def query_metrics(self, query: MetricQuery) -> list[MetricSample]:
        where, params = _filters(
            [("service_name", query.service_name), ("metric_name", query.metric_name)],
            "timestamp",
            query.start,
            query.end,
        )
        order = "DESC" if query.newest_first else "ASC"
        sql = f"SELECT {_METRIC_COLUMNS} FROM metrics{where} ORDER BY timestamp {order}, id {order}"
        if query.limit is not None:
            sql += " LIMIT ?"
            params += (query.limit,)
        async with self._translate_errors("query_metrics"):
            rows = await self._fetch_all(sql, params)
        return [
            MetricSample(
                service_name=row[0],
                metric_name=row[1],
                metric_type=MetricType(row[2]),
                value=row[3],
                timestamp=row[4],
                labels=_safe_json_loads(row[5]),
            )
            for row in rows
        ]

    async def query_performance(
        self, query: PerformanceQuery
    ) -> list[PerformanceSample]:
        where, params = _filters(
            [
                ("service_name", query.service_name),
                ("endpoint", query.endpoint),
                ("method", query.method),
            ],
            "timestamp",
            query.start,
            query.end,
        )
        sql = (
            f"SELECT {_PERFORMANCE_COLUMNS} FROM performance_metrics{where} "
            "ORDER BY timestamp ASC, id ASC"
        )
        if query.limit is not None:
            sql += " LIMIT ?"
            params += (query.limit,)
        async with self._translate_errors("query_performance"):
            rows = await self._fetch_all(sql, params)
        return [
            PerformanceSample(
                service_name=row[0],
                endpoint=row[1],
                method=row[2],
                response_time_ms=row[3],
                status_code=row[4],
                timestamp=row[5],
                request_size=row[6],
                response_size=row[7],
            )
            for row in rows
        ]

    async def query_health(self, query: HealthQuery) -> list[HealthSnapshot]:
        where, params = _filters(
            [
                ("service_name", query.service_name),
                ("status", query.status.value if query.status else None),
            ],
            "checked_at",
            query.start,
            query.end,
        )
        sql = (
            f"SELECT {_HEALTH_COLUMNS} FROM service_health{where} "
            "ORDER BY checked_at DESC, id DESC"
        )
        async with self._translate_errors("query_health"):
            rows = await self._fetch_all(sql, params)
        return [_to_health(row) for row in rows]

    async def latest_health_by_service(self) -> list[HealthSnapshot]:
        async with self._translate_errors("latest_health_by_service"):
            rows = await self._fetch_all(_SELECT_LATEST_HEALTH)
        return [_to_health(row) for row in rows]

    async def delete_observations_before(self, cutoff: float) -> dict[str, int]:
        async with self._translate_errors("delete_observations_before"):
            return {
                "metrics": await self._execute(
                    "DELETE FROM metrics WHERE timestamp < ?", (cutoff,)
                ),
                "performance": await self._execute(
                    "DELETE FROM performance_metrics WHERE timestamp < ?", (cutoff,)
                ),
                "health": await self._execute(
                    "DELETE FROM service_health WHERE checked_at < ?", (cutoff,)
                ),
            }

    # --- Alerts ---

    async def find_alert(
        self, service_name: str, alert_type: str, status: AlertStatus
    ) -> Alert | None:
        sql = (
            f"SELECT {_ALERT_COLUMNS} FROM alerts "
            "WHERE service_name = ? AND alert_type = ? AND status = ? "
            "ORDER BY created_at DESC LIMIT 1"
        )
        async with self._translate_errors("find_alert"):
            rows = await self._fetch_all(sql, (service_name, alert_type, status.value))
        return _to_alert(rows[0]) if rows else None

    async def get_alert(self, alert_id: str) -> Alert | None:
        sql = f"SELECT {_ALERT_COLUMNS} FROM alerts WHERE id = ?"
        async with self._translate_errors("get_alert"):
            rows = await self._fetch_all(sql, (alert_id,))
        return _to_alert(rows[0]) if rows else None

    async def query_alerts(self, query: AlertQuery) -> list[Alert]:
        where, params = _filters(
            [
                ("service_name", query.service_name),
                ("alert_type", query.alert_type),
                ("status", query.status.value if query.status else None),
                ("severity", query.severity.value if query.severity else None),
            ],
            "created_at",
            query.start,
            query.end,
        )
        sql = f"SELECT {_ALERT_COLUMNS} FROM alerts{where} ORDER BY created_at DESC"
        async with self._translate_errors("query_alerts"):
            rows = await self._fetch_all(sql, params)
        return [_to_alert(row) for row in rows]

    async def create_alert(self, alert: Alert) -> Alert:
        row = (
            alert.id,
            alert.service_name,
            alert.alert_type,
            alert.severity.value,
            alert.status.value,
            alert.title,
            alert.description,
            alert.created_at,
            alert.value,
            alert.threshold,
            json.dumps(alert.labels, default=str),
            alert.acknowledged_at,
            alert.acknowledged_by,
            alert.resolved_at,
        )
        try:
            await self._execute(_INSERT_ALERT, row)
        except sqlite3.IntegrityError as exc:
            raise DuplicateAlertError(
                f"ACTIVE alert already exists for {alert.service_name}/{alert.alert_type}"
            ) from exc
        except sqlite3.Error as exc:
            raise RepositoryError(f"create_alert failed: {exc}") from exc
        return alert

    async def update_alert(self, alert: Alert) -> Alert:
        params = (
            alert.severity.value,
            alert.status.value,
            alert.title,
            alert.description,
            alert.value,
            alert.threshold,
            json.dumps(alert.labels, default=str),
            alert.acknowledged_at,
            alert.acknowledged_by,
            alert.resolved_at,
            alert.id,
        )
        async with self._translate_errors("update_alert"):
            updated = await self._execute(_UPDATE_ALERT, params)
        if updated == 0:
            raise NotFoundError(f"Alert {alert.id} not found")
        return alert

    async def delete_alerts_older_than(
        self, cutoff: float, status: AlertStatus
    ) -> int:
        async with self._translate_errors("delete_alerts_older_than"):
            return await self._execute(
                "DELETE FROM alerts WHERE status = ? AND resolved_at IS NOT NULL "
                "AND resolved_at < ?",
                (status.value, cutoff),
            )
