"""fleetwatch - alert evaluation and metric aggregation for a fleet of services."""

from fleetwatch.config import Settings
from fleetwatch.core.logs import get_logger
from fleetwatch.core.models import (
    Alert,
    AlertDraft,
    AlertSeverity,
    AlertStatus,
    HealthSnapshot,
    MetricSample,
    MetricType,
    PerformanceSample,
    ServiceStatus,
    ServiceTarget,
)
from fleetwatch.engine import MonitoringEngine

__all__ = [
    "Alert",
    "AlertDraft",
    "AlertSeverity",
    "AlertStatus",
    "HealthSnapshot",
    "MetricSample",
    "MetricType",
    "MonitoringEngine",
    "PerformanceSample",
    "ServiceStatus",
    "ServiceTarget",
    "Settings",
    "get_logger",
]
