"""Stateful engine components built on the core ports."""

from fleetwatch.services.buffer import MetricBuffer
from fleetwatch.services.collector import SystemMetricsCollector
from fleetwatch.services.evaluator import AlertEvaluator, AlertThresholds, MetricNames
from fleetwatch.services.health import HealthProbe
from fleetwatch.services.lifecycle import AlertLifecycle
from fleetwatch.services.notifications import NotificationRouter
from fleetwatch.services.scheduler import PeriodicTask

__all__ = [
    "AlertEvaluator",
    "AlertLifecycle",
    "AlertThresholds",
    "HealthProbe",
    "MetricBuffer",
    "MetricNames",
    "NotificationRouter",
    "PeriodicTask",
    "SystemMetricsCollector",
]
