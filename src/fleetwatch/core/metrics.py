"""Metric helper functions for creating samples stamped with the current time."""

import time

from fleetwatch.core.models import MetricSample, MetricType, PerformanceSample


def counter(
    service_name: str,
    name: str,
    value: float = 1.0,
    labels: dict[str, str] | None = None,
) -> MetricSample:
    """Create a counter metric sample.

    Args:
        service_name: Service the counter belongs to
        name: Metric name (e.g., "network.in")
        value: Increment value (default: 1.0)
        labels: Optional dimension labels

    Returns:
        MetricSample with current timestamp
    """
    return MetricSample(
        service_name=service_name,
        metric_name=name,
        value=value,
        timestamp=time.time(),
        metric_type=MetricType.COUNTER,
        labels=labels or {},
    )


def gauge(
    service_name: str,
    name: str,
    value: float,
    labels: dict[str, str] | None = None,
) -> MetricSample:
    """Create a gauge metric sample.

    Args:
        service_name: Service the gauge belongs to
        name: Metric name (e.g., "cpu.usage")
        value: Current gauge value
        labels: Optional dimension labels

    Returns:
        MetricSample with current timestamp
    """
    return MetricSample(
        service_name=service_name,
        metric_name=name,
        value=value,
        timestamp=time.time(),
        metric_type=MetricType.GAUGE,
        labels=labels or {},
    )


def histogram(
    service_name: str,
    name: str,
    value: float,
    labels: dict[str, str] | None = None,
) -> MetricSample:
    """Create a single histogram observation."""
    return MetricSample(
        service_name=service_name,
        metric_name=name,
        value=value,
        timestamp=time.time(),
        metric_type=MetricType.HISTOGRAM,
        labels=labels or {},
    )


def summary(
    service_name: str,
    name: str,
    value: float,
    labels: dict[str, str] | None = None,
) -> MetricSample:
    """Create a single summary observation."""
    return MetricSample(
        service_name=service_name,
        metric_name=name,
        value=value,
        timestamp=time.time(),
        metric_type=MetricType.SUMMARY,
        labels=labels or {},
    )


def request(
    service_name: str,
    endpoint: str,
    method: str,
    response_time_ms: float,
    status_code: int,
    request_size: int | None = None,
    response_size: int | None = None,
) -> PerformanceSample:
    """Create a performance sample for one handled request.

    Args:
        service_name: Service that handled the request
        endpoint: Request path
        method: HTTP method (normalised to upper case)
        response_time_ms: Handling time in milliseconds
        status_code: HTTP status code returned
        request_size: Request body size in bytes, if known
        response_size: Response body size in bytes, if known

    Returns:
        PerformanceSample with current timestamp
    """
    return PerformanceSample(
        service_name=service_name,
        endpoint=endpoint,
        method=method.upper(),
        response_time_ms=response_time_ms,
        status_code=status_code,
        timestamp=time.time(),
        request_size=request_size,
        response_size=response_size,
    )
