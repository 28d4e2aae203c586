"""In-memory metric buffering with batched flushes to the repository."""

import asyncio
import math
import threading
import time
from collections.abc import Awaitable, Callable, Sequence
from typing import TypeVar

from fleetwatch.core.errors import ValidationError
from fleetwatch.core.logs import get_logger, log_exception
from fleetwatch.core.models import MetricSample, MetricType, PerformanceSample
from fleetwatch.core.ports import RepositoryPort
from fleetwatch.services.scheduler import PeriodicTask

logger = get_logger(__name__)

T = TypeVar("T")

DEFAULT_CAPACITY = 100
DEFAULT_FLUSH_INTERVAL = 30.0


class MetricBuffer:
    """Collects metric and performance samples and writes them in batches.

    Two independent buffers share one lock. ``record_*`` appends under the
    lock; when a buffer reaches ``capacity`` that buffer alone is flushed
    before the call returns. A background task flushes both buffers every
    ``flush_interval`` seconds regardless of fill level.

    A flush swaps the live list for an empty one under the lock and writes
    the swapped batch outside it, so records arriving during the write land
    in the new list. A failed write puts the batch back at the front of the
    live list and is retried on the next flush.
    """

    def __init__(
        self,
        repository: RepositoryPort,
        capacity: int = DEFAULT_CAPACITY,
        flush_interval: float = DEFAULT_FLUSH_INTERVAL,
        write_timeout: float | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if capacity < 1:
            raise ValidationError(f"capacity must be at least 1, got {capacity}")
        self.capacity = capacity
        self._repository = repository
        self._write_timeout = write_timeout
        self._clock = clock
        self._lock = threading.Lock()
        self._metrics: list[MetricSample] = []
        self._performance: list[PerformanceSample] = []
        self._flush_task = PeriodicTask("metric-buffer-flush", flush_interval, self.flush)

    @property
    def flush_task(self) -> PeriodicTask:
        return self._flush_task

    @property
    def sizes(self) -> dict[str, int]:
        with self._lock:
            return {"metrics": len(self._metrics), "performance": len(self._performance)}

    # --- Recording ---

    async def record_metric(self, sample: MetricSample) -> None:
        with self._lock:
            self._metrics.append(sample)
            full = len(self._metrics) == self.capacity
        if full:
            await self.flush_metrics()

    async def record_custom_metric(
        self,
        service_name: str,
        metric_name: str,
        value: float,
        metric_type: MetricType | str = MetricType.GAUGE,
        labels: dict[str, str] | None = None,
    ) -> MetricSample:
        """Validate and record an application-defined metric."""
        if not service_name:
            raise ValidationError("service_name is required")
        if not metric_name:
            raise ValidationError("metric_name is required")
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ValidationError(f"value must be a number, got {value!r}")
        if not math.isfinite(value):
            raise ValidationError(f"value must be finite, got {value}")
        sample = MetricSample(
            service_name=service_name,
            metric_name=metric_name,
            value=float(value),
            timestamp=self._clock(),
            metric_type=MetricType.parse(metric_type),
            labels=dict(labels or {}),
        )
        await self.record_metric(sample)
        return sample

    async def record_performance(self, sample: PerformanceSample) -> None:
        with self._lock:
            self._performance.append(sample)
            full = len(self._performance) == self.capacity
        if full:
            await self.flush_performance()

    # --- Flushing ---

    async def flush_metrics(self) -> int:
        with self._lock:
            batch, self._metrics = self._metrics, []
        return await self._write(batch, self._repository.insert_metric_batch, "metrics")

    async def flush_performance(self) -> int:
        with self._lock:
            batch, self._performance = self._performance, []
        return await self._write(
            batch, self._repository.insert_performance_batch, "performance"
        )

    async def flush(self) -> dict[str, int]:
        """Flush both buffers. Returns the number of samples written per kind."""
        return {
            "metrics": await self.flush_metrics(),
            "performance": await self.flush_performance(),
        }

    async def _write(
        self,
        batch: list[T],
        insert: Callable[[Sequence[T]], Awaitable[int]],
        kind: str,
    ) -> int:
        if not batch:
            return 0
        try:
            written = await asyncio.wait_for(insert(batch), timeout=self._write_timeout)
        except Exception:
            self._requeue(batch, kind)
            log_exception(
                "Buffer flush failed, batch requeued", logger, kind=kind, count=len(batch)
            )
            return 0
        logger.debug("Buffer flushed", extra={"kind": kind, "count": written})
        return written

    def _requeue(self, batch: list[T], kind: str) -> None:
        with self._lock:
            # the live list may have been swapped since the batch was taken
            live = self._metrics if kind == "metrics" else self._performance
            live[:0] = batch

    # --- Lifecycle ---

    def start(self) -> None:
        self._flush_task.start()

    async def stop(self) -> None:
        """Stop the flush ticker, then flush whatever is still buffered."""
        await self._flush_task.stop()
        await self.flush()
