"""Periodic host and process metrics sampled with psutil."""

import time
from collections.abc import Callable

import psutil

from fleetwatch.core.logs import get_logger
from fleetwatch.core.models import MetricSample, MetricType
from fleetwatch.services.buffer import MetricBuffer
from fleetwatch.services.evaluator import MetricNames
from fleetwatch.services.scheduler import PeriodicTask

logger = get_logger(__name__)

DEFAULT_COLLECTION_INTERVAL = 30.0


class SystemMetricsCollector:
    """Samples CPU, memory, load, network and process gauges into a MetricBuffer.

    CPU and memory percentages are recorded under the names in
    ``metric_names`` so the evaluator's system rules read what is written here.
    """

    def __init__(
        self,
        buffer: MetricBuffer,
        service_name: str,
        metric_names: MetricNames = MetricNames(),
        interval: float = DEFAULT_COLLECTION_INTERVAL,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._buffer = buffer
        self.service_name = service_name
        self.metric_names = metric_names
        self._clock = clock
        self._process = psutil.Process()
        # primes psutil's cpu_percent so the first real reading is meaningful
        psutil.cpu_percent(interval=None)
        self._task = PeriodicTask("system-metrics", interval, self.collect, run_immediately=True)

    @property
    def task(self) -> PeriodicTask:
        return self._task

    def start(self) -> None:
        self._task.start()

    async def stop(self) -> None:
        await self._task.stop()

    def sample(self) -> list[MetricSample]:
        now = self._clock()
        memory = psutil.virtual_memory()
        load_1m, load_5m, load_15m = psutil.getloadavg()
        network = psutil.net_io_counters()

        def gauge(name: str, value: float) -> MetricSample:
            return MetricSample(self.service_name, name, float(value), now, MetricType.GAUGE)

        def counter(name: str, value: float) -> MetricSample:
            return MetricSample(self.service_name, name, float(value), now, MetricType.COUNTER)

        samples = [
            gauge(self.metric_names.cpu, psutil.cpu_percent(interval=None)),
            gauge("cpu.load.1m", load_1m),
            gauge("cpu.load.5m", load_5m),
            gauge("cpu.load.15m", load_15m),
            gauge("memory.total", memory.total),
            gauge("memory.used", memory.used),
            gauge("memory.free", memory.available),
            gauge(self.metric_names.memory, memory.percent),
            gauge("process.memory.rss", self._process.memory_info().rss),
            gauge("process.uptime", now - self._process.create_time()),
        ]
        if network is not None:
            samples.append(counter("network.in", network.bytes_recv))
            samples.append(counter("network.out", network.bytes_sent))
        return samples

    async def collect(self) -> int:
        """Sample once and record every reading. Returns the sample count."""
        samples = self.sample()
        for sample in samples:
            await self._buffer.record_metric(sample)
        logger.debug("System metrics collected", extra={"count": len(samples)})
        return len(samples)
