"""Fixed-interval background tasks on the running asyncio loop."""

import asyncio
from collections.abc import Awaitable, Callable

from fleetwatch.core.errors import ValidationError
from fleetwatch.core.logs import get_logger, log_exception

logger = get_logger(__name__)


class PeriodicTask:
    """Runs ``func`` every ``interval`` seconds until stopped.

    A failing tick is logged and the next tick runs as scheduled. ``stop()``
    lets an in-flight tick finish instead of cancelling it, so a flush or
    probe is never interrupted halfway.
    """

    def __init__(
        self,
        name: str,
        interval: float,
        func: Callable[[], Awaitable[object]],
        run_immediately: bool = False,
    ) -> None:
        if interval <= 0:
            raise ValidationError(f"{name}: interval must be positive, got {interval}")
        self.name = name
        self.interval = interval
        self._func = func
        self._run_immediately = run_immediately
        self._task: asyncio.Task[None] | None = None
        self._stopping: asyncio.Event | None = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.is_running:
            logger.warning("Task already running", extra={"task": self.name})
            return
        self._stopping = asyncio.Event()
        self._task = asyncio.create_task(self._loop(), name=self.name)
        logger.info(
            "Periodic task started",
            extra={"task": self.name, "interval": self.interval},
        )

    async def stop(self) -> None:
        if self._task is None or self._stopping is None:
            return
        self._stopping.set()
        await self._task
        self._task = None
        logger.info("Periodic task stopped", extra={"task": self.name})

    async def run_once(self) -> None:
        """Execute one tick now, with the same failure isolation as the loop."""
        try:
            await self._func()
        except Exception:
            log_exception("Periodic task tick failed", logger, task=self.name)

    async def _loop(self) -> None:
        assert self._stopping is not None
        if self._run_immediately:
            await self.run_once()
        while not self._stopping.is_set():
            try:
                await asyncio.wait_for(self._stopping.wait(), timeout=self.interval)
            except asyncio.TimeoutError:
                await self.run_once()
