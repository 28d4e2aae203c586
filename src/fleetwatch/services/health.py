"""Health probing of the registered service roster."""

import asyncio
import time
from collections.abc import Callable, Sequence
from typing import Any

from fleetwatch.core.errors import (
    NotFoundError,
    ProbeTimeoutError,
    TransientIOError,
    ValidationError,
)
from fleetwatch.core.logs import get_logger, log_exception
from fleetwatch.core.models import HealthQuery, HealthSnapshot, ServiceStatus, ServiceTarget
from fleetwatch.core.ports import ProbeClientPort, RepositoryPort
from fleetwatch.services.scheduler import PeriodicTask

logger = get_logger(__name__)

DEFAULT_PROBE_TIMEOUT = 10.0
DEFAULT_CHECK_INTERVAL = 60.0
MIN_PROBE_TIMEOUT_MS = 1000
MAX_PROBE_TIMEOUT_MS = 30000

_DETAIL_KEYS = ("version", "uptime", "memory", "cpu", "database", "redis", "checks")


def classify(status_code: int, body: Any) -> ServiceStatus:
    """Map a probe response onto a ServiceStatus.

    Non-2xx is UNHEALTHY. A 2xx body's ``status`` field is matched
    case-insensitively against healthy/unhealthy/degraded/maintenance;
    anything else, including a missing field, is UNKNOWN.
    """
    if not 200 <= status_code < 300:
        return ServiceStatus.UNHEALTHY
    declared = body.get("status") if isinstance(body, dict) else None
    if not isinstance(declared, str):
        return ServiceStatus.UNKNOWN
    try:
        return ServiceStatus(declared.upper())
    except ValueError:
        return ServiceStatus.UNKNOWN


def _response_metadata(status_code: int, body: Any) -> dict[str, Any]:
    metadata: dict[str, Any] = {"status_code": status_code}
    details = body.get("details") if isinstance(body, dict) else None
    if isinstance(details, dict):
        metadata.update({key: details[key] for key in _DETAIL_KEYS if key in details})
    return metadata


class HealthProbe:
    """Polls every registered service and persists one snapshot per probe.

    Probes run concurrently and never raise: timeouts, transport failures
    and non-2xx responses all become UNHEALTHY snapshots. A snapshot that
    cannot be persisted is still returned to the caller.
    """

    def __init__(
        self,
        repository: RepositoryPort,
        client: ProbeClientPort,
        services: Sequence[ServiceTarget] = (),
        interval: float = DEFAULT_CHECK_INTERVAL,
        timeout: float = DEFAULT_PROBE_TIMEOUT,
        clock: Callable[[], float] = time.time,
        write_timeout: float | None = None,
    ) -> None:
        self._repository = repository
        self._client = client
        self._services = list(services)
        self.timeout = timeout
        self.write_timeout = write_timeout
        self._clock = clock
        self._task = PeriodicTask("health-probe", interval, self.probe_all, run_immediately=True)

    @property
    def task(self) -> PeriodicTask:
        return self._task

    @property
    def services(self) -> list[ServiceTarget]:
        return list(self._services)

    async def probe_all(self) -> list[HealthSnapshot]:
        """Probe every registered service in parallel."""
        results = await asyncio.gather(
            *(self._check(target, self.timeout) for target in self._services),
            return_exceptions=True,
        )
        snapshots: list[HealthSnapshot] = []
        for target, result in zip(self._services, results):
            if isinstance(result, BaseException):
                logger.error(
                    "Health probe crashed",
                    exc_info=result,
                    extra={"service_name": target.name},
                )
            else:
                snapshots.append(result)
        healthy = sum(1 for s in snapshots if s.status == ServiceStatus.HEALTHY)
        logger.info(
            "Health checks completed",
            extra={"total": len(self._services), "healthy": healthy},
        )
        return snapshots

    async def probe_one(
        self, service_name: str, service_url: str, timeout_ms: int = 10000
    ) -> HealthSnapshot:
        """Ad-hoc probe of any URL; ``timeout_ms`` must lie in [1000, 30000]."""
        if not service_name:
            raise ValidationError("service_name is required")
        if not service_url:
            raise ValidationError("service_url is required")
        if not MIN_PROBE_TIMEOUT_MS <= timeout_ms <= MAX_PROBE_TIMEOUT_MS:
            raise ValidationError(
                f"timeout must be between {MIN_PROBE_TIMEOUT_MS} and "
                f"{MAX_PROBE_TIMEOUT_MS} ms, got {timeout_ms}"
            )
        return await self._check(
            ServiceTarget(name=service_name, url=service_url), timeout_ms / 1000
        )

    async def _check(self, target: ServiceTarget, timeout: float) -> HealthSnapshot:
        started = time.perf_counter()
        error_message: str | None = None
        try:
            response = await self._client.get(target.url, timeout)
        except TransientIOError as exc:
            error_message = str(exc) or type(exc).__name__
            status = ServiceStatus.UNHEALTHY
            metadata: dict[str, Any] = {
                "error": error_message,
                "is_timeout": isinstance(exc, ProbeTimeoutError)
                or "timeout" in error_message.lower(),
                "is_network_error": not isinstance(exc, ProbeTimeoutError),
            }
        except Exception as exc:
            # clients outside the adapter set may raise anything
            error_message = str(exc) or type(exc).__name__
            status = ServiceStatus.UNHEALTHY
            metadata = {
                "error": error_message,
                "is_timeout": False,
                "is_network_error": True,
            }
        else:
            status = classify(response.status_code, response.body)
            metadata = _response_metadata(response.status_code, response.body)
            if not 200 <= response.status_code < 300:
                error_message = f"HTTP {response.status_code}"
        response_time_ms = (time.perf_counter() - started) * 1000

        snapshot = HealthSnapshot(
            service_name=target.name,
            service_url=target.url,
            status=status,
            checked_at=self._clock(),
            response_time_ms=response_time_ms,
            error_message=error_message,
            metadata=metadata,
        )
        if error_message is None:
            logger.debug(
                "Health check succeeded",
                extra={"service_name": target.name, "status": status.value},
            )
        else:
            logger.warning(
                "Health check failed",
                extra={"service_name": target.name, "error": error_message},
            )
        try:
            await asyncio.wait_for(
                self._repository.insert_health_snapshot(snapshot), timeout=self.write_timeout
            )
        except Exception:
            log_exception("Failed to persist health snapshot", logger, service_name=target.name)
        return snapshot

    # --- Read side ---

    async def get_all_services_health(self) -> list[HealthSnapshot]:
        """Latest snapshot of every service that has ever been probed."""
        return await self._repository.latest_health_by_service()

    async def get_service_health(self, service_name: str) -> HealthSnapshot:
        snapshots = await self._repository.query_health(HealthQuery(service_name=service_name))
        if not snapshots:
            raise NotFoundError(f"No health data for service {service_name!r}")
        return snapshots[0]

    async def get_services_by_status(self, status: ServiceStatus | str) -> list[HealthSnapshot]:
        """Services whose latest snapshot is in ``status``."""
        wanted = ServiceStatus.parse(status)
        return [s for s in await self.get_all_services_health() if s.status == wanted]

    # --- Lifecycle ---

    def start(self) -> None:
        self._task.start()

    async def stop(self) -> None:
        await self._task.stop()
