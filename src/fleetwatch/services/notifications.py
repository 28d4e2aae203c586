"""Severity-gated fan-out of alerts to notification channels."""

import asyncio
import time
from collections.abc import Callable
from dataclasses import dataclass

from fleetwatch.core.errors import NotFoundError, ValidationError
from fleetwatch.core.logs import get_logger
from fleetwatch.core.models import (
    Alert,
    AlertSeverity,
    AlertStatus,
    ChannelResult,
    DispatchReport,
)
from fleetwatch.core.ports import NotificationSinkPort

logger = get_logger(__name__)

DEFAULT_SEND_TIMEOUT = 10.0


@dataclass
class Channel:
    name: str
    sink: NotificationSinkPort
    min_severity: AlertSeverity
    enabled: bool = True

    def accepts(self, severity: AlertSeverity) -> bool:
        return self.enabled and severity.rank >= self.min_severity.rank


class NotificationRouter:
    """Routes alerts to every enabled channel whose minimum severity they meet.

    Each send runs concurrently under its own timeout. ``dispatch`` never
    raises; it reports per-channel outcomes in a DispatchReport.
    """

    def __init__(
        self,
        timeout: float = DEFAULT_SEND_TIMEOUT,
        source_name: str = "fleetwatch",
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.timeout = timeout
        self.source_name = source_name
        self._clock = clock
        self._channels: dict[str, Channel] = {}

    def register(
        self,
        name: str,
        sink: NotificationSinkPort,
        min_severity: AlertSeverity | str = AlertSeverity.LOW,
        enabled: bool = True,
    ) -> None:
        if not name:
            raise ValidationError("channel name is required")
        self._channels[name] = Channel(
            name=name,
            sink=sink,
            min_severity=AlertSeverity.parse(min_severity),
            enabled=enabled,
        )

    @property
    def channels(self) -> list[str]:
        return list(self._channels)

    def channels_for(self, severity: AlertSeverity) -> list[str]:
        return [c.name for c in self._channels.values() if c.accepts(severity)]

    async def dispatch(self, alert: Alert) -> DispatchReport:
        targets = [c for c in self._channels.values() if c.accepts(alert.severity)]
        results = await asyncio.gather(*(self._send(c, alert) for c in targets))
        report = DispatchReport(alert_id=alert.id, results=list(results))
        logger.info(
            "Alert notification dispatched",
            extra={
                "alert_id": alert.id,
                "severity": alert.severity.value,
                "succeeded": len(report.succeeded),
                "failed": len(report.failed),
            },
        )
        return report

    async def send_test(self, channel: str) -> ChannelResult:
        """Send a LOW test alert to one channel, ignoring gating and ``enabled``."""
        target = self._channels.get(channel)
        if target is None:
            raise NotFoundError(f"Unknown notification channel {channel!r}")
        result = await self._send(target, self._test_alert())
        if result.success:
            logger.info("Test notification sent", extra={"channel": channel})
        return result

    def status(self) -> dict[str, bool]:
        return {name: c.enabled for name, c in self._channels.items()}

    async def aclose(self) -> None:
        for channel in self._channels.values():
            close = getattr(channel.sink, "aclose", None)
            if close is not None:
                await close()

    async def _send(self, channel: Channel, alert: Alert) -> ChannelResult:
        try:
            delivered = await asyncio.wait_for(
                channel.sink.send(alert), timeout=self.timeout
            )
        except asyncio.TimeoutError:
            error = f"send timed out after {self.timeout}s"
        except Exception as exc:
            error = str(exc) or type(exc).__name__
        else:
            if delivered:
                return ChannelResult(channel=channel.name, success=True)
            error = "channel reported failure"
        logger.warning(
            "Notification send failed",
            extra={"channel": channel.name, "alert_id": alert.id, "error": error},
        )
        return ChannelResult(channel=channel.name, success=False, error=error)

    def _test_alert(self) -> Alert:
        return Alert(
            id="test-alert",
            service_name=self.source_name,
            alert_type="test_alert",
            severity=AlertSeverity.LOW,
            status=AlertStatus.ACTIVE,
            title="Test Alert",
            description="This is a test alert to verify notification configuration.",
            created_at=self._clock(),
            value=100,
            threshold=90,
            labels={"test": "true"},
        )
