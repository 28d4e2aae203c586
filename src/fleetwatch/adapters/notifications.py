"""Notification sinks for email, Slack and PagerDuty.

Each sink implements NotificationSinkPort: ``send`` returns True on delivery
and raises NotificationError when the provider rejects the message or cannot
be reached. Severity gating and failure isolation live in the router.
"""

import asyncio
import smtplib
from datetime import datetime, timezone
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from html import escape
from typing import Any

import httpx

from fleetwatch.core.errors import NotificationError
from fleetwatch.core.logs import get_logger
from fleetwatch.core.models import Alert, AlertSeverity

logger = get_logger(__name__)

PAGERDUTY_EVENTS_URL = "https://events.pagerduty.com/v2/enqueue"

SEVERITY_COLORS = {
    AlertSeverity.CRITICAL: "#dc3545",
    AlertSeverity.HIGH: "#fd7e14",
    AlertSeverity.MEDIUM: "#ffc107",
    AlertSeverity.LOW: "#28a745",
}

PAGERDUTY_SEVERITIES = {
    AlertSeverity.CRITICAL: "critical",
    AlertSeverity.HIGH: "error",
    AlertSeverity.MEDIUM: "warning",
    AlertSeverity.LOW: "info",
}


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


async def _post_json(
    client: httpx.AsyncClient, url: str, payload: dict[str, Any], channel: str
) -> None:
    try:
        response = await client.post(url, json=payload)
        response.raise_for_status()
    except httpx.HTTPStatusError as exc:
        raise NotificationError(
            f"{channel} rejected notification: HTTP {exc.response.status_code}"
        ) from exc
    except httpx.HTTPError as exc:
        raise NotificationError(f"{channel} unreachable: {exc}") from exc


class EmailSink:
    """SMTP email channel. Sends a multipart HTML + plain text message."""

    def __init__(
        self,
        smtp_host: str,
        smtp_port: int = 587,
        smtp_user: str | None = None,
        smtp_password: str | None = None,
        from_address: str = "alerts@fleetwatch.local",
        recipients: list[str] | None = None,
        use_tls: bool = True,
        source_name: str = "fleetwatch",
        timeout: float = 10.0,
    ) -> None:
        self.smtp_host = smtp_host
        self.smtp_port = smtp_port
        self.smtp_user = smtp_user
        self.smtp_password = smtp_password
        self.from_address = from_address
        self.recipients = recipients or []
        self.use_tls = use_tls
        self.source_name = source_name
        self.timeout = timeout

    async def send(self, alert: Alert) -> bool:
        if not self.recipients:
            raise NotificationError("email has no recipients configured")
        loop = asyncio.get_running_loop()
        try:
            # smtplib blocks, keep it off the event loop
            await loop.run_in_executor(None, self._send_sync, alert)
        except (smtplib.SMTPException, OSError) as exc:
            raise NotificationError(f"email delivery failed: {exc}") from exc
        logger.info(
            "Email notification sent",
            extra={"alert_id": alert.id, "recipients": len(self.recipients)},
        )
        return True

    def build_message(self, alert: Alert) -> MIMEMultipart:
        msg = MIMEMultipart("alternative")
        msg["Subject"] = f"[{alert.severity.value}] {alert.title}"
        msg["From"] = self.from_address
        msg["To"] = ", ".join(self.recipients)
        msg.attach(MIMEText(self._build_text(alert), "plain"))
        msg.attach(MIMEText(self._build_html(alert), "html"))
        return msg

    def _send_sync(self, alert: Alert) -> None:
        msg = self.build_message(alert)
        with smtplib.SMTP(self.smtp_host, self.smtp_port, timeout=self.timeout) as server:
            if self.use_tls:
                server.starttls()
            if self.smtp_user and self.smtp_password:
                server.login(self.smtp_user, self.smtp_password)
            server.sendmail(self.from_address, self.recipients, msg.as_string())

    def _build_text(self, alert: Alert) -> str:
        lines = [
            f"Alert: {alert.title}",
            f"Service: {alert.service_name}",
            f"Severity: {alert.severity.value}",
            f"Alert Type: {alert.alert_type}",
            "",
            alert.description,
        ]
        if alert.value is not None:
            lines.append(f"Current Value: {alert.value}")
        if alert.threshold is not None:
            lines.append(f"Threshold: {alert.threshold}")
        lines.extend(
            [
                f"Timestamp: {_now_iso()}",
                "",
                f"This alert was generated by the {self.source_name} monitoring system.",
            ]
        )
        return "\n".join(lines)

    def _build_html(self, alert: Alert) -> str:
        color = SEVERITY_COLORS.get(alert.severity, "#6c757d")
        rows = [
            ("Alert Type", alert.alert_type),
            ("Service", alert.service_name),
            ("Severity", alert.severity.value),
        ]
        if alert.value is not None:
            rows.append(("Current Value", str(alert.value)))
        if alert.threshold is not None:
            rows.append(("Threshold", str(alert.threshold)))
        rows.append(("Timestamp", _now_iso()))
        details = "".join(
            f"<tr><td><strong>{escape(label)}:</strong></td><td>{escape(value)}</td></tr>"
            for label, value in rows
        )
        return f"""
        <html>
        <body style="font-family: Arial, sans-serif; padding: 20px;">
            <div style="background-color: {color}; color: white; padding: 15px;">
                <h2 style="margin: 0;">{escape(alert.title)}</h2>
                <p style="margin: 5px 0 0 0;">Service: {escape(alert.service_name)} | Severity: {alert.severity.value}</p>
            </div>
            <p>{escape(alert.description)}</p>
            <table>{details}</table>
            <p style="color: #666; font-size: 0.9em;">
                This alert was generated by the {escape(self.source_name)} monitoring system.
            </p>
        </body>
        </html>
        """


class SlackWebhookSink:
    """Slack incoming-webhook channel."""

    def __init__(
        self,
        webhook_url: str,
        channel: str | None = None,
        client: httpx.AsyncClient | None = None,
        timeout: float = 10.0,
    ) -> None:
        self.webhook_url = webhook_url
        self.channel = channel
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout)

    def build_payload(self, alert: Alert) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "text": f"Alert: {alert.title}",
            "attachments": [
                {
                    "color": SEVERITY_COLORS.get(alert.severity, "#6c757d"),
                    "fields": [
                        {"title": "Service", "value": alert.service_name, "short": True},
                        {"title": "Severity", "value": alert.severity.value, "short": True},
                        {"title": "Alert Type", "value": alert.alert_type, "short": True},
                        {"title": "Description", "value": alert.description, "short": False},
                        {"title": "Timestamp", "value": _now_iso(), "short": True},
                    ],
                }
            ],
        }
        if self.channel:
            payload["channel"] = self.channel
        return payload

    async def send(self, alert: Alert) -> bool:
        await _post_json(self._client, self.webhook_url, self.build_payload(alert), "slack")
        logger.info("Slack notification sent", extra={"alert_id": alert.id})
        return True

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()


class PagerDutySink:
    """PagerDuty Events API v2 channel.

    Triggers are keyed by ``<service>-<alert_type>`` so repeated triggers for
    the same condition collapse into one incident on the PagerDuty side.
    """

    def __init__(
        self,
        integration_key: str,
        events_url: str = PAGERDUTY_EVENTS_URL,
        client: httpx.AsyncClient | None = None,
        timeout: float = 10.0,
    ) -> None:
        self.integration_key = integration_key
        self.events_url = events_url
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout)

    def build_payload(self, alert: Alert) -> dict[str, Any]:
        return {
            "routing_key": self.integration_key,
            "event_action": "trigger",
            "dedup_key": f"{alert.service_name}-{alert.alert_type}",
            "payload": {
                "summary": alert.title,
                "source": alert.service_name,
                "severity": PAGERDUTY_SEVERITIES[alert.severity],
                "custom_details": {
                    "description": alert.description,
                    "alert_type": alert.alert_type,
                    "value": alert.value,
                    "threshold": alert.threshold,
                    "labels": alert.labels,
                },
            },
        }

    async def send(self, alert: Alert) -> bool:
        await _post_json(
            self._client, self.events_url, self.build_payload(alert), "pagerduty"
        )
        logger.info("PagerDuty notification sent", extra={"alert_id": alert.id})
        return True

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()
