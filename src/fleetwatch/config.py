"""Engine configuration loaded from the environment.

Every field can be set through a ``FLEETWATCH_`` prefixed variable; nested
blocks use ``__`` as delimiter, e.g. ``FLEETWATCH_THRESHOLDS__CPU=90`` or
``FLEETWATCH_SLACK__ENABLED=true``. ``FLEETWATCH_SERVICES`` takes a JSON list
of ``{"name": ..., "url": ...}`` objects.
"""

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from fleetwatch.core.models import AlertSeverity, ServiceTarget
from fleetwatch.services.evaluator import AlertThresholds, MetricNames


class ThresholdSettings(BaseModel):
    cpu: float = Field(default=80.0, gt=0, le=100)
    memory: float = Field(default=85.0, gt=0, le=100)
    response_time_ms: float = Field(default=5000.0, gt=0)
    error_rate: float = Field(default=10.0, ge=0, le=100)

    def to_thresholds(self) -> AlertThresholds:
        return AlertThresholds(
            cpu=self.cpu,
            memory=self.memory,
            response_time_ms=self.response_time_ms,
            error_rate=self.error_rate,
        )


class MetricNameSettings(BaseModel):
    cpu: str = "cpu.usage"
    memory: str = "memory.usage.percentage"
    response_time: str = "response_time"

    def to_metric_names(self) -> MetricNames:
        return MetricNames(cpu=self.cpu, memory=self.memory, response_time=self.response_time)


class ServiceSettings(BaseModel):
    name: str = Field(min_length=1)
    url: str = Field(min_length=1)

    def to_target(self) -> ServiceTarget:
        return ServiceTarget(name=self.name, url=self.url)


class _ChannelSettings(BaseModel):
    enabled: bool = False
    min_severity: AlertSeverity = AlertSeverity.LOW

    @field_validator("min_severity", mode="before")
    @classmethod
    def _parse_severity(cls, value: object) -> object:
        return AlertSeverity.parse(value) if isinstance(value, str) else value


class EmailSettings(_ChannelSettings):
    smtp_host: str = "localhost"
    smtp_port: int = 587
    smtp_user: str | None = None
    smtp_password: str | None = None
    use_tls: bool = True
    from_address: str = "alerts@fleetwatch.local"
    recipients: list[str] = Field(default_factory=list)


class SlackSettings(_ChannelSettings):
    min_severity: AlertSeverity = AlertSeverity.CRITICAL
    webhook_url: str | None = None
    channel: str | None = None


class PagerDutySettings(_ChannelSettings):
    min_severity: AlertSeverity = AlertSeverity.CRITICAL
    integration_key: str | None = None
    events_url: str = "https://events.pagerduty.com/v2/enqueue"


class Settings(BaseSettings):
    """Top-level settings. Intervals and timeouts are in seconds."""

    model_config = SettingsConfigDict(
        env_prefix="FLEETWATCH_",
        env_nested_delimiter="__",
        extra="ignore",
    )

    service_name: str = "fleetwatch"
    service_version: str = "1.0.0"
    database_path: str = "fleetwatch.db"

    buffer_capacity: int = Field(default=100, ge=1)
    flush_interval: float = Field(default=30.0, gt=0)
    metrics_collection_interval: float = Field(default=30.0, gt=0)
    health_check_interval: float = Field(default=60.0, gt=0)
    alert_check_interval: float = Field(default=60.0, gt=0)
    probe_timeout: float = Field(default=10.0, ge=1, le=30)
    evaluation_window: float = Field(default=300.0, gt=0)
    retention_days: int = Field(default=30, ge=1)
    cleanup_interval: float = Field(default=86400.0, gt=0)
    collect_system_metrics: bool = True
    repository_timeout: float = Field(default=5.0, gt=0)
    notification_timeout: float = Field(default=10.0, gt=0)

    thresholds: ThresholdSettings = Field(default_factory=ThresholdSettings)
    metric_names: MetricNameSettings = Field(default_factory=MetricNameSettings)
    services: list[ServiceSettings] = Field(default_factory=list)

    email: EmailSettings = Field(default_factory=EmailSettings)
    slack: SlackSettings = Field(default_factory=SlackSettings)
    pagerduty: PagerDutySettings = Field(default_factory=PagerDutySettings)

    @property
    def user_agent(self) -> str:
        return f"{self.service_name}/{self.service_version}"

    @property
    def service_targets(self) -> list[ServiceTarget]:
        return [service.to_target() for service in self.services]
