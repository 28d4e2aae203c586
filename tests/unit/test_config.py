"""Tests for environment-driven settings."""

import pydantic
import pytest

from fleetwatch.config import Settings
from fleetwatch.core.models import AlertSeverity, ServiceTarget
from fleetwatch.services.evaluator import AlertThresholds, MetricNames


class TestDefaults:
    """Tests for default values."""

    @pytest.mark.core
    def test_defaults(self) -> None:
        settings = Settings()

        assert settings.buffer_capacity == 100
        assert settings.flush_interval == 30.0
        assert settings.health_check_interval == 60.0
        assert settings.retention_days == 30
        assert settings.cleanup_interval == 86400.0
        assert settings.thresholds.to_thresholds() == AlertThresholds()
        assert settings.metric_names.to_metric_names() == MetricNames()
        assert settings.service_targets == []
        assert settings.email.enabled is False
        assert settings.slack.min_severity == AlertSeverity.CRITICAL
        assert settings.pagerduty.min_severity == AlertSeverity.CRITICAL

    @pytest.mark.core
    def test_user_agent(self) -> None:
        assert Settings(service_name="ops", service_version="2.0").user_agent == "ops/2.0"


class TestEnvironment:
    """Tests for FLEETWATCH_ prefixed variables."""

    @pytest.mark.core
    def test_top_level_and_nested_values(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("FLEETWATCH_SERVICE_NAME", "ops-monitor")
        monkeypatch.setenv("FLEETWATCH_FLUSH_INTERVAL", "5")
        monkeypatch.setenv("FLEETWATCH_THRESHOLDS__CPU", "90")
        monkeypatch.setenv("FLEETWATCH_SLACK__ENABLED", "true")
        monkeypatch.setenv("FLEETWATCH_SLACK__MIN_SEVERITY", "high")

        settings = Settings()

        assert settings.service_name == "ops-monitor"
        assert settings.flush_interval == 5.0
        assert settings.thresholds.cpu == 90.0
        assert settings.thresholds.memory == 85.0
        assert settings.slack.enabled is True
        assert settings.slack.min_severity == AlertSeverity.HIGH

    @pytest.mark.core
    def test_services_from_json(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv(
            "FLEETWATCH_SERVICES",
            '[{"name": "api", "url": "http://api/health"}]',
        )

        assert Settings().service_targets == [ServiceTarget("api", "http://api/health")]

    @pytest.mark.core
    @pytest.mark.parametrize(
        ("variable", "value"),
        [
            ("FLEETWATCH_PROBE_TIMEOUT", "45"),
            ("FLEETWATCH_BUFFER_CAPACITY", "0"),
            ("FLEETWATCH_THRESHOLDS__CPU", "150"),
            ("FLEETWATCH_EMAIL__MIN_SEVERITY", "urgent"),
        ],
    )
    def test_invalid_values_are_rejected(
        self, monkeypatch: pytest.MonkeyPatch, variable: str, value: str
    ) -> None:
        monkeypatch.setenv(variable, value)

        with pytest.raises(pydantic.ValidationError):
            Settings()
