"""Tests for alerting/core/config.py — YAML loading, defaults, SecretStr, rules."""

from __future__ import annotations

from pathlib import Path

import pytest
import yaml

from alerting.core.config import (
    AlertingConfig,
    HealthCheckConfig,
    LoggingConfig,
    NotificationsConfig,
    Settings,
    get_settings,
    load_settings,
    reset_settings,
)
from alerting.core.exceptions import ConfigurationError
from alerting.core.types import Operator, Severity


@pytest.fixture(autouse=True)
def _clean_settings() -> None:
    """Reset the global settings cache before each test."""
    reset_settings()


class TestDefaults:
    """Settings should have sensible defaults when no YAML is provided."""

    def test_default_alerting_config(self) -> None:
        cfg = AlertingConfig()
        assert cfg.enabled is True
        assert cfg.default_cooldown_period_ms == 600_000
        assert cfg.default_escalation_delay_ms == 1_800_000
        assert cfg.metric_retention_period_ms == 86_400_000
        assert cfg.alert_retention_period_ms == 7 * 86_400_000
        assert cfg.incident_retention_period_ms == 30 * 86_400_000
        assert cfg.health_check_interval_ms == 60_000
        assert cfg.max_alerts_in_memory == 10_000

    def test_default_health_check_config(self) -> None:
        cfg = HealthCheckConfig()
        assert cfg.timeout_secs == 10.0
        assert cfg.timeout_sentinel_ms == 30_000

    def test_default_notifications_config(self) -> None:
        cfg = NotificationsConfig()
        assert cfg.slack_webhook_url.get_secret_value() == ""
        assert cfg.pagerduty_routing_key.get_secret_value() == ""
        assert cfg.pagerduty_events_url == "https://events.pagerduty.com/v2/enqueue"
        assert cfg.critical_slack_channel == "#critical-alerts"
        assert len(cfg.escalation_recipients) == 2

    def test_default_logging_config(self) -> None:
        cfg = LoggingConfig()
        assert cfg.level == "INFO"
        assert cfg.format == "json"

    def test_default_settings(self) -> None:
        s = Settings()
        assert s.service.name == "alerting-core"
        assert s.service.environment == "development"
        assert s.rules == []


class TestYamlLoading:
    """Settings should load correctly from YAML files."""

    def test_load_from_yaml(self, tmp_path: Path) -> None:
        config_data = {
            "service": {"name": "api", "environment": "staging"},
            "alerting": {"health_check_interval_ms": 30_000, "max_history_size": 50},
            "notifications": {
                "slack_webhook_url": "https://hooks.slack.test/abc",
                "pagerduty_routing_key": "rk-123",
            },
            "logging": {"level": "DEBUG", "format": "console"},
        }
        config_file = tmp_path / "settings.yaml"
        config_file.write_text(yaml.dump(config_data))

        s = load_settings(config_file)
        assert s.service.environment == "staging"
        assert s.alerting.health_check_interval_ms == 30_000
        assert s.alerting.max_history_size == 50
        assert s.notifications.slack_webhook_url.get_secret_value() == (
            "https://hooks.slack.test/abc"
        )
        assert s.notifications.pagerduty_routing_key.get_secret_value() == "rk-123"
        assert s.logging.format == "console"

    def test_secret_not_in_repr(self, tmp_path: Path) -> None:
        config_file = tmp_path / "settings.yaml"
        config_file.write_text(yaml.dump({"notifications": {"pagerduty_routing_key": "s3cr3t"}}))
        s = load_settings(config_file)
        assert "s3cr3t" not in repr(s.notifications)

    def test_rules_parsed(self, tmp_path: Path) -> None:
        config_data = {
            "rules": [
                {
                    "id": "queue_backlog",
                    "name": "Queue Backlog",
                    "category": "system_health",
                    "severity": "warning",
                    "condition": {
                        "metric": "queue_depth",
                        "operator": "gt",
                        "threshold": 500,
                        "time_window": 300_000,
                    },
                }
            ]
        }
        config_file = tmp_path / "settings.yaml"
        config_file.write_text(yaml.dump(config_data))

        s = load_settings(config_file)
        assert len(s.rules) == 1
        rule = s.rules[0]
        assert rule.severity == Severity.WARNING
        assert rule.condition.operator == Operator.GT
        assert rule.cooldown_period == 600_000

    def test_missing_file_uses_defaults(self, tmp_path: Path) -> None:
        s = load_settings(tmp_path / "nope.yaml")
        assert s.alerting.enabled is True

    def test_empty_file_uses_defaults(self, tmp_path: Path) -> None:
        config_file = tmp_path / "settings.yaml"
        config_file.write_text("")
        s = load_settings(config_file)
        assert s.service.name == "alerting-core"

    def test_invalid_yaml_raises_configuration_error(self, tmp_path: Path) -> None:
        config_file = tmp_path / "settings.yaml"
        config_file.write_text("alerting: [unclosed")
        with pytest.raises(ConfigurationError) as exc_info:
            load_settings(config_file)
        assert exc_info.value.component == "config"

    def test_invalid_value_raises_configuration_error(self, tmp_path: Path) -> None:
        config_file = tmp_path / "settings.yaml"
        config_file.write_text(yaml.dump({"alerting": {"max_history_size": "lots"}}))
        with pytest.raises(ConfigurationError):
            load_settings(config_file)


class TestCache:
    def test_get_settings_caches(self, tmp_path: Path) -> None:
        config_file = tmp_path / "settings.yaml"
        config_file.write_text(yaml.dump({"service": {"name": "cached"}}))
        first = load_settings(config_file)
        assert get_settings() is first

    def test_reset_clears_cache(self, tmp_path: Path) -> None:
        config_file = tmp_path / "settings.yaml"
        config_file.write_text(yaml.dump({"service": {"name": "cached"}}))
        first = load_settings(config_file)
        reset_settings()
        second = load_settings(tmp_path / "missing.yaml")
        assert second is not first
        assert second.service.name == "alerting-core"
