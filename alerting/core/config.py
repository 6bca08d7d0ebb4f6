"""Pydantic settings loaded from YAML configuration."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, SecretStr, ValidationError

from alerting.core.exceptions import ConfigurationError
from alerting.core.types import AlertRule

_settings: Settings | None = None

_DEFAULT_CONFIG_PATH = Path("config/settings.yaml")

_HOUR_MS = 60 * 60 * 1000
_DAY_MS = 24 * _HOUR_MS


class ServiceConfig(BaseModel):
    """Identity stamped on every outgoing notification."""

    name: str = "alerting-core"
    environment: str = "development"


class AlertingConfig(BaseModel):
    """Alert manager behaviour — every duration is in milliseconds."""

    enabled: bool = True
    default_cooldown_period_ms: int = 600_000
    default_escalation_delay_ms: int = 1_800_000
    metric_retention_period_ms: int = _DAY_MS
    alert_retention_period_ms: int = 7 * _DAY_MS
    incident_retention_period_ms: int = 30 * _DAY_MS
    stale_incident_age_ms: int = _DAY_MS
    stale_alert_threshold_ms: int = _DAY_MS
    health_check_interval_ms: int = 60_000
    cleanup_interval_ms: int = _HOUR_MS
    incident_grouping_window_ms: int = _HOUR_MS
    max_history_size: int = 1000
    max_alerts_in_memory: int = 10_000
    max_incidents_in_memory: int = 1000


class HealthCheckConfig(BaseModel):
    """External health endpoint probed by the periodic health loop."""

    url: str = "http://localhost:3000/api/health"
    timeout_secs: float = 10.0
    timeout_sentinel_ms: int = 30_000


class NotificationsConfig(BaseModel):
    """Transport endpoints used when a channel's own config omits them."""

    slack_webhook_url: SecretStr = SecretStr("")
    email_endpoint: str = ""
    sms_endpoint: str = ""
    pagerduty_routing_key: SecretStr = SecretStr("")
    pagerduty_events_url: str = "https://events.pagerduty.com/v2/enqueue"
    request_timeout_secs: float = 10.0
    default_slack_channel: str = "#alerts"
    critical_slack_channel: str = "#critical-alerts"
    escalation_recipients: list[str] = [
        "oncall@example.com",
        "management@example.com",
    ]
    escalation_webhook_url: str = ""


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = "INFO"
    format: str = "json"


class Settings(BaseModel):
    """Root settings container."""

    service: ServiceConfig = ServiceConfig()
    alerting: AlertingConfig = AlertingConfig()
    health_check: HealthCheckConfig = HealthCheckConfig()
    notifications: NotificationsConfig = NotificationsConfig()
    logging: LoggingConfig = LoggingConfig()
    rules: list[AlertRule] = []


def load_settings(path: str | Path | None = None) -> Settings:
    """Load settings from a YAML file and cache globally.

    Args:
        path: Path to YAML config. Defaults to config/settings.yaml.

    Returns:
        Parsed Settings instance.

    Raises:
        ConfigurationError: the file is not valid YAML or fails validation.
    """
    global _settings  # noqa: PLW0603

    config_path = Path(path) if path else _DEFAULT_CONFIG_PATH

    data: dict[str, Any] = {}
    if config_path.exists():
        try:
            with open(config_path) as f:
                raw = yaml.safe_load(f)
        except yaml.YAMLError as exc:
            raise ConfigurationError(
                f"invalid YAML in {config_path}",
                component="config",
                action="load_settings",
                cause=exc,
            ) from exc
        if isinstance(raw, dict):
            data = raw

    try:
        _settings = Settings(**data)
    except ValidationError as exc:
        raise ConfigurationError(
            f"invalid settings in {config_path}: {exc.error_count()} error(s)",
            component="config",
            action="load_settings",
            cause=exc,
        ) from exc
    return _settings


def get_settings() -> Settings:
    """Return the cached settings, loading defaults if not yet loaded."""
    global _settings  # noqa: PLW0603
    if _settings is None:
        _settings = load_settings()
    return _settings


def reset_settings() -> None:
    """Reset the cached settings (useful for testing)."""
    global _settings  # noqa: PLW0603
    _settings = None
