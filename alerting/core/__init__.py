"""Core module — config, types, logging, scheduling."""

from alerting.core.config import Settings, get_settings, load_settings, reset_settings
from alerting.core.exceptions import AlertingError, ConfigurationError
from alerting.core.logging import setup_logging
from alerting.core.scheduling import (
    AsyncioScheduler,
    ScheduledTask,
    Scheduler,
    VirtualScheduler,
    now_ms,
)
from alerting.core.types import (
    Alert,
    AlertCategory,
    AlertCondition,
    AlertMetadata,
    AlertRule,
    AlertStatus,
    ChannelType,
    Incident,
    IncidentStatus,
    ManualAlert,
    NotificationChannel,
    Operator,
    Severity,
)

__all__ = [
    "Alert",
    "AlertCategory",
    "AlertCondition",
    "AlertMetadata",
    "AlertRule",
    "AlertStatus",
    "AlertingError",
    "AsyncioScheduler",
    "ChannelType",
    "ConfigurationError",
    "Incident",
    "IncidentStatus",
    "ManualAlert",
    "NotificationChannel",
    "Operator",
    "ScheduledTask",
    "Scheduler",
    "Settings",
    "Severity",
    "VirtualScheduler",
    "get_settings",
    "load_settings",
    "now_ms",
    "reset_settings",
    "setup_logging",
]
