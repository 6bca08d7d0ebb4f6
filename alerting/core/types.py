"""Domain types for the alerting core — all timestamps are epoch milliseconds."""

from __future__ import annotations

from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class Severity(StrEnum):
    """Alert severity — ordered info < warning < error < critical."""

    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"

    @property
    def level(self) -> int:
        return _SEVERITY_LEVELS[self]


_SEVERITY_LEVELS: dict[Severity, int] = {
    Severity.INFO: 1,
    Severity.WARNING: 2,
    Severity.ERROR: 3,
    Severity.CRITICAL: 4,
}

# Severities that open or join an incident.
INCIDENT_SEVERITIES: frozenset[Severity] = frozenset({Severity.ERROR, Severity.CRITICAL})


def max_severity(a: Severity, b: Severity) -> Severity:
    """Return the more severe of two severities (``a`` on ties)."""
    return b if b.level > a.level else a


class AlertCategory(StrEnum):
    """Coarse classification used for incident correlation and routing."""

    SYSTEM_HEALTH = "system_health"
    API_PERFORMANCE = "api_performance"
    DATABASE = "database"
    AI_SERVICE = "ai_service"
    SECURITY = "security"
    USER_EXPERIENCE = "user_experience"
    BUSINESS_METRIC = "business_metric"


class Operator(StrEnum):
    """Comparison operator of a rule condition."""

    GT = "gt"
    LT = "lt"
    GTE = "gte"
    LTE = "lte"
    EQ = "eq"
    CONTAINS = "contains"
    NOT_CONTAINS = "not_contains"


class AlertStatus(StrEnum):
    ACTIVE = "active"
    RESOLVED = "resolved"
    SUPPRESSED = "suppressed"
    ESCALATED = "escalated"


class IncidentStatus(StrEnum):
    OPEN = "open"
    INVESTIGATING = "investigating"
    RESOLVED = "resolved"
    CLOSED = "closed"


class ChannelType(StrEnum):
    SLACK = "slack"
    EMAIL = "email"
    SMS = "sms"
    WEBHOOK = "webhook"
    PAGERDUTY = "pagerduty"


class DeliveryStatus(StrEnum):
    SENT = "sent"
    SKIPPED = "skipped"
    FAILED = "failed"


# ── Metrics ─────────────────────────────────────────────────────


class MetricSample(BaseModel):
    """A single recorded metric value."""

    model_config = ConfigDict(frozen=True)

    value: float
    timestamp: int


# ── Rules ───────────────────────────────────────────────────────


class NotificationChannel(BaseModel):
    """Where to deliver a notification — passed by value at dispatch time."""

    model_config = ConfigDict(frozen=True)

    type: ChannelType
    config: dict[str, Any] = Field(default_factory=dict)
    enabled: bool = True
    id: str | None = None
    name: str | None = None

    @property
    def label(self) -> str:
        return self.name or self.id or self.type.value


class AlertCondition(BaseModel):
    """Threshold condition a rule evaluates against one metric."""

    metric: str
    operator: Operator
    threshold: float | str
    time_window: int
    consecutive_failures: int | None = None


class AlertRule(BaseModel):
    """A standing threshold definition with routing and timing policy."""

    id: str
    name: str
    description: str = ""
    category: AlertCategory
    severity: Severity
    condition: AlertCondition
    enabled: bool = True
    cooldown_period: int = 600_000
    escalation_delay: int = 0
    notification_channels: list[NotificationChannel] = Field(default_factory=list)


# ── Alerts ──────────────────────────────────────────────────────


class AlertMetadata(BaseModel):
    """Alert metadata with documented well-known keys.

    Rule-triggered alerts always carry ``rule_id``, ``metric``, ``value``,
    ``threshold`` and ``operator``. Extra keys are accepted for manual alerts.
    """

    model_config = ConfigDict(extra="allow")

    rule_id: str | None = None
    metric: str | None = None
    value: float | None = None
    threshold: float | str | None = None
    operator: Operator | None = None
    labels: dict[str, str] | None = None
    suppression_reason: str | None = None

    def as_dict(self) -> dict[str, Any]:
        """Flatten to a JSON-safe dict, omitting unset keys."""
        return self.model_dump(mode="json", exclude_none=True)


class Alert(BaseModel):
    """A triggered alert. Severity is fixed at creation."""

    id: str
    title: str
    description: str
    severity: Severity
    category: AlertCategory
    source: str
    timestamp: int
    metadata: AlertMetadata = Field(default_factory=AlertMetadata)
    status: AlertStatus = AlertStatus.ACTIVE
    resolved: bool = False
    resolved_at: int | None = None
    resolved_by: str | None = None
    escalated: bool = False
    escalated_at: int | None = None
    suppressed_until: int | None = None

    def is_suppressed(self, now: int) -> bool:
        return self.suppressed_until is not None and self.suppressed_until > now


class ManualAlert(BaseModel):
    """Input for an alert raised outside the rule system."""

    type: str
    message: str
    severity: Severity
    category: AlertCategory | None = None
    source: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)


# ── Incidents ───────────────────────────────────────────────────


class TimelineEntry(BaseModel):
    """Append-only audit record of one incident mutation."""

    timestamp: int
    action: str
    description: str
    user: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class Incident(BaseModel):
    """A time-bounded grouping of related alerts."""

    id: str
    title: str
    description: str
    severity: Severity
    status: IncidentStatus = IncidentStatus.OPEN
    alerts: list[Alert] = Field(default_factory=list)
    assignee: str | None = None
    created_at: int
    updated_at: int
    resolved_at: int | None = None
    timeline: list[TimelineEntry] = Field(default_factory=list)

    @property
    def categories(self) -> set[AlertCategory]:
        return {a.category for a in self.alerts}


# ── Notifications ───────────────────────────────────────────────


class NotificationContext(BaseModel):
    """Everything a channel formatter needs to render one notification."""

    alert: Alert
    incident: Incident | None = None
    service: str
    environment: str
    timestamp: int


class DeliveryResult(BaseModel):
    """Outcome of delivering one alert to one channel."""

    channel_type: str
    channel_name: str
    status: DeliveryStatus
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.status == DeliveryStatus.SENT


# ── Health ──────────────────────────────────────────────────────


class HealthCheckResult(BaseModel):
    """Outcome of one health probe round-trip."""

    service: str = "api"
    healthy: bool
    response_time_ms: int
    database_healthy: bool = False
    ai_success_rate: float | None = None
    error: str | None = None
    timestamp: int


# ── Statistics snapshots ────────────────────────────────────────


class RuleStatistics(BaseModel):
    total_rules: int
    enabled_rules: int
    disabled_rules: int
    rules_by_category: dict[str, int] = Field(default_factory=dict)
    rules_by_severity: dict[str, int] = Field(default_factory=dict)


class IncidentStatistics(BaseModel):
    total: int
    open: int
    investigating: int
    resolved: int
    closed: int
    by_severity: dict[str, int] = Field(default_factory=dict)
    by_category: dict[str, int] = Field(default_factory=dict)
    average_resolution_time: float = 0.0


class AlertStatistics(BaseModel):
    total_alerts: int
    active_alerts: int
    resolved_alerts: int
    escalated_alerts: int
    suppressed_alerts: int
    critical_alerts: int
    alerts_by_severity: dict[str, int] = Field(default_factory=dict)
    alerts_by_category: dict[str, int] = Field(default_factory=dict)
    open_incidents: int
    average_resolution_time: float = 0.0
    mttr: float = 0.0
    mtbf: float = 0.0
