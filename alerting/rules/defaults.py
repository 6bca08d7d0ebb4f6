"""Seed rule catalog installed when a RuleEngine is created."""

from __future__ import annotations

from alerting.core.types import (
    AlertCategory,
    AlertCondition,
    AlertRule,
    ChannelType,
    NotificationChannel,
    Operator,
    Severity,
)

_MINUTE_MS = 60_000


def _slack(channel: str) -> NotificationChannel:
    return NotificationChannel(type=ChannelType.SLACK, config={"channel": channel})


def _email(*recipients: str) -> NotificationChannel:
    return NotificationChannel(
        type=ChannelType.EMAIL, config={"recipients": list(recipients)}
    )


def default_rules() -> list[AlertRule]:
    """Return fresh copies of the built-in rules."""
    return [
        AlertRule(
            id="high_api_response_time",
            name="High API Response Time",
            description="API response time exceeds acceptable threshold",
            category=AlertCategory.API_PERFORMANCE,
            severity=Severity.WARNING,
            condition=AlertCondition(
                metric="api_response_time",
                operator=Operator.GT,
                threshold=5000,
                time_window=5 * _MINUTE_MS,
                consecutive_failures=3,
            ),
            cooldown_period=10 * _MINUTE_MS,
            escalation_delay=30 * _MINUTE_MS,
            notification_channels=[_slack("#alerts")],
        ),
        AlertRule(
            id="critical_api_response_time",
            name="Critical API Response Time",
            description="API response time is critically high",
            category=AlertCategory.API_PERFORMANCE,
            severity=Severity.CRITICAL,
            condition=AlertCondition(
                metric="api_response_time",
                operator=Operator.GT,
                threshold=15000,
                time_window=3 * _MINUTE_MS,
                consecutive_failures=2,
            ),
            cooldown_period=5 * _MINUTE_MS,
            escalation_delay=15 * _MINUTE_MS,
            notification_channels=[
                _slack("#critical-alerts"),
                _email("oncall@example.com"),
            ],
        ),
        AlertRule(
            id="high_error_rate",
            name="High Error Rate",
            description="API error rate exceeds acceptable threshold",
            category=AlertCategory.SYSTEM_HEALTH,
            severity=Severity.ERROR,
            condition=AlertCondition(
                metric="error_rate",
                operator=Operator.GT,
                threshold=5,
                time_window=5 * _MINUTE_MS,
                consecutive_failures=2,
            ),
            cooldown_period=10 * _MINUTE_MS,
            escalation_delay=20 * _MINUTE_MS,
            notification_channels=[_slack("#alerts")],
        ),
        # database_health is recorded as 1 (healthy) / 0 (unhealthy).
        AlertRule(
            id="database_connection_failure",
            name="Database Connection Failure",
            description="Unable to connect to database",
            category=AlertCategory.DATABASE,
            severity=Severity.CRITICAL,
            condition=AlertCondition(
                metric="database_health",
                operator=Operator.LT,
                threshold=1,
                time_window=_MINUTE_MS,
                consecutive_failures=1,
            ),
            cooldown_period=3 * _MINUTE_MS,
            escalation_delay=5 * _MINUTE_MS,
            notification_channels=[
                _slack("#critical-alerts"),
                _email("oncall@example.com", "dba@example.com"),
            ],
        ),
        AlertRule(
            id="ai_service_failure",
            name="AI Service Failure",
            description="AI service success rate is degraded",
            category=AlertCategory.AI_SERVICE,
            severity=Severity.ERROR,
            condition=AlertCondition(
                metric="ai_success_rate",
                operator=Operator.LT,
                threshold=90,
                time_window=10 * _MINUTE_MS,
                consecutive_failures=2,
            ),
            cooldown_period=15 * _MINUTE_MS,
            escalation_delay=30 * _MINUTE_MS,
            notification_channels=[_slack("#ai-alerts")],
        ),
        AlertRule(
            id="security_breach_attempt",
            name="Security Breach Attempt",
            description="Potential security breach detected",
            category=AlertCategory.SECURITY,
            severity=Severity.CRITICAL,
            condition=AlertCondition(
                metric="failed_login_attempts",
                operator=Operator.GT,
                threshold=10,
                time_window=5 * _MINUTE_MS,
                consecutive_failures=1,
            ),
            cooldown_period=10 * _MINUTE_MS,
            escalation_delay=5 * _MINUTE_MS,
            notification_channels=[
                _slack("#security-alerts"),
                _email("security@example.com", "oncall@example.com"),
            ],
        ),
    ]
