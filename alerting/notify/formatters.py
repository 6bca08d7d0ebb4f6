"""Pure functions that render a NotificationContext into channel payloads."""

from __future__ import annotations

import datetime
from typing import Any

from alerting.core.types import Alert, NotificationContext, Severity

FOOTER = "Alerting Core"

SMS_DESCRIPTION_LIMIT = 100

# Slack attachment colours keyed by severity.
_SLACK_COLORS: dict[Severity, str] = {
    Severity.CRITICAL: "#FF0000",  # red
    Severity.ERROR: "#FF6600",     # orange
    Severity.WARNING: "#FFCC00",   # yellow
    Severity.INFO: "#0066FF",      # blue
}

# PagerDuty Events v2 accepts exactly these four severities.
_PAGERDUTY_SEVERITY: dict[Severity, str] = {
    Severity.CRITICAL: "critical",
    Severity.ERROR: "error",
    Severity.WARNING: "warning",
    Severity.INFO: "info",
}


def iso_timestamp(ts_ms: int) -> str:
    """Epoch milliseconds → ISO-8601 UTC with millisecond precision."""
    dt = datetime.datetime.fromtimestamp(ts_ms / 1000, tz=datetime.UTC)
    return dt.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def severity_color(severity: Severity) -> str:
    return _SLACK_COLORS.get(severity, _SLACK_COLORS[Severity.INFO])


def pagerduty_severity(severity: Severity) -> str:
    return _PAGERDUTY_SEVERITY.get(severity, "info")


def _headline(alert: Alert) -> str:
    return f"[{alert.severity.value.upper()}] {alert.title}"


# ── Slack ───────────────────────────────────────────────────────


def format_slack(ctx: NotificationContext, channel: str) -> dict[str, Any]:
    """Incoming-webhook payload with one colour-coded attachment."""
    alert = ctx.alert
    fields: list[dict[str, Any]] = [
        {"title": "Service", "value": ctx.service, "short": True},
        {"title": "Environment", "value": ctx.environment, "short": True},
        {"title": "Category", "value": alert.category.value, "short": True},
        {"title": "Source", "value": alert.source, "short": True},
    ]
    if ctx.incident is not None:
        fields.append({
            "title": "Incident",
            "value": f"{ctx.incident.id} ({ctx.incident.status.value})",
            "short": True,
        })

    return {
        "channel": channel,
        "attachments": [
            {
                "color": severity_color(alert.severity),
                "title": _headline(alert),
                "text": alert.description,
                "fields": fields,
                "footer": FOOTER,
                "ts": ctx.timestamp // 1000,
            }
        ],
    }


# ── Email ───────────────────────────────────────────────────────


def format_email_subject(ctx: NotificationContext) -> str:
    return f"{_headline(ctx.alert)} - {ctx.service}"


def format_email_body(ctx: NotificationContext) -> str:
    """Plain-text body; includes an incident block when one is attached."""
    alert = ctx.alert
    lines = [
        f"Alert: {alert.title}",
        f"Severity: {alert.severity.value.upper()}",
        "",
        "Description:",
        alert.description,
        "",
        "Details:",
        f"- Service: {ctx.service}",
        f"- Environment: {ctx.environment}",
        f"- Category: {alert.category.value}",
        f"- Source: {alert.source}",
        f"- Time: {iso_timestamp(ctx.timestamp)}",
    ]
    if ctx.incident is not None:
        lines += [
            "",
            "Incident:",
            f"- ID: {ctx.incident.id}",
            f"- Status: {ctx.incident.status.value}",
            f"- Alert Count: {len(ctx.incident.alerts)}",
        ]
    lines += ["", "---", FOOTER]
    return "\n".join(lines)


def format_email(ctx: NotificationContext, recipients: list[str]) -> dict[str, Any]:
    return {
        "to": list(recipients),
        "subject": format_email_subject(ctx),
        "body": format_email_body(ctx),
    }


# ── SMS ─────────────────────────────────────────────────────────


def format_sms_message(ctx: NotificationContext) -> str:
    """Single line, description capped at SMS_DESCRIPTION_LIMIT chars."""
    description = " ".join(ctx.alert.description.split())
    return f"{_headline(ctx.alert)}: {description[:SMS_DESCRIPTION_LIMIT]}"


def format_sms(ctx: NotificationContext, phone_numbers: list[str]) -> dict[str, Any]:
    return {"to": list(phone_numbers), "message": format_sms_message(ctx)}


# ── Webhook ─────────────────────────────────────────────────────


def format_webhook(ctx: NotificationContext) -> dict[str, Any]:
    """Raw JSON envelope; ``incident`` only present when attached."""
    payload: dict[str, Any] = {
        "type": "alert",
        "alert": ctx.alert.model_dump(mode="json"),
        "service": ctx.service,
        "environment": ctx.environment,
        "timestamp": ctx.timestamp,
    }
    if ctx.incident is not None:
        payload["incident"] = ctx.incident.model_dump(mode="json")
    return payload


def format_escalation(alert: Alert, timestamp: int) -> dict[str, Any]:
    """Body posted to the escalation webhook."""
    return {
        "type": "alert_escalation",
        "alert": alert.model_dump(mode="json"),
        "timestamp": timestamp,
    }


# ── PagerDuty ───────────────────────────────────────────────────


def format_pagerduty(ctx: NotificationContext, routing_key: str) -> dict[str, Any]:
    """Events v2 ``trigger`` keyed on the alert id for de-duplication."""
    alert = ctx.alert
    details: dict[str, Any] = {
        "alert_id": alert.id,
        "environment": ctx.environment,
        "incident_id": ctx.incident.id if ctx.incident is not None else None,
        "timestamp": iso_timestamp(ctx.timestamp),
    }
    details.update(alert.metadata.as_dict())

    return {
        "routing_key": routing_key,
        "event_action": "trigger",
        "dedup_key": alert.id,
        "payload": {
            "summary": f"{alert.title}: {alert.description}",
            "severity": pagerduty_severity(alert.severity),
            "source": ctx.service,
            "component": alert.source,
            "group": alert.category.value,
            "class": alert.severity.value,
            "custom_details": details,
        },
    }
