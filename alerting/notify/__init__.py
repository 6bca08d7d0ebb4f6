"""Notification delivery — channel senders, payload formatters, dispatcher."""

from alerting.notify.channels import (
    ChannelSender,
    EmailSender,
    HttpTransport,
    PagerDutySender,
    SlackSender,
    SmsSender,
    WebhookSender,
    build_senders,
)
from alerting.notify.dispatcher import NotificationDispatcher
from alerting.notify.exceptions import (
    ChannelConfigError,
    NotificationDeliveryError,
    NotificationError,
)
from alerting.notify.formatters import (
    format_email,
    format_escalation,
    format_pagerduty,
    format_slack,
    format_sms,
    format_webhook,
)

__all__ = [
    "ChannelConfigError",
    "ChannelSender",
    "EmailSender",
    "HttpTransport",
    "NotificationDeliveryError",
    "NotificationDispatcher",
    "NotificationError",
    "PagerDutySender",
    "SlackSender",
    "SmsSender",
    "WebhookSender",
    "build_senders",
    "format_email",
    "format_escalation",
    "format_pagerduty",
    "format_slack",
    "format_sms",
    "format_webhook",
]
