"""Notification senders — Slack, email, SMS, webhook and PagerDuty delivery.

Each sender renders a payload with :mod:`alerting.notify.formatters` and
posts it through a shared :class:`HttpTransport`. Missing configuration is
a skip (``send`` returns False and logs a warning); transport failures
raise :class:`NotificationDeliveryError` for the dispatcher to isolate.
"""

from __future__ import annotations

import abc
import asyncio
from typing import Any

import aiohttp
import structlog

from alerting.core.config import NotificationsConfig
from alerting.core.types import (
    ChannelType,
    NotificationChannel,
    NotificationContext,
    Severity,
)
from alerting.notify.exceptions import ChannelConfigError, NotificationDeliveryError
from alerting.notify.formatters import (
    format_email,
    format_pagerduty,
    format_slack,
    format_sms,
    format_webhook,
)

logger = structlog.get_logger(__name__)


class HttpTransport:
    """JSON-over-HTTP POST with one lazily created aiohttp session."""

    def __init__(self, timeout_secs: float = 10.0) -> None:
        self._timeout = aiohttp.ClientTimeout(total=timeout_secs)
        self._session: aiohttp.ClientSession | None = None

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
        return self._session

    async def post_json(
        self,
        url: str,
        payload: dict[str, Any],
        headers: dict[str, str] | None = None,
    ) -> int:
        """POST ``payload`` as JSON. Returns the status; raises on non-2xx."""
        try:
            session = self._get_session()
            async with session.post(url, json=payload, headers=headers) as resp:
                if 200 <= resp.status < 300:
                    return resp.status
                body = await resp.text()
                raise NotificationDeliveryError(
                    f"HTTP request failed: {resp.status}",
                    status=resp.status,
                    body=body[:200],
                )
        except NotificationDeliveryError:
            raise
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            raise NotificationDeliveryError(f"HTTP request failed: {exc!r}") from exc

    async def close(self) -> None:
        if self._session and not self._session.closed:
            await self._session.close()
            self._session = None


class ChannelSender(abc.ABC):
    """Base class for one channel type's delivery logic."""

    channel_type: ChannelType

    def __init__(self, transport: HttpTransport, defaults: NotificationsConfig) -> None:
        self._transport = transport
        self._defaults = defaults

    @abc.abstractmethod
    def missing_config(self, channel: NotificationChannel) -> str | None:
        """Describe what required config is absent, or None if complete."""

    @abc.abstractmethod
    async def deliver(self, channel: NotificationChannel, ctx: NotificationContext) -> None:
        """Render and post the payload. Raises NotificationDeliveryError."""

    def validate(self, channel: NotificationChannel) -> None:
        problem = self.missing_config(channel)
        if problem is not None:
            raise ChannelConfigError(f"{channel.label}: {problem}")

    async def send(self, channel: NotificationChannel, ctx: NotificationContext) -> bool:
        """Deliver unless config is missing. Returns False when skipped."""
        problem = self.missing_config(channel)
        if problem is not None:
            logger.warning(
                "notification_channel_skipped",
                channel_type=self.channel_type.value,
                channel=channel.label,
                reason=problem,
                alert_id=ctx.alert.id,
            )
            return False
        await self.deliver(channel, ctx)
        logger.debug(
            "notification_sent",
            channel_type=self.channel_type.value,
            channel=channel.label,
            alert_id=ctx.alert.id,
        )
        return True


class SlackSender(ChannelSender):
    """Slack incoming webhook with severity-coloured attachments."""

    channel_type = ChannelType.SLACK

    def _webhook_url(self, channel: NotificationChannel) -> str:
        return (
            channel.config.get("webhook_url")
            or self._defaults.slack_webhook_url.get_secret_value()
        )

    def missing_config(self, channel: NotificationChannel) -> str | None:
        if not self._webhook_url(channel):
            return "Slack webhook URL not configured"
        return None

    async def deliver(self, channel: NotificationChannel, ctx: NotificationContext) -> None:
        default = (
            self._defaults.critical_slack_channel
            if ctx.alert.severity == Severity.CRITICAL
            else self._defaults.default_slack_channel
        )
        target = channel.config.get("channel") or default
        await self._transport.post_json(self._webhook_url(channel), format_slack(ctx, target))


class EmailSender(ChannelSender):
    """Generic email-send endpoint; needs at least one recipient."""

    channel_type = ChannelType.EMAIL

    def _endpoint(self, channel: NotificationChannel) -> str:
        return channel.config.get("endpoint") or self._defaults.email_endpoint

    def missing_config(self, channel: NotificationChannel) -> str | None:
        if not self._endpoint(channel):
            return "Email notification endpoint not configured"
        if not channel.config.get("recipients"):
            return "No email recipients configured"
        return None

    async def deliver(self, channel: NotificationChannel, ctx: NotificationContext) -> None:
        payload = format_email(ctx, channel.config["recipients"])
        await self._transport.post_json(self._endpoint(channel), payload)


class SmsSender(ChannelSender):
    """Generic SMS-send endpoint; needs at least one phone number."""

    channel_type = ChannelType.SMS

    def _endpoint(self, channel: NotificationChannel) -> str:
        return channel.config.get("endpoint") or self._defaults.sms_endpoint

    def missing_config(self, channel: NotificationChannel) -> str | None:
        if not self._endpoint(channel):
            return "SMS notification endpoint not configured"
        if not channel.config.get("phone_numbers"):
            return "No SMS recipients configured"
        return None

    async def deliver(self, channel: NotificationChannel, ctx: NotificationContext) -> None:
        payload = format_sms(ctx, channel.config["phone_numbers"])
        await self._transport.post_json(self._endpoint(channel), payload)


class WebhookSender(ChannelSender):
    """Arbitrary URL receiving the raw alert envelope, with optional headers."""

    channel_type = ChannelType.WEBHOOK

    def missing_config(self, channel: NotificationChannel) -> str | None:
        if not channel.config.get("url"):
            return "Webhook URL not configured"
        return None

    async def deliver(self, channel: NotificationChannel, ctx: NotificationContext) -> None:
        headers = {str(k): str(v) for k, v in (channel.config.get("headers") or {}).items()}
        await self._transport.post_json(
            channel.config["url"], format_webhook(ctx), headers=headers or None
        )


class PagerDutySender(ChannelSender):
    """PagerDuty Events v2 ``trigger`` events."""

    channel_type = ChannelType.PAGERDUTY

    def _routing_key(self, channel: NotificationChannel) -> str:
        return (
            channel.config.get("routing_key")
            or self._defaults.pagerduty_routing_key.get_secret_value()
        )

    def missing_config(self, channel: NotificationChannel) -> str | None:
        if not self._routing_key(channel):
            return "PagerDuty routing key not configured"
        return None

    async def deliver(self, channel: NotificationChannel, ctx: NotificationContext) -> None:
        url = channel.config.get("events_url") or self._defaults.pagerduty_events_url
        await self._transport.post_json(url, format_pagerduty(ctx, self._routing_key(channel)))


def build_senders(
    transport: HttpTransport, defaults: NotificationsConfig
) -> dict[ChannelType, ChannelSender]:
    """One sender per channel type, all sharing ``transport``."""
    senders: list[ChannelSender] = [
        SlackSender(transport, defaults),
        EmailSender(transport, defaults),
        SmsSender(transport, defaults),
        WebhookSender(transport, defaults),
        PagerDutySender(transport, defaults),
    ]
    return {s.channel_type: s for s in senders}
