"""Notification dispatcher — concurrent, failure-isolated channel fan-out."""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Sequence

import structlog

from alerting.core.config import NotificationsConfig
from alerting.core.scheduling import now_ms
from alerting.core.types import (
    Alert,
    AlertCategory,
    AlertMetadata,
    ChannelType,
    DeliveryResult,
    DeliveryStatus,
    Incident,
    NotificationChannel,
    NotificationContext,
    Severity,
)
from alerting.notify.channels import ChannelSender, HttpTransport, build_senders
from alerting.notify.exceptions import ChannelConfigError, NotificationDeliveryError
from alerting.notify.formatters import format_escalation

# Dedicated structured logger for delivery decisions.
decision_logger = structlog.get_logger("decision_log")

logger = structlog.get_logger(__name__)


class NotificationDispatcher:
    """Fans one alert out to a list of channels.

    - Disabled channels are ignored; no enabled channel is a debug-level no-op.
    - Enabled channels are sent concurrently; a failure on one channel is
      logged and reported in its DeliveryResult, never raised.
    - No retries happen at this layer.
    """

    def __init__(
        self,
        service: str = "alerting-core",
        environment: str = "development",
        config: NotificationsConfig | None = None,
        *,
        transport: HttpTransport | None = None,
        senders: dict[ChannelType, ChannelSender] | None = None,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self._service = service
        self._environment = environment
        self._config = config or NotificationsConfig()
        self._transport = transport or HttpTransport(self._config.request_timeout_secs)
        self._senders = (
            senders if senders is not None else build_senders(self._transport, self._config)
        )
        self._clock = clock

    @property
    def service(self) -> str:
        return self._service

    @property
    def environment(self) -> str:
        return self._environment

    def channel_problem(self, channel: NotificationChannel) -> str | None:
        """Why ``channel`` cannot be delivered to, or None if it is usable."""
        sender = self._senders.get(channel.type)
        if sender is None:
            return f"no sender for {channel.type.value}"
        try:
            sender.validate(channel)
        except ChannelConfigError as exc:
            return str(exc)
        return None

    def _context(self, alert: Alert, incident: Incident | None = None) -> NotificationContext:
        return NotificationContext(
            alert=alert,
            incident=incident,
            service=self._service,
            environment=self._environment,
            timestamp=self._clock(),
        )

    # ── Fan-out ─────────────────────────────────────────────────

    async def dispatch(
        self,
        alert: Alert,
        channels: Sequence[NotificationChannel],
        incident: Incident | None = None,
    ) -> list[DeliveryResult]:
        """Send ``alert`` to every enabled channel; one result per channel."""
        enabled = [c for c in channels if c.enabled]
        if not enabled:
            logger.debug("no_enabled_channels", alert_id=alert.id)
            return []

        ctx = self._context(alert, incident)
        outcomes = await asyncio.gather(
            *(self._send_to_channel(c, ctx) for c in enabled),
            return_exceptions=True,
        )

        results: list[DeliveryResult] = []
        for channel, outcome in zip(enabled, outcomes):
            if isinstance(outcome, BaseException):
                if not isinstance(outcome, Exception):
                    raise outcome
                logger.error(
                    "notification_failed",
                    channel_type=channel.type.value,
                    channel=channel.label,
                    alert_id=alert.id,
                    error=str(outcome),
                    error_type=type(outcome).__name__,
                )
                status, error = DeliveryStatus.FAILED, str(outcome)
            elif outcome:
                status, error = DeliveryStatus.SENT, None
            else:
                status, error = DeliveryStatus.SKIPPED, None
            results.append(DeliveryResult(
                channel_type=channel.type.value,
                channel_name=channel.label,
                status=status,
                error=error,
            ))

        decision_logger.info(
            "notification_dispatch",
            alert_id=alert.id,
            severity=alert.severity.value,
            incident_id=incident.id if incident is not None else None,
            results={r.channel_name: r.status.value for r in results},
        )
        return results

    async def _send_to_channel(
        self, channel: NotificationChannel, ctx: NotificationContext
    ) -> bool:
        sender = self._senders.get(channel.type)
        if sender is None:
            logger.warning("unknown_channel_type", channel_type=channel.type.value)
            return False
        return await sender.send(channel, ctx)

    # ── Probes & escalation ─────────────────────────────────────

    async def test_channel(self, channel: NotificationChannel) -> bool:
        """Send a synthetic info alert; True if delivery did not raise."""
        now = self._clock()
        alert = Alert(
            id=f"test_{now}",
            title="Test Alert",
            description="This is a test notification from the alerting core",
            severity=Severity.INFO,
            category=AlertCategory.SYSTEM_HEALTH,
            source="NotificationDispatcher",
            timestamp=now,
            metadata=AlertMetadata(test=True),
        )
        try:
            await self._send_to_channel(channel, self._context(alert))
        except Exception as exc:
            logger.error(
                "channel_test_failed",
                channel_type=channel.type.value,
                channel=channel.label,
                error=str(exc),
            )
            return False
        logger.info("channel_test_succeeded", channel_type=channel.type.value)
        return True

    async def send_escalation_webhook(self, url: str, alert: Alert) -> bool:
        """POST ``{type: alert_escalation, ...}`` to ``url``; never raises."""
        try:
            await self._transport.post_json(url, format_escalation(alert, self._clock()))
        except NotificationDeliveryError as exc:
            logger.error("escalation_webhook_failed", alert_id=alert.id, error=str(exc))
            return False
        return True

    # ── Lifecycle ───────────────────────────────────────────────

    async def close(self) -> None:
        try:
            await self._transport.close()
        except Exception:
            logger.exception("transport_close_error")
