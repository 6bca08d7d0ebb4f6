"""Tests for channel senders — HTTP mocking, skip-on-missing-config, errors."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import aiohttp
import pytest
from pydantic import SecretStr

from alerting.core.config import NotificationsConfig
from alerting.core.types import (
    Alert,
    AlertCategory,
    ChannelType,
    NotificationChannel,
    NotificationContext,
    Severity,
)
from alerting.notify.channels import (
    EmailSender,
    HttpTransport,
    PagerDutySender,
    SlackSender,
    SmsSender,
    WebhookSender,
    build_senders,
)
from alerting.notify.exceptions import ChannelConfigError, NotificationDeliveryError

# ── Helpers ─────────────────────────────────────────────────────


def _ctx(severity: Severity = Severity.WARNING) -> NotificationContext:
    alert = Alert(
        id="a1",
        title="Test",
        description="desc",
        severity=severity,
        category=AlertCategory.API_PERFORMANCE,
        source="test",
        timestamp=1_000,
    )
    return NotificationContext(
        alert=alert, service="api", environment="test", timestamp=1_000
    )


def _defaults(**kw: object) -> NotificationsConfig:
    return NotificationsConfig(**kw)  # type: ignore[arg-type]


def _mock_response(status: int = 200, text: str = "ok") -> AsyncMock:
    resp = AsyncMock()
    resp.status = status
    resp.text = AsyncMock(return_value=text)
    resp.__aenter__ = AsyncMock(return_value=resp)
    resp.__aexit__ = AsyncMock(return_value=False)
    return resp


def _transport(resp: AsyncMock | None = None, side_effect: Exception | None = None) -> tuple[HttpTransport, MagicMock]:
    transport = HttpTransport()
    session = MagicMock()
    session.closed = False
    if side_effect is not None:
        session.post = MagicMock(side_effect=side_effect)
    else:
        session.post = MagicMock(return_value=resp or _mock_response())
    transport._session = session
    return transport, session


def _channel(channel_type: ChannelType, **config: object) -> NotificationChannel:
    return NotificationChannel(type=channel_type, config=config)


# ── HttpTransport ───────────────────────────────────────────────


class TestHttpTransport:
    async def test_post_success(self) -> None:
        transport, session = _transport()
        status = await transport.post_json("https://x.test", {"a": 1}, {"X-Key": "v"})
        assert status == 200
        args, kwargs = session.post.call_args
        assert args[0] == "https://x.test"
        assert kwargs["json"] == {"a": 1}
        assert kwargs["headers"] == {"X-Key": "v"}

    async def test_non_2xx_raises(self) -> None:
        transport, _ = _transport(_mock_response(503, "unavailable"))
        with pytest.raises(NotificationDeliveryError) as exc_info:
            await transport.post_json("https://x.test", {})
        assert exc_info.value.status == 503
        assert exc_info.value.body == "unavailable"

    async def test_client_error_wrapped(self) -> None:
        transport, _ = _transport(side_effect=aiohttp.ClientConnectionError("refused"))
        with pytest.raises(NotificationDeliveryError):
            await transport.post_json("https://x.test", {})

    async def test_close(self) -> None:
        transport, session = _transport()
        session.close = AsyncMock()
        await transport.close()
        session.close.assert_awaited_once()
        assert transport._session is None


# ── Slack ───────────────────────────────────────────────────────


class TestSlackSender:
    async def test_uses_default_webhook_and_critical_channel(self) -> None:
        transport, session = _transport()
        sender = SlackSender(transport, _defaults(slack_webhook_url=SecretStr("https://slack.test/hook")))
        assert await sender.send(_channel(ChannelType.SLACK), _ctx(Severity.CRITICAL))
        args, kwargs = session.post.call_args
        assert args[0] == "https://slack.test/hook"
        assert kwargs["json"]["channel"] == "#critical-alerts"

    async def test_channel_config_overrides(self) -> None:
        transport, session = _transport()
        sender = SlackSender(transport, _defaults())
        channel = _channel(ChannelType.SLACK, webhook_url="https://own.test", channel="#team")
        assert await sender.send(channel, _ctx())
        args, kwargs = session.post.call_args
        assert args[0] == "https://own.test"
        assert kwargs["json"]["channel"] == "#team"

    async def test_missing_webhook_skips(self) -> None:
        transport, session = _transport()
        sender = SlackSender(transport, _defaults())
        assert await sender.send(_channel(ChannelType.SLACK), _ctx()) is False
        session.post.assert_not_called()

    def test_validate_raises_config_error(self) -> None:
        transport, _ = _transport()
        sender = SlackSender(transport, _defaults())
        with pytest.raises(ChannelConfigError):
            sender.validate(_channel(ChannelType.SLACK))


# ── Email / SMS ─────────────────────────────────────────────────


class TestEmailSender:
    async def test_sends_to_recipients(self) -> None:
        transport, session = _transport()
        sender = EmailSender(transport, _defaults(email_endpoint="https://mail.test/send"))
        channel = _channel(ChannelType.EMAIL, recipients=["a@example.com"])
        assert await sender.send(channel, _ctx())
        args, kwargs = session.post.call_args
        assert args[0] == "https://mail.test/send"
        assert kwargs["json"]["to"] == ["a@example.com"]

    async def test_no_recipients_skips(self) -> None:
        transport, session = _transport()
        sender = EmailSender(transport, _defaults(email_endpoint="https://mail.test/send"))
        assert await sender.send(_channel(ChannelType.EMAIL, recipients=[]), _ctx()) is False
        session.post.assert_not_called()

    async def test_no_endpoint_skips(self) -> None:
        transport, session = _transport()
        sender = EmailSender(transport, _defaults())
        channel = _channel(ChannelType.EMAIL, recipients=["a@example.com"])
        assert await sender.send(channel, _ctx()) is False


class TestSmsSender:
    async def test_sends_message(self) -> None:
        transport, session = _transport()
        sender = SmsSender(transport, _defaults(sms_endpoint="https://sms.test"))
        channel = _channel(ChannelType.SMS, phone_numbers=["+15550100"])
        assert await sender.send(channel, _ctx())
        assert session.post.call_args[1]["json"]["to"] == ["+15550100"]

    async def test_no_numbers_skips(self) -> None:
        transport, _ = _transport()
        sender = SmsSender(transport, _defaults(sms_endpoint="https://sms.test"))
        assert await sender.send(_channel(ChannelType.SMS), _ctx()) is False


# ── Webhook / PagerDuty ─────────────────────────────────────────


class TestWebhookSender:
    async def test_posts_envelope_with_headers(self) -> None:
        transport, session = _transport()
        sender = WebhookSender(transport, _defaults())
        channel = _channel(ChannelType.WEBHOOK, url="https://hook.test", headers={"X-Token": "t"})
        assert await sender.send(channel, _ctx())
        args, kwargs = session.post.call_args
        assert args[0] == "https://hook.test"
        assert kwargs["json"]["type"] == "alert"
        assert kwargs["headers"] == {"X-Token": "t"}

    async def test_missing_url_skips(self) -> None:
        transport, _ = _transport()
        sender = WebhookSender(transport, _defaults())
        assert await sender.send(_channel(ChannelType.WEBHOOK), _ctx()) is False

    async def test_delivery_error_propagates(self) -> None:
        transport, _ = _transport(_mock_response(500, "boom"))
        sender = WebhookSender(transport, _defaults())
        with pytest.raises(NotificationDeliveryError):
            await sender.send(_channel(ChannelType.WEBHOOK, url="https://hook.test"), _ctx())


class TestPagerDutySender:
    async def test_default_events_url_and_key(self) -> None:
        transport, session = _transport(_mock_response(202))
        sender = PagerDutySender(transport, _defaults(pagerduty_routing_key=SecretStr("rk")))
        assert await sender.send(_channel(ChannelType.PAGERDUTY), _ctx())
        args, kwargs = session.post.call_args
        assert args[0] == "https://events.pagerduty.com/v2/enqueue"
        assert kwargs["json"]["routing_key"] == "rk"
        assert kwargs["json"]["dedup_key"] == "a1"

    async def test_missing_key_skips(self) -> None:
        transport, _ = _transport()
        sender = PagerDutySender(transport, _defaults())
        assert await sender.send(_channel(ChannelType.PAGERDUTY), _ctx()) is False


class TestBuildSenders:
    def test_one_sender_per_type(self) -> None:
        senders = build_senders(HttpTransport(), _defaults())
        assert set(senders) == set(ChannelType)
        assert all(s.channel_type == t for t, s in senders.items())
