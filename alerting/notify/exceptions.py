"""Exception hierarchy for notification delivery."""

from __future__ import annotations


class NotificationError(Exception):
    """Base exception for all notification errors."""


class NotificationDeliveryError(NotificationError):
    """Transport failure — non-2xx response, timeout or network error."""

    def __init__(self, message: str, status: int | None = None, body: str = "") -> None:
        super().__init__(message)
        self.status = status
        self.body = body


class ChannelConfigError(NotificationError):
    """A channel's configuration is missing something it needs."""
