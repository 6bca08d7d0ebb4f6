"""Exception hierarchy shared across the alerting core."""

from __future__ import annotations

from typing import Any


class AlertingError(Exception):
    """Uniform wrapper for unexpected failures at the orchestrator boundary.

    Carries the component and action that failed, plus the underlying cause.
    """

    def __init__(
        self,
        message: str,
        *,
        component: str = "",
        action: str = "",
        cause: BaseException | None = None,
    ) -> None:
        super().__init__(message)
        self.component = component
        self.action = action
        self.cause = cause

    @classmethod
    def from_exception(
        cls,
        exc: BaseException,
        *,
        component: str,
        action: str,
    ) -> AlertingError:
        """Wrap an arbitrary exception, passing AlertingError through as-is."""
        if isinstance(exc, AlertingError):
            return exc
        message = f"{component}.{action} failed: {type(exc).__name__}: {exc}"
        return cls(message, component=component, action=action, cause=exc)

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": type(self).__name__,
            "message": str(self),
            "component": self.component,
            "action": self.action,
            "cause": repr(self.cause) if self.cause is not None else None,
        }


class ConfigurationError(AlertingError):
    """Settings could not be loaded or validated."""
