"""Health probing of the monitored service."""

from alerting.health.probe import HealthProbe

__all__ = ["HealthProbe"]
