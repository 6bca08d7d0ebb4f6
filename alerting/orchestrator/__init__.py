"""Alert orchestration — the AlertManager service and its factory."""

from alerting.orchestrator.factory import create_alert_manager
from alerting.orchestrator.manager import AlertManager

__all__ = ["AlertManager", "create_alert_manager"]
