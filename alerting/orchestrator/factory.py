"""Convenience factory for wiring the alerting stack from settings."""

from __future__ import annotations

from alerting.core.config import Settings, get_settings
from alerting.core.scheduling import AsyncioScheduler, Scheduler
from alerting.health.probe import HealthProbe
from alerting.incidents.manager import IncidentManager
from alerting.metrics.store import MetricStore
from alerting.notify.dispatcher import NotificationDispatcher
from alerting.orchestrator.manager import AlertManager
from alerting.rules.engine import RuleEngine


def create_alert_manager(
    settings: Settings | None = None,
    scheduler: Scheduler | None = None,
) -> AlertManager:
    """Build an AlertManager and its components from ``settings``.

    Rules from ``settings.rules`` are merged over the seed catalog by id.
    Every component shares the scheduler's clock.

    Returns:
        An AlertManager that still needs ``await manager.initialize()``.
    """
    settings = settings or get_settings()
    scheduler = scheduler or AsyncioScheduler()
    clock = scheduler.now_ms
    cfg = settings.alerting

    store = MetricStore(
        max_history_size=cfg.max_history_size,
        retention_ms=cfg.metric_retention_period_ms,
        clock=clock,
    )
    rules = RuleEngine(store, settings.rules)
    incidents = IncidentManager(
        max_incidents_in_memory=cfg.max_incidents_in_memory,
        grouping_window_ms=cfg.incident_grouping_window_ms,
        clock=clock,
    )
    dispatcher = NotificationDispatcher(
        settings.service.name,
        settings.service.environment,
        settings.notifications,
        clock=clock,
    )
    probe = HealthProbe(settings.health_check, clock=clock)

    return AlertManager(
        cfg,
        service=settings.service,
        notifications=settings.notifications,
        health_check=settings.health_check,
        scheduler=scheduler,
        store=store,
        rules=rules,
        incidents=incidents,
        dispatcher=dispatcher,
        probe=probe,
    )
