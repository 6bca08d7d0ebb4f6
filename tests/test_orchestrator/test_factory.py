"""Tests for create_alert_manager — wiring from settings."""

from __future__ import annotations

from alerting.core.config import AlertingConfig, ServiceConfig, Settings
from alerting.core.scheduling import VirtualScheduler
from alerting.core.types import (
    AlertCategory,
    AlertCondition,
    AlertRule,
    Operator,
    Severity,
)
from alerting.orchestrator.factory import create_alert_manager
from alerting.orchestrator.manager import AlertManager

# ── Helpers ─────────────────────────────────────────────────────


def _settings(**kw: object) -> Settings:
    return Settings(**kw)  # type: ignore[arg-type]


def _rule(rule_id: str, threshold: float) -> AlertRule:
    return AlertRule(
        id=rule_id,
        name=rule_id,
        category=AlertCategory.API_PERFORMANCE,
        severity=Severity.WARNING,
        condition=AlertCondition(
            metric="api_response_time", operator=Operator.GT, threshold=threshold, time_window=60_000
        ),
    )


# ── Wiring ──────────────────────────────────────────────────────


class TestFactoryWiring:
    def test_defaults(self) -> None:
        manager = create_alert_manager(_settings(), VirtualScheduler())
        assert isinstance(manager, AlertManager)
        assert len(manager.get_rules()) == 6
        assert not manager.initialized

    def test_components_share_scheduler_clock(self) -> None:
        sched = VirtualScheduler(start_ms=123_000)
        manager = create_alert_manager(_settings(), sched)
        assert manager.scheduler is sched
        assert manager.now_ms() == 123_000
        manager.store.record("m", 1.0)
        assert manager.store.latest("m").timestamp == 123_000  # type: ignore[union-attr]

    def test_configured_rules_merge_over_seed(self) -> None:
        settings = _settings(
            rules=[_rule("high_api_response_time", 9_000), _rule("extra", 1)]
        )
        manager = create_alert_manager(settings, VirtualScheduler())
        assert len(manager.get_rules()) == 7
        assert manager.get_rule("high_api_response_time").condition.threshold == 9_000  # type: ignore[union-attr]

    def test_alerting_limits_applied(self) -> None:
        settings = _settings(alerting=AlertingConfig(max_history_size=5))
        manager = create_alert_manager(settings, VirtualScheduler())
        assert manager.store.max_history_size == 5
        assert manager.config.max_history_size == 5

    def test_service_identity_on_dispatcher(self) -> None:
        settings = _settings(service=ServiceConfig(name="billing", environment="staging"))
        manager = create_alert_manager(settings, VirtualScheduler())
        assert manager.dispatcher.service == "billing"
        assert manager.dispatcher.environment == "staging"
