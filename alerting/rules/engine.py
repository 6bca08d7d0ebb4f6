"""RuleEngine — rule catalog plus per-sample evaluation with cooldowns."""

from __future__ import annotations

from collections import Counter
from collections.abc import Iterable

import structlog

from alerting.core.operators import as_text, matches
from alerting.core.types import (
    Alert,
    AlertCategory,
    AlertMetadata,
    AlertRule,
    RuleStatistics,
    Severity,
)
from alerting.metrics.store import MetricStore
from alerting.rules.defaults import default_rules

logger = structlog.get_logger(__name__)

ALERT_SOURCE = "RuleEngine"


class RuleEngine:
    """Holds alert rules and turns metric samples into alerts.

    Evaluation order per enabled rule bound to the metric:

    1. cooldown — skipped while ``timestamp - last_trigger < cooldown_period``
    2. the operator against the current value
    3. ``consecutive_failures > 1`` — the trailing N samples in the rule's
       time window must all match as well
    4. trigger — build the alert and start a new cooldown
    """

    def __init__(
        self,
        store: MetricStore,
        rules: Iterable[AlertRule] | None = None,
        *,
        include_defaults: bool = True,
    ) -> None:
        self._store = store
        self._rules: dict[str, AlertRule] = {}
        self._last_trigger: dict[str, int] = {}

        seed = list(default_rules()) if include_defaults else []
        for rule in [*seed, *(rules or [])]:
            self._rules[rule.id] = rule
        logger.info("rules_initialized", count=len(self._rules))

    # ── Evaluation ──────────────────────────────────────────────

    def evaluate(self, metric: str, value: float, timestamp: int) -> list[Alert]:
        """Evaluate every enabled rule for ``metric``; return triggered alerts."""
        triggered: list[Alert] = []
        for rule in self.list_by_metric(metric):
            last = self._last_trigger.get(rule.id)
            if last is not None and timestamp - last < rule.cooldown_period:
                continue

            if not self._condition_met(rule, value, timestamp):
                continue

            alert = self._build_alert(rule, value, timestamp)
            self._last_trigger[rule.id] = timestamp
            triggered.append(alert)
            logger.warning(
                "alert_triggered",
                alert_id=alert.id,
                rule_id=rule.id,
                severity=rule.severity.value,
                value=value,
                threshold=rule.condition.threshold,
            )
        return triggered

    def _condition_met(self, rule: AlertRule, value: float, timestamp: int) -> bool:
        cond = rule.condition
        if not matches(cond.operator, value, cond.threshold):
            return False
        required = cond.consecutive_failures or 1
        if required > 1:
            return self._store.consecutive_matches(
                cond.metric,
                cond.operator,
                cond.threshold,
                required,
                time_window=cond.time_window,
                end_time=timestamp,
            )
        return True

    def _build_alert(self, rule: AlertRule, value: float, timestamp: int) -> Alert:
        cond = rule.condition
        return Alert(
            id=f"{rule.id}_{timestamp}",
            title=rule.name,
            description=(
                f"{rule.description}. Current value: {as_text(value)},"
                f" Threshold: {as_text(cond.threshold)}"
            ),
            severity=rule.severity,
            category=rule.category,
            source=ALERT_SOURCE,
            timestamp=timestamp,
            metadata=AlertMetadata(
                rule_id=rule.id,
                metric=cond.metric,
                value=value,
                threshold=cond.threshold,
                operator=cond.operator,
            ),
        )

    # ── Rule management ─────────────────────────────────────────

    def add_or_replace(self, rule: AlertRule) -> None:
        replaced = rule.id in self._rules
        self._rules[rule.id] = rule
        logger.info("rule_saved", rule_id=rule.id, replaced=replaced)

    def remove(self, rule_id: str) -> bool:
        removed = self._rules.pop(rule_id, None) is not None
        if removed:
            self._last_trigger.pop(rule_id, None)
            logger.info("rule_removed", rule_id=rule_id)
        return removed

    def set_enabled(self, rule_id: str, enabled: bool) -> bool:
        rule = self._rules.get(rule_id)
        if rule is None:
            return False
        rule.enabled = enabled
        logger.info("rule_toggled", rule_id=rule_id, enabled=enabled)
        return True

    def get(self, rule_id: str) -> AlertRule | None:
        return self._rules.get(rule_id)

    def list_all(self) -> list[AlertRule]:
        return list(self._rules.values())

    def list_enabled(self) -> list[AlertRule]:
        return [r for r in self._rules.values() if r.enabled]

    def list_by_metric(self, metric: str) -> list[AlertRule]:
        """Enabled rules bound to ``metric`` (the evaluation set)."""
        return [
            r for r in self._rules.values()
            if r.enabled and r.condition.metric == metric
        ]

    def list_by_category(self, category: AlertCategory) -> list[AlertRule]:
        return [r for r in self._rules.values() if r.category == category]

    def list_by_severity(self, severity: Severity) -> list[AlertRule]:
        return [r for r in self._rules.values() if r.severity == severity]

    # ── Cooldowns ───────────────────────────────────────────────

    def last_trigger_time(self, rule_id: str) -> int | None:
        return self._last_trigger.get(rule_id)

    def clear_cooldown(self, rule_id: str) -> None:
        self._last_trigger.pop(rule_id, None)
        logger.info("rule_cooldown_cleared", rule_id=rule_id)

    def clear_all_cooldowns(self) -> None:
        self._last_trigger.clear()
        logger.info("rule_cooldowns_cleared")

    # ── Statistics ──────────────────────────────────────────────

    def statistics(self) -> RuleStatistics:
        rules = list(self._rules.values())
        enabled = sum(1 for r in rules if r.enabled)
        return RuleStatistics(
            total_rules=len(rules),
            enabled_rules=enabled,
            disabled_rules=len(rules) - enabled,
            rules_by_category=dict(Counter(r.category.value for r in rules)),
            rules_by_severity=dict(Counter(r.severity.value for r in rules)),
        )
