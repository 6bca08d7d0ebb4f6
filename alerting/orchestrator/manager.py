"""AlertManager — wires metrics, rules, incidents and notifications together.

One explicitly constructed instance owns the alert working set, the
per-alert escalation timers and the two periodic loops (health check and
retention cleanup). Everything that happens "later" is scheduled on the
injected :class:`~alerting.core.scheduling.Scheduler`.

Usage::

    manager = AlertManager(settings.alerting, scheduler=AsyncioScheduler())
    await manager.initialize()
    await manager.record_metric("api_response_time", 16_500)
    ...
    await manager.shutdown()
"""

from __future__ import annotations

from collections import Counter
from collections.abc import Mapping, Sequence
from typing import Any

import structlog
from pydantic import ValidationError

from alerting.core.config import (
    AlertingConfig,
    HealthCheckConfig,
    NotificationsConfig,
    ServiceConfig,
)
from alerting.core.exceptions import AlertingError, ConfigurationError
from alerting.core.scheduling import AsyncioScheduler, ScheduledTask, Scheduler
from alerting.core.types import (
    INCIDENT_SEVERITIES,
    Alert,
    AlertCategory,
    AlertMetadata,
    AlertRule,
    AlertStatistics,
    AlertStatus,
    ChannelType,
    DeliveryResult,
    HealthCheckResult,
    Incident,
    IncidentStatistics,
    IncidentStatus,
    ManualAlert,
    NotificationChannel,
    RuleStatistics,
    Severity,
)
from alerting.health.probe import HealthProbe
from alerting.incidents.manager import IncidentManager, random_suffix
from alerting.metrics.store import MetricStore
from alerting.notify.dispatcher import NotificationDispatcher
from alerting.rules.engine import RuleEngine

logger = structlog.get_logger(__name__)

COMPONENT = "AlertManager"
MANUAL_SOURCE = "Manual"
STALE_RESOLVER = "system_auto_resolve"

# Metric names recorded by the health loop.
API_RESPONSE_TIME = "api_response_time"
API_HEALTH = "api_health"
DATABASE_HEALTH = "database_health"
AI_SUCCESS_RATE = "ai_success_rate"


class AlertManager:
    """Orchestrates the record → evaluate → store → group → notify pipeline.

    ``record_metric`` performs every state change (sample, cooldown, alert
    working set, incident grouping, escalation timer) before its first
    ``await``, so concurrent calls never interleave those steps. Only the
    notification fan-out is awaited.
    """

    def __init__(
        self,
        config: AlertingConfig | None = None,
        *,
        service: ServiceConfig | None = None,
        notifications: NotificationsConfig | None = None,
        health_check: HealthCheckConfig | None = None,
        scheduler: Scheduler | None = None,
        store: MetricStore | None = None,
        rules: RuleEngine | None = None,
        incidents: IncidentManager | None = None,
        dispatcher: NotificationDispatcher | None = None,
        probe: HealthProbe | None = None,
    ) -> None:
        self._config = config or AlertingConfig()
        self._service = service or ServiceConfig()
        self._notifications = notifications or NotificationsConfig()
        self._scheduler = scheduler or AsyncioScheduler()
        clock = self._scheduler.now_ms

        self._store = store or MetricStore(
            max_history_size=self._config.max_history_size,
            retention_ms=self._config.metric_retention_period_ms,
            clock=clock,
        )
        self._rules = rules or RuleEngine(self._store)
        self._incidents = incidents or IncidentManager(
            max_incidents_in_memory=self._config.max_incidents_in_memory,
            grouping_window_ms=self._config.incident_grouping_window_ms,
            clock=clock,
        )
        self._dispatcher = dispatcher or NotificationDispatcher(
            self._service.name,
            self._service.environment,
            self._notifications,
            clock=clock,
        )
        self._probe = probe or HealthProbe(health_check, clock=clock)

        self._alerts: dict[str, Alert] = {}
        self._escalations: dict[str, ScheduledTask] = {}
        self._health_task: ScheduledTask | None = None
        self._cleanup_task: ScheduledTask | None = None
        self._initialized = False

    # ── Accessors ───────────────────────────────────────────────

    @property
    def config(self) -> AlertingConfig:
        return self._config

    @property
    def scheduler(self) -> Scheduler:
        return self._scheduler

    @property
    def store(self) -> MetricStore:
        return self._store

    @property
    def rules(self) -> RuleEngine:
        return self._rules

    @property
    def incidents(self) -> IncidentManager:
        return self._incidents

    @property
    def dispatcher(self) -> NotificationDispatcher:
        return self._dispatcher

    @property
    def initialized(self) -> bool:
        return self._initialized

    def now_ms(self) -> int:
        return self._scheduler.now_ms()

    def pending_escalations(self) -> list[str]:
        """Alert ids with a live escalation timer."""
        return [aid for aid, task in self._escalations.items() if not task.done]

    # ── Lifecycle ───────────────────────────────────────────────

    async def initialize(self) -> None:
        """Start the periodic health-check and cleanup loops."""
        if self._initialized:
            return
        try:
            if not self._config.enabled:
                logger.info("alerting_disabled")
            else:
                self._start_loops()
            self._initialized = True
        except AlertingError:
            raise
        except Exception as exc:
            raise self._wrap(exc, "initialize") from exc
        logger.info(
            "alert_manager_initialized",
            enabled=self._config.enabled,
            rules=len(self._rules.list_all()),
            health_check_interval_ms=self._config.health_check_interval_ms,
            cleanup_interval_ms=self._config.cleanup_interval_ms,
        )

    def _start_loops(self) -> None:
        self._stop_loops()
        if self._config.health_check_interval_ms > 0:
            self._health_task = self._scheduler.call_every(
                self._config.health_check_interval_ms,
                self._health_tick,
                name="health_check",
            )
        if self._config.cleanup_interval_ms > 0:
            self._cleanup_task = self._scheduler.call_every(
                self._config.cleanup_interval_ms,
                self._cleanup_tick,
                name="cleanup",
            )

    def _stop_loops(self) -> None:
        for task in (self._health_task, self._cleanup_task):
            if task is not None:
                task.cancel()
        self._health_task = None
        self._cleanup_task = None

    def cleanup(self) -> None:
        """Cancel both periodic loops and every pending escalation timer."""
        self._stop_loops()
        for task in self._escalations.values():
            task.cancel()
        self._escalations.clear()
        self._initialized = False
        logger.info("alert_manager_timers_cancelled")

    async def shutdown(self) -> None:
        """Cancel all timers and release HTTP resources."""
        self.cleanup()
        if isinstance(self._scheduler, AsyncioScheduler):
            await self._scheduler.aclose()
        await self._dispatcher.close()
        await self._probe.close()
        logger.info("alert_manager_shutdown", alerts=len(self._alerts))

    # ── Recording & processing ──────────────────────────────────

    async def record_metric(
        self,
        metric: str,
        value: float,
        labels: Mapping[str, str] | None = None,
        *,
        timestamp: int | None = None,
    ) -> list[Alert]:
        """Record one sample and process every alert it triggers.

        Returns the triggered alerts (empty when nothing fired or alerting
        is disabled).
        """
        if not self._config.enabled:
            return []
        try:
            ts = self.now_ms() if timestamp is None else timestamp
            self._store.record(metric, value, ts)
            alerts = self._rules.evaluate(metric, value, ts)
            if labels:
                for alert in alerts:
                    alert.metadata.labels = dict(labels)
            admitted = [(alert, *self._admit(alert)) for alert in alerts]
            for alert, incident, channels in admitted:
                await self._dispatcher.dispatch(alert, channels, incident)
        except AlertingError:
            raise
        except Exception as exc:
            raise self._wrap(exc, "record_metric", metric=metric) from exc
        return alerts

    async def send_alert(self, data: ManualAlert | Mapping[str, Any]) -> Alert:
        """Raise an alert outside the rule system and process it."""
        try:
            manual = data if isinstance(data, ManualAlert) else ManualAlert.model_validate(data)
            ts = self.now_ms()
            alert = Alert(
                id=f"manual_{ts}_{random_suffix()}",
                title=manual.type.replace("_", " ").upper(),
                description=manual.message,
                severity=manual.severity,
                category=manual.category or AlertCategory.SYSTEM_HEALTH,
                source=manual.source or MANUAL_SOURCE,
                timestamp=ts,
                metadata=AlertMetadata.model_validate(manual.metadata),
            )
            logger.warning(
                "manual_alert_sent",
                alert_id=alert.id,
                severity=alert.severity.value,
                category=alert.category.value,
            )
            incident, channels = self._admit(alert)
            await self._dispatcher.dispatch(alert, channels, incident)
        except AlertingError:
            raise
        except Exception as exc:
            raise self._wrap(exc, "send_alert") from exc
        return alert

    def _admit(self, alert: Alert) -> tuple[Incident | None, list[NotificationChannel]]:
        """Synchronous part of processing: store, group, arm escalation."""
        self._alerts[alert.id] = alert

        rule = self._rules.get(alert.metadata.rule_id) if alert.metadata.rule_id else None
        channels = (
            list(rule.notification_channels)
            if rule is not None
            else self._default_channels(alert.severity)
        )

        incident: Incident | None = None
        if alert.severity in INCIDENT_SEVERITIES:
            incident = self._incidents.create_or_update(alert)

        if rule is not None and rule.escalation_delay > 0:
            self._schedule_escalation(alert.id, rule.escalation_delay)

        if len(self._alerts) > self._config.max_alerts_in_memory:
            self._enforce_alert_cap()
        return incident, channels

    def _default_channels(self, severity: Severity) -> list[NotificationChannel]:
        target = (
            self._notifications.critical_slack_channel
            if severity == Severity.CRITICAL
            else self._notifications.default_slack_channel
        )
        return [
            NotificationChannel(
                id="default_slack",
                type=ChannelType.SLACK,
                name="Default Slack",
                config={"channel": target},
            )
        ]

    def _enforce_alert_cap(self) -> None:
        overflow = len(self._alerts) - self._config.max_alerts_in_memory
        if overflow <= 0:
            return
        # resolved first, then oldest
        victims = sorted(self._alerts.values(), key=lambda a: (not a.resolved, a.timestamp))
        for alert in victims[:overflow]:
            self._evict(alert.id)
        logger.info("alerts_evicted_over_cap", evicted=overflow)

    def _evict(self, alert_id: str) -> None:
        self._alerts.pop(alert_id, None)
        task = self._escalations.pop(alert_id, None)
        if task is not None:
            task.cancel()

    # ── Escalation ──────────────────────────────────────────────

    def _schedule_escalation(self, alert_id: str, delay_ms: int) -> None:
        previous = self._escalations.pop(alert_id, None)
        if previous is not None:
            previous.cancel()

        async def _fire() -> None:
            await self._escalate(alert_id, trigger="timer")

        self._escalations[alert_id] = self._scheduler.call_later(
            delay_ms, _fire, name=f"escalate:{alert_id}"
        )
        logger.debug("escalation_scheduled", alert_id=alert_id, delay_ms=delay_ms)

    async def escalate_alert(self, alert_id: str) -> bool:
        """Escalate now. False if unknown, resolved or already escalated."""
        return await self._escalate(alert_id, trigger="manual")

    async def _escalate(self, alert_id: str, trigger: str) -> bool:
        alert = self._alerts.get(alert_id)
        task = self._escalations.pop(alert_id, None)
        if task is not None:
            task.cancel()
        if alert is None or alert.resolved or alert.escalated:
            return False

        alert.escalated = True
        alert.escalated_at = self.now_ms()
        alert.status = AlertStatus.ESCALATED
        logger.warning(
            "alert_escalated",
            alert_id=alert_id,
            severity=alert.severity.value,
            trigger=trigger,
        )

        channels = [
            NotificationChannel(
                id="escalation_email",
                type=ChannelType.EMAIL,
                name="Escalation Email",
                config={"recipients": list(self._notifications.escalation_recipients)},
            )
        ]
        await self._dispatcher.dispatch(alert, channels)
        if self._notifications.escalation_webhook_url:
            await self._dispatcher.send_escalation_webhook(
                self._notifications.escalation_webhook_url, alert
            )
        return True

    # ── Alert lifecycle ─────────────────────────────────────────

    def resolve_alert(self, alert_id: str, resolved_by: str | None = None) -> bool:
        """Resolve an alert. False if unknown or already resolved."""
        alert = self._alerts.get(alert_id)
        if alert is None or alert.resolved:
            return False

        alert.resolved = True
        alert.resolved_at = self.now_ms()
        alert.resolved_by = resolved_by
        alert.status = AlertStatus.RESOLVED

        task = self._escalations.pop(alert_id, None)
        if task is not None:
            task.cancel()
        logger.info("alert_resolved", alert_id=alert_id, resolved_by=resolved_by)
        return True

    def suppress_alert(
        self, alert_id: str, duration_ms: int, reason: str | None = None
    ) -> bool:
        """Hide an alert from the active view for ``duration_ms``.

        False if unknown, resolved, or still inside an earlier suppression.
        A pending escalation stays armed.
        """
        alert = self._alerts.get(alert_id)
        now = self.now_ms()
        if alert is None or alert.resolved or alert.is_suppressed(now):
            return False

        alert.suppressed_until = now + duration_ms
        alert.status = AlertStatus.SUPPRESSED
        alert.metadata.suppression_reason = reason
        logger.info(
            "alert_suppressed",
            alert_id=alert_id,
            until=alert.suppressed_until,
            reason=reason,
        )
        return True

    # ── Alert queries ───────────────────────────────────────────

    def get_alert(self, alert_id: str) -> Alert | None:
        return self._alerts.get(alert_id)

    def get_all_alerts(self) -> list[Alert]:
        return list(self._alerts.values())

    def get_active_alerts(self) -> list[Alert]:
        """Unresolved alerts still in ``active`` status and not suppressed.

        Escalated and suppressed alerts leave this view; a suppressed alert
        keeps its status after the window lapses.
        """
        now = self.now_ms()
        return [
            a for a in self._alerts.values()
            if not a.resolved
            and a.status == AlertStatus.ACTIVE
            and not a.is_suppressed(now)
        ]

    def get_alert_history(
        self, start: int | None = None, end: int | None = None
    ) -> list[Alert]:
        """Every alert with ``start <= timestamp <= end``, newest first."""
        alerts = [
            a for a in self._alerts.values()
            if (start is None or a.timestamp >= start)
            and (end is None or a.timestamp <= end)
        ]
        return sorted(alerts, key=lambda a: a.timestamp, reverse=True)

    def get_statistics(self) -> AlertStatistics:
        now = self.now_ms()
        alerts = list(self._alerts.values())
        active = self.get_active_alerts()
        resolved = [a for a in alerts if a.resolved]

        durations = [a.resolved_at - a.timestamp for a in resolved if a.resolved_at is not None]
        mttr = sum(durations) / len(durations) if durations else 0.0

        mtbf = 0.0
        if len(alerts) > 1:
            mtbf = (now - min(a.timestamp for a in alerts)) / len(alerts)

        return AlertStatistics(
            total_alerts=len(alerts),
            active_alerts=len(active),
            resolved_alerts=len(resolved),
            escalated_alerts=sum(1 for a in alerts if a.escalated),
            suppressed_alerts=sum(1 for a in alerts if a.is_suppressed(now)),
            critical_alerts=sum(1 for a in active if a.severity == Severity.CRITICAL),
            alerts_by_severity=dict(Counter(a.severity.value for a in alerts)),
            alerts_by_category=dict(Counter(a.category.value for a in alerts)),
            open_incidents=len(self._incidents.list_open()),
            average_resolution_time=mttr,
            mttr=mttr,
            mtbf=mtbf,
        )

    # ── Rules ───────────────────────────────────────────────────

    def add_rule(self, rule: AlertRule | Mapping[str, Any]) -> AlertRule:
        """Add or replace a rule.

        A mapping without ``cooldown_period`` / ``escalation_delay`` picks
        them up from the configured defaults.
        """
        if not isinstance(rule, AlertRule):
            data = dict(rule)
            data.setdefault("cooldown_period", self._config.default_cooldown_period_ms)
            data.setdefault("escalation_delay", self._config.default_escalation_delay_ms)
            rule = AlertRule.model_validate(data)
        self._rules.add_or_replace(rule)
        return rule

    def remove_rule(self, rule_id: str) -> bool:
        return self._rules.remove(rule_id)

    def get_rule(self, rule_id: str) -> AlertRule | None:
        return self._rules.get(rule_id)

    def get_rules(self) -> list[AlertRule]:
        return self._rules.list_all()

    def set_rule_enabled(self, rule_id: str, enabled: bool) -> bool:
        return self._rules.set_enabled(rule_id, enabled)

    def get_rule_statistics(self) -> RuleStatistics:
        return self._rules.statistics()

    # ── Incidents ───────────────────────────────────────────────

    def get_incident(self, incident_id: str) -> Incident | None:
        return self._incidents.get(incident_id)

    def get_incidents(self) -> list[Incident]:
        return self._incidents.list_all()

    def get_open_incidents(self) -> list[Incident]:
        return self._incidents.list_open()

    def update_incident_status(
        self,
        incident_id: str,
        status: IncidentStatus | str,
        user: str | None = None,
        notes: str | None = None,
    ) -> bool:
        return self._incidents.update_status(incident_id, IncidentStatus(status), user, notes)

    def assign_incident(self, incident_id: str, assignee: str, user: str | None = None) -> bool:
        return self._incidents.assign(incident_id, assignee, user)

    def add_incident_note(self, incident_id: str, note: str, user: str | None = None) -> bool:
        return self._incidents.add_note(incident_id, note, user)

    def get_incident_statistics(self) -> IncidentStatistics:
        return self._incidents.statistics()

    # ── Configuration ───────────────────────────────────────────

    def update_configuration(self, partial: Mapping[str, Any]) -> AlertingConfig:
        """Merge ``partial`` into the alerting config and apply it live."""
        merged = {**self._config.model_dump(), **dict(partial)}
        try:
            new = AlertingConfig.model_validate(merged)
        except ValidationError as exc:
            raise ConfigurationError(
                f"invalid alerting configuration: {exc.error_count()} error(s)",
                component=COMPONENT,
                action="update_configuration",
                cause=exc,
            ) from exc

        old, self._config = self._config, new
        self._store.max_history_size = new.max_history_size
        self._store.retention_ms = new.metric_retention_period_ms
        self._incidents.configure(
            max_incidents_in_memory=new.max_incidents_in_memory,
            grouping_window_ms=new.incident_grouping_window_ms,
        )

        if self._initialized:
            intervals_changed = (
                old.health_check_interval_ms != new.health_check_interval_ms
                or old.cleanup_interval_ms != new.cleanup_interval_ms
            )
            if not new.enabled:
                self._stop_loops()
            elif intervals_changed or not old.enabled:
                self._start_loops()

        logger.info("configuration_updated", changed=sorted(partial))
        return new

    # ── Channels & snapshots ────────────────────────────────────

    async def test_notification_channel(self, channel: NotificationChannel) -> bool:
        return await self._dispatcher.test_channel(channel)

    async def notify(
        self, alert: Alert, channels: Sequence[NotificationChannel]
    ) -> list[DeliveryResult]:
        """Send an existing alert to an explicit channel list."""
        return await self._dispatcher.dispatch(alert, channels)

    def export_metrics(self) -> dict[str, list[dict[str, Any]]]:
        return self._store.export_metrics()

    def import_metrics(self, data: dict[str, list[dict[str, Any]]]) -> int:
        return self._store.import_metrics(data)

    def export_data(self) -> dict[str, Any]:
        """Plain-data snapshot of the whole working set."""
        return {
            "exported_at": self.now_ms(),
            "alerts": [a.model_dump(mode="json") for a in self._alerts.values()],
            "incidents": self._incidents.export_incidents(),
            "rules": [r.model_dump(mode="json") for r in self._rules.list_all()],
            "metrics": self._store.export_metrics(),
            "statistics": self.get_statistics().model_dump(mode="json"),
        }

    # ── Periodic ticks ──────────────────────────────────────────

    async def run_health_check(self) -> HealthCheckResult:
        """Probe the health endpoint and record the outcome as metrics."""
        result = await self._probe.check()
        await self.record_metric(API_RESPONSE_TIME, result.response_time_ms)
        await self.record_metric(API_HEALTH, 1 if result.healthy else 0)
        await self.record_metric(DATABASE_HEALTH, 1 if result.database_healthy else 0)
        if result.ai_success_rate is not None:
            await self.record_metric(AI_SUCCESS_RATE, result.ai_success_rate)
        return result

    def run_cleanup(self) -> dict[str, int]:
        """One retention sweep over alerts, incidents and metric samples."""
        now = self.now_ms()
        evicted = 0
        auto_resolved = 0
        for alert in list(self._alerts.values()):
            if alert.resolved:
                resolved_at = alert.resolved_at if alert.resolved_at is not None else alert.timestamp
                if now - resolved_at > self._config.alert_retention_period_ms:
                    self._evict(alert.id)
                    evicted += 1
            elif now - alert.timestamp > self._config.stale_alert_threshold_ms:
                self.resolve_alert(alert.id, STALE_RESOLVER)
                auto_resolved += 1

        summary = {
            "alerts_evicted": evicted,
            "alerts_auto_resolved": auto_resolved,
            "incidents_removed": self._incidents.cleanup_old(
                self._config.incident_retention_period_ms
            ),
            "incidents_auto_resolved": self._incidents.auto_resolve_stale(
                self._config.stale_incident_age_ms
            ),
            "metric_samples_pruned": self._store.prune(
                self._config.metric_retention_period_ms, now
            ),
        }
        logger.info("cleanup_completed", **summary)
        return summary

    async def _health_tick(self) -> None:
        try:
            await self.run_health_check()
        except Exception:
            logger.exception("health_check_tick_error")

    def _cleanup_tick(self) -> None:
        try:
            self.run_cleanup()
        except Exception:
            logger.exception("cleanup_tick_error")

    # ── Errors ──────────────────────────────────────────────────

    def _wrap(self, exc: Exception, action: str, **context: Any) -> AlertingError:
        error = AlertingError.from_exception(exc, component=COMPONENT, action=action)
        logger.error(
            "alert_manager_error",
            component=COMPONENT,
            action=action,
            error=str(exc),
            error_type=type(exc).__name__,
            exc_info=exc,
            **context,
        )
        return error
