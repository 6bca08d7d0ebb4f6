"""IncidentManager — groups error/critical alerts into incidents.

Lifecycle per incident: open → investigating → resolved → closed.
Every mutation appends to the incident's timeline; severity only ever
rises while alerts are added.
"""

from __future__ import annotations

import secrets
import string
from collections import Counter
from collections.abc import Callable, Iterable
from typing import Any

import structlog

from alerting.core.scheduling import now_ms
from alerting.core.types import (
    Alert,
    AlertCategory,
    Incident,
    IncidentStatistics,
    IncidentStatus,
    Severity,
    TimelineEntry,
)

logger = structlog.get_logger(__name__)

_HOUR_MS = 60 * 60 * 1000
_DAY_MS = 24 * _HOUR_MS

_ID_ALPHABET = string.ascii_lowercase + string.digits

SYSTEM_ACTOR = "system"
_CLOSED_STATES = (IncidentStatus.RESOLVED, IncidentStatus.CLOSED)


def random_suffix(length: int = 9) -> str:
    return "".join(secrets.choice(_ID_ALPHABET) for _ in range(length))


class IncidentManager:
    """In-memory incident store with grouping, escalation and retention."""

    def __init__(
        self,
        max_incidents_in_memory: int = 1000,
        grouping_window_ms: int = _HOUR_MS,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self._incidents: dict[str, Incident] = {}
        self._max_incidents = max_incidents_in_memory
        self._grouping_window_ms = grouping_window_ms
        self._clock = clock

    def configure(
        self,
        *,
        max_incidents_in_memory: int | None = None,
        grouping_window_ms: int | None = None,
    ) -> None:
        """Change limits in place; the cap is enforced on the next cleanup."""
        if max_incidents_in_memory is not None:
            self._max_incidents = max_incidents_in_memory
        if grouping_window_ms is not None:
            self._grouping_window_ms = grouping_window_ms

    # ── Grouping ────────────────────────────────────────────────

    def create_or_update(self, alert: Alert) -> Incident:
        """Attach ``alert`` to a related open incident, or open a new one."""
        incident = self._find_related(alert)
        if incident is not None:
            return self._add_alert(incident, alert)
        return self._create(alert)

    def _find_related(self, alert: Alert) -> Incident | None:
        since = self._clock() - self._grouping_window_ms
        for incident in self._incidents.values():
            if (
                incident.status == IncidentStatus.OPEN
                and incident.created_at > since
                and any(a.category == alert.category for a in incident.alerts)
            ):
                return incident
        return None

    def _create(self, alert: Alert) -> Incident:
        now = self._clock()
        incident = Incident(
            id=f"incident_{now}_{random_suffix()}",
            title=f"{alert.category.value} - {alert.title}",
            description=alert.description,
            severity=alert.severity,
            status=IncidentStatus.OPEN,
            alerts=[alert],
            created_at=now,
            updated_at=now,
            timeline=[
                TimelineEntry(
                    timestamp=now,
                    action="incident_created",
                    description=f"Incident created from alert: {alert.title}",
                    metadata={"alert_id": alert.id},
                )
            ],
        )
        self._incidents[incident.id] = incident
        logger.warning(
            "incident_created",
            incident_id=incident.id,
            severity=incident.severity.value,
            category=alert.category.value,
            alert_id=alert.id,
        )
        return incident

    def _add_alert(self, incident: Incident, alert: Alert) -> Incident:
        now = self._clock()
        incident.alerts.append(alert)
        incident.updated_at = now
        incident.timeline.append(
            TimelineEntry(
                timestamp=now,
                action="alert_added",
                description=f"Added alert: {alert.title}",
                metadata={"alert_id": alert.id},
            )
        )

        if alert.severity.level > incident.severity.level:
            previous = incident.severity
            incident.severity = alert.severity
            incident.timeline.append(
                TimelineEntry(
                    timestamp=now,
                    action="severity_escalated",
                    description=(
                        f"Incident severity escalated from {previous.value}"
                        f" to {alert.severity.value}"
                    ),
                    metadata={
                        "previous_severity": previous.value,
                        "new_severity": alert.severity.value,
                        "triggering_alert_id": alert.id,
                    },
                )
            )
            logger.warning(
                "incident_severity_escalated",
                incident_id=incident.id,
                previous=previous.value,
                severity=alert.severity.value,
            )
        return incident

    # ── Mutations ───────────────────────────────────────────────

    def update_status(
        self,
        incident_id: str,
        status: IncidentStatus,
        user: str | None = None,
        notes: str | None = None,
    ) -> bool:
        incident = self._incidents.get(incident_id)
        if incident is None:
            return False

        status = IncidentStatus(status)
        now = self._clock()
        previous = incident.status
        incident.status = status
        incident.updated_at = now
        if status in _CLOSED_STATES:
            incident.resolved_at = now

        suffix = f": {notes}" if notes else ""
        incident.timeline.append(
            TimelineEntry(
                timestamp=now,
                action="status_changed",
                description=f"Status changed from {previous.value} to {status.value}{suffix}",
                user=user,
                metadata={"previous_status": previous.value, "new_status": status.value},
            )
        )
        logger.info(
            "incident_status_changed",
            incident_id=incident_id,
            previous=previous.value,
            status=status.value,
            user=user,
        )
        return True

    def assign(self, incident_id: str, assignee: str, user: str | None = None) -> bool:
        incident = self._incidents.get(incident_id)
        if incident is None:
            return False

        now = self._clock()
        previous = incident.assignee
        incident.assignee = assignee
        incident.updated_at = now
        note = f" (previously: {previous})" if previous else ""
        incident.timeline.append(
            TimelineEntry(
                timestamp=now,
                action="assigned",
                description=f"Incident assigned to {assignee}{note}",
                user=user,
                metadata={"assignee": assignee, "previous_assignee": previous},
            )
        )
        logger.info("incident_assigned", incident_id=incident_id, assignee=assignee)
        return True

    def add_note(self, incident_id: str, note: str, user: str | None = None) -> bool:
        incident = self._incidents.get(incident_id)
        if incident is None:
            return False

        now = self._clock()
        incident.updated_at = now
        incident.timeline.append(
            TimelineEntry(timestamp=now, action="note_added", description=note, user=user)
        )
        logger.info("incident_note_added", incident_id=incident_id, user=user)
        return True

    # ── Retention ───────────────────────────────────────────────

    def auto_resolve_stale(self, max_age_ms: int = _DAY_MS) -> int:
        """Resolve every ``open`` incident created more than ``max_age_ms`` ago."""
        now = self._clock()
        stale = [
            i.id for i in self._incidents.values()
            if i.status == IncidentStatus.OPEN and now - i.created_at > max_age_ms
        ]
        for incident_id in stale:
            self.update_status(
                incident_id,
                IncidentStatus.RESOLVED,
                SYSTEM_ACTOR,
                "Auto-resolved due to age",
            )
        if stale:
            logger.info("incidents_auto_resolved", count=len(stale))
        return len(stale)

    def cleanup_old(self, max_age_ms: int = 30 * _DAY_MS) -> int:
        """Evict finished incidents past retention, then enforce the memory cap."""
        cutoff = self._clock() - max_age_ms
        before = len(self._incidents)

        for incident_id, incident in list(self._incidents.items()):
            if incident.status in _CLOSED_STATES and incident.updated_at < cutoff:
                del self._incidents[incident_id]

        overflow = len(self._incidents) - self._max_incidents
        if overflow > 0:
            oldest = sorted(self._incidents.values(), key=lambda i: i.updated_at)
            for incident in oldest[:overflow]:
                del self._incidents[incident.id]

        removed = before - len(self._incidents)
        if removed:
            logger.info("incidents_cleaned_up", removed=removed)
        return removed

    # ── Queries ─────────────────────────────────────────────────

    def get(self, incident_id: str) -> Incident | None:
        return self._incidents.get(incident_id)

    def list_all(self) -> list[Incident]:
        return list(self._incidents.values())

    def list_open(self) -> list[Incident]:
        """Incidents not yet resolved (``open`` or ``investigating``)."""
        return [
            i for i in self._incidents.values()
            if i.status in (IncidentStatus.OPEN, IncidentStatus.INVESTIGATING)
        ]

    def list_by_severity(self, severity: Severity) -> list[Incident]:
        return [i for i in self._incidents.values() if i.severity == severity]

    def list_by_category(self, category: AlertCategory) -> list[Incident]:
        return [
            i for i in self._incidents.values()
            if any(a.category == category for a in i.alerts)
        ]

    def list_by_assignee(self, assignee: str) -> list[Incident]:
        return [i for i in self._incidents.values() if i.assignee == assignee]

    def incidents_for_alert(self, alert_id: str) -> list[Incident]:
        return [
            i for i in self._incidents.values()
            if any(a.id == alert_id for a in i.alerts)
        ]

    def most_severe(self) -> Incident | None:
        """The unresolved incident with the highest severity, oldest first on ties."""
        candidates = sorted(self.list_open(), key=lambda i: (-i.severity.level, i.created_at))
        return candidates[0] if candidates else None

    def statistics(self) -> IncidentStatistics:
        incidents = list(self._incidents.values())
        statuses = Counter(i.status for i in incidents)
        by_category: Counter[str] = Counter()
        for incident in incidents:
            by_category.update(a.category.value for a in incident.alerts)

        durations = [
            i.resolved_at - i.created_at for i in incidents if i.resolved_at is not None
        ]
        return IncidentStatistics(
            total=len(incidents),
            open=statuses[IncidentStatus.OPEN],
            investigating=statuses[IncidentStatus.INVESTIGATING],
            resolved=statuses[IncidentStatus.RESOLVED],
            closed=statuses[IncidentStatus.CLOSED],
            by_severity=dict(Counter(i.severity.value for i in incidents)),
            by_category=dict(by_category),
            average_resolution_time=sum(durations) / len(durations) if durations else 0.0,
        )

    # ── Snapshots ───────────────────────────────────────────────

    def export_incidents(self) -> list[dict[str, Any]]:
        return [i.model_dump(mode="json") for i in self._incidents.values()]

    def import_incidents(self, incidents: Iterable[Incident | dict[str, Any]]) -> int:
        count = 0
        for item in incidents:
            incident = item if isinstance(item, Incident) else Incident.model_validate(item)
            self._incidents[incident.id] = incident
            count += 1
        logger.info("incidents_imported", count=count)
        return count
