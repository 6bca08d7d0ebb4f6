"""Tests for IncidentManager — grouping, severity escalation, lifecycle, retention."""

from __future__ import annotations

from alerting.core.types import (
    Alert,
    AlertCategory,
    IncidentStatus,
    Severity,
)
from alerting.incidents.manager import SYSTEM_ACTOR, IncidentManager

_HOUR_MS = 60 * 60 * 1000
_DAY_MS = 24 * _HOUR_MS

# ── Helpers ─────────────────────────────────────────────────────


class FakeClock:
    def __init__(self, now: int = 10 * _DAY_MS) -> None:
        self.now = now

    def __call__(self) -> int:
        return self.now


_counter = iter(range(1_000_000))


def _alert(**kw: object) -> Alert:
    n = next(_counter)
    defaults: dict[str, object] = {
        "id": f"alert_{n}",
        "title": "DB slow",
        "description": "Database latency high",
        "severity": Severity.ERROR,
        "category": AlertCategory.DATABASE,
        "source": "test",
        "timestamp": 0,
    }
    defaults.update(kw)
    return Alert(**defaults)  # type: ignore[arg-type]


def _manager(clock: FakeClock | None = None, **kw: object) -> tuple[IncidentManager, FakeClock]:
    clock = clock or FakeClock()
    return IncidentManager(clock=clock, **kw), clock  # type: ignore[arg-type]


# ── Grouping ────────────────────────────────────────────────────


class TestGrouping:
    def test_first_alert_opens_incident(self) -> None:
        mgr, clock = _manager()
        alert = _alert()
        incident = mgr.create_or_update(alert)

        assert incident.id.startswith(f"incident_{clock.now}_")
        assert incident.title == "database - DB slow"
        assert incident.status == IncidentStatus.OPEN
        assert incident.severity == Severity.ERROR
        assert incident.alerts == [alert]
        assert [e.action for e in incident.timeline] == ["incident_created"]

    def test_same_category_within_window_groups(self) -> None:
        mgr, clock = _manager()
        first = mgr.create_or_update(_alert())
        clock.now += 30 * 60 * 1000
        second = mgr.create_or_update(_alert())

        assert first.id == second.id
        assert len(mgr.list_all()) == 1
        assert len(first.alerts) == 2
        assert [e.action for e in first.timeline] == ["incident_created", "alert_added"]

    def test_other_category_opens_new_incident(self) -> None:
        mgr, _ = _manager()
        mgr.create_or_update(_alert())
        mgr.create_or_update(_alert(category=AlertCategory.SECURITY))
        assert len(mgr.list_all()) == 2

    def test_outside_window_opens_new_incident(self) -> None:
        mgr, clock = _manager()
        mgr.create_or_update(_alert())
        clock.now += _HOUR_MS
        mgr.create_or_update(_alert())
        assert len(mgr.list_all()) == 2

    def test_non_open_incident_not_reused(self) -> None:
        mgr, _ = _manager()
        first = mgr.create_or_update(_alert())
        mgr.update_status(first.id, IncidentStatus.INVESTIGATING)
        second = mgr.create_or_update(_alert())
        assert second.id != first.id

    def test_custom_grouping_window(self) -> None:
        mgr, clock = _manager(grouping_window_ms=1_000)
        mgr.create_or_update(_alert())
        clock.now += 1_000
        mgr.create_or_update(_alert())
        assert len(mgr.list_all()) == 2


class TestSeverity:
    def test_severity_only_rises(self) -> None:
        mgr, _ = _manager()
        incident = mgr.create_or_update(_alert(severity=Severity.WARNING))
        mgr.create_or_update(_alert(severity=Severity.CRITICAL))
        mgr.create_or_update(_alert(severity=Severity.WARNING))

        assert incident.severity == Severity.CRITICAL
        escalations = [e for e in incident.timeline if e.action == "severity_escalated"]
        assert len(escalations) == 1
        assert escalations[0].metadata["previous_severity"] == "warning"
        assert escalations[0].metadata["new_severity"] == "critical"

    def test_equal_severity_does_not_escalate(self) -> None:
        mgr, _ = _manager()
        incident = mgr.create_or_update(_alert())
        mgr.create_or_update(_alert())
        assert all(e.action != "severity_escalated" for e in incident.timeline)


# ── Lifecycle ───────────────────────────────────────────────────


class TestLifecycle:
    def test_update_status_records_timeline(self) -> None:
        mgr, clock = _manager()
        incident = mgr.create_or_update(_alert())
        clock.now += 5_000

        assert mgr.update_status(incident.id, IncidentStatus.RESOLVED, "ops", "fixed index")
        assert incident.status == IncidentStatus.RESOLVED
        assert incident.resolved_at == clock.now
        entry = incident.timeline[-1]
        assert entry.action == "status_changed"
        assert entry.user == "ops"
        assert "fixed index" in entry.description

    def test_update_status_accepts_string(self) -> None:
        mgr, _ = _manager()
        incident = mgr.create_or_update(_alert())
        assert mgr.update_status(incident.id, "investigating")  # type: ignore[arg-type]
        assert incident.status == IncidentStatus.INVESTIGATING
        assert incident.resolved_at is None

    def test_unknown_incident_returns_false(self) -> None:
        mgr, _ = _manager()
        assert not mgr.update_status("nope", IncidentStatus.CLOSED)
        assert not mgr.assign("nope", "alice")
        assert not mgr.add_note("nope", "hi")

    def test_assign_and_note(self) -> None:
        mgr, _ = _manager()
        incident = mgr.create_or_update(_alert())
        assert mgr.assign(incident.id, "alice", "lead")
        assert mgr.add_note(incident.id, "looking", "alice")
        assert incident.assignee == "alice"
        assert [e.action for e in incident.timeline][-2:] == ["assigned", "note_added"]
        assert mgr.list_by_assignee("alice") == [incident]

    def test_queries(self) -> None:
        mgr, _ = _manager()
        db = mgr.create_or_update(_alert(severity=Severity.CRITICAL))
        sec = mgr.create_or_update(_alert(category=AlertCategory.SECURITY))
        mgr.update_status(sec.id, IncidentStatus.CLOSED)

        assert mgr.list_open() == [db]
        assert mgr.list_by_severity(Severity.CRITICAL) == [db]
        assert mgr.list_by_category(AlertCategory.SECURITY) == [sec]
        assert mgr.incidents_for_alert(db.alerts[0].id) == [db]
        assert mgr.most_severe() is db
        assert mgr.get(db.id) is db


# ── Retention ───────────────────────────────────────────────────


class TestRetention:
    def test_auto_resolve_stale(self) -> None:
        mgr, clock = _manager()
        old = mgr.create_or_update(_alert())
        clock.now += _DAY_MS + 1
        fresh = mgr.create_or_update(_alert(category=AlertCategory.SECURITY))

        assert mgr.auto_resolve_stale(_DAY_MS) == 1
        assert old.status == IncidentStatus.RESOLVED
        assert old.timeline[-1].user == SYSTEM_ACTOR
        assert "Auto-resolved due to age" in old.timeline[-1].description
        assert fresh.status == IncidentStatus.OPEN

    def test_cleanup_evicts_finished_past_retention(self) -> None:
        mgr, clock = _manager()
        done = mgr.create_or_update(_alert())
        mgr.update_status(done.id, IncidentStatus.CLOSED)
        still_open = mgr.create_or_update(_alert(category=AlertCategory.SECURITY))
        clock.now += 31 * _DAY_MS

        assert mgr.cleanup_old(30 * _DAY_MS) == 1
        assert mgr.get(done.id) is None
        assert mgr.get(still_open.id) is still_open

    def test_cleanup_enforces_cap_oldest_first(self) -> None:
        mgr, clock = _manager(max_incidents_in_memory=2)
        ids = []
        for category in (AlertCategory.DATABASE, AlertCategory.SECURITY, AlertCategory.AI_SERVICE):
            ids.append(mgr.create_or_update(_alert(category=category)).id)
            clock.now += 1_000

        assert mgr.cleanup_old() == 1
        assert [i.id for i in mgr.list_all()] == ids[1:]


class TestStatisticsAndSnapshots:
    def test_statistics(self) -> None:
        mgr, clock = _manager()
        a = mgr.create_or_update(_alert(severity=Severity.CRITICAL))
        mgr.create_or_update(_alert(category=AlertCategory.SECURITY))
        clock.now += 4_000
        mgr.update_status(a.id, IncidentStatus.RESOLVED)

        stats = mgr.statistics()
        assert stats.total == 2
        assert stats.open == 1
        assert stats.resolved == 1
        assert stats.by_severity == {"critical": 1, "error": 1}
        assert stats.by_category == {"database": 1, "security": 1}
        assert stats.average_resolution_time == 4_000

    def test_export_import(self) -> None:
        mgr, _ = _manager()
        incident = mgr.create_or_update(_alert())
        snapshot = mgr.export_incidents()

        other, _ = _manager()
        assert other.import_incidents(snapshot) == 1
        restored = other.get(incident.id)
        assert restored is not None
        assert restored.alerts[0].id == incident.alerts[0].id
