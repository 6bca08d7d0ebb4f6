"""MetricStore — bounded per-metric time series with windowed queries.

Each metric name owns an append-only list of :class:`MetricSample`,
capped at ``max_history_size`` (oldest dropped first) and pruned by age
on every :meth:`prune` sweep.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any, Literal

import structlog

from alerting.core.operators import matches
from alerting.core.scheduling import now_ms
from alerting.core.types import MetricSample, Operator

logger = structlog.get_logger(__name__)

Aggregation = Literal["avg", "min", "max", "latest"]

_DAY_MS = 24 * 60 * 60 * 1000


class MetricStore:
    """In-memory metric history keyed by exact metric name.

    Usage::

        store = MetricStore(max_history_size=1000)
        store.record("api_response_time", 420)
        avg = store.aggregate("api_response_time", 300_000, "avg")
    """

    def __init__(
        self,
        max_history_size: int = 1000,
        retention_ms: int = _DAY_MS,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        if max_history_size <= 0:
            raise ValueError("max_history_size must be positive")
        self._series: dict[str, list[MetricSample]] = {}
        self._max_history_size = max_history_size
        self._retention_ms = retention_ms
        self._clock = clock

    @property
    def max_history_size(self) -> int:
        return self._max_history_size

    @max_history_size.setter
    def max_history_size(self, value: int) -> None:
        if value <= 0:
            raise ValueError("max_history_size must be positive")
        self._max_history_size = value
        for series in self._series.values():
            overflow = len(series) - value
            if overflow > 0:
                del series[:overflow]

    @property
    def retention_ms(self) -> int:
        return self._retention_ms

    @retention_ms.setter
    def retention_ms(self, value: int) -> None:
        self._retention_ms = value

    # ── Writes ──────────────────────────────────────────────────

    def record(
        self, metric: str, value: float, timestamp: int | None = None
    ) -> MetricSample:
        """Append a sample and trim the series to ``max_history_size``."""
        sample = MetricSample(
            value=float(value),
            timestamp=self._clock() if timestamp is None else timestamp,
        )
        series = self._series.setdefault(metric, [])
        series.append(sample)
        overflow = len(series) - self._max_history_size
        if overflow > 0:
            del series[:overflow]
        return sample

    def prune(self, max_age_ms: int | None = None, now: int | None = None) -> int:
        """Drop samples older than ``max_age_ms`` from every series.

        Empty series are removed. Returns the number of samples dropped.
        """
        age = self._retention_ms if max_age_ms is None else max_age_ms
        cutoff = (self._clock() if now is None else now) - age
        dropped = 0
        for name in list(self._series):
            series = self._series[name]
            kept = [s for s in series if s.timestamp >= cutoff]
            dropped += len(series) - len(kept)
            if kept:
                self._series[name] = kept
            else:
                del self._series[name]
        if dropped:
            logger.info("metric_samples_pruned", dropped=dropped, cutoff=cutoff)
        return dropped

    def clear(self, metric: str | None = None) -> None:
        """Forget one series, or every series when ``metric`` is None."""
        if metric is None:
            self._series.clear()
        else:
            self._series.pop(metric, None)

    # ── Reads ───────────────────────────────────────────────────

    def metric_names(self) -> list[str]:
        return list(self._series)

    def history(self, metric: str) -> list[MetricSample]:
        """Full retained series for a metric, oldest first."""
        return list(self._series.get(metric, ()))

    def latest(self, metric: str) -> MetricSample | None:
        series = self._series.get(metric)
        return series[-1] if series else None

    def window(
        self, metric: str, time_window: int, end_time: int | None = None
    ) -> list[MetricSample]:
        """Samples with ``end_time - time_window <= ts <= end_time``, in insertion order."""
        end = self._clock() if end_time is None else end_time
        start = end - time_window
        return [
            s for s in self._series.get(metric, ()) if start <= s.timestamp <= end
        ]

    def aggregate(
        self,
        metric: str,
        time_window: int,
        fn: Aggregation,
        end_time: int | None = None,
    ) -> float | None:
        """Aggregate the window with avg/min/max/latest; None if empty."""
        samples = self.window(metric, time_window, end_time)
        if not samples:
            return None
        values = [s.value for s in samples]
        if fn == "avg":
            return sum(values) / len(values)
        if fn == "min":
            return min(values)
        if fn == "max":
            return max(values)
        if fn == "latest":
            return values[-1]
        raise ValueError(f"unknown aggregation: {fn!r}")

    def consecutive_matches(
        self,
        metric: str,
        operator: Operator,
        threshold: float | str,
        count: int,
        time_window: int | None = None,
        end_time: int | None = None,
    ) -> bool:
        """True only if the last ``count`` samples in scope all satisfy the operator.

        Scope is the whole series, or the window ending at ``end_time`` when
        ``time_window`` is given. Fewer than ``count`` samples is False.
        """
        if count <= 0:
            return True
        if time_window is None:
            scope = self._series.get(metric, [])
        else:
            scope = self.window(metric, time_window, end_time)
        if len(scope) < count:
            return False
        return all(matches(operator, s.value, threshold) for s in scope[-count:])

    def series_stats(self, metric: str) -> dict[str, float | int | None]:
        """Count/min/max/avg/latest over the retained series."""
        series = self._series.get(metric, [])
        if not series:
            return {"count": 0, "min": None, "max": None, "avg": None, "latest": None}
        values = [s.value for s in series]
        return {
            "count": len(values),
            "min": min(values),
            "max": max(values),
            "avg": sum(values) / len(values),
            "latest": values[-1],
        }

    # ── Snapshots ───────────────────────────────────────────────

    def export_metrics(self) -> dict[str, list[dict[str, Any]]]:
        """Plain-data snapshot of every series for an external store."""
        return {
            name: [s.model_dump() for s in series]
            for name, series in self._series.items()
        }

    def import_metrics(self, data: dict[str, list[dict[str, Any]]]) -> int:
        """Merge a snapshot produced by :meth:`export_metrics`.

        Imported samples are merged by timestamp into any existing series and
        the count cap is re-applied. Returns the number of samples imported.
        """
        imported = 0
        for name, rows in data.items():
            samples = [MetricSample.model_validate(row) for row in rows]
            merged = sorted(
                [*self._series.get(name, []), *samples], key=lambda s: s.timestamp
            )
            self._series[name] = merged[-self._max_history_size:]
            imported += len(samples)
        logger.info("metrics_imported", series=len(data), samples=imported)
        return imported
