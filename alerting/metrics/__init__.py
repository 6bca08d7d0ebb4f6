"""Metric collection — bounded time series per metric name."""

from alerting.metrics.store import MetricStore

__all__ = ["MetricStore"]
