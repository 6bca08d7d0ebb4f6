"""Incident management — alert grouping, lifecycle and retention."""

from alerting.incidents.manager import IncidentManager

__all__ = ["IncidentManager"]
