"""Alert rules — seed catalog and evaluation engine."""

from alerting.rules.defaults import default_rules
from alerting.rules.engine import RuleEngine

__all__ = ["RuleEngine", "default_rules"]
