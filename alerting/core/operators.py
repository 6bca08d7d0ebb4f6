"""Pure comparison functions for rule conditions."""

from __future__ import annotations

from alerting.core.types import Operator


def as_text(value: float | str) -> str:
    """Render a sample value for substring tests.

    Integral floats render without a fractional part, so ``503.0`` matches
    a threshold of ``"503"``.
    """
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def matches(operator: Operator, value: float, threshold: float | str) -> bool:
    """Return True if ``value`` satisfies ``operator`` against ``threshold``.

    Numeric operators compare numerically; a threshold that cannot be read
    as a number never matches. ``contains``/``not_contains`` coerce both
    sides to text first.
    """
    if operator == Operator.CONTAINS:
        return as_text(threshold) in as_text(value)
    if operator == Operator.NOT_CONTAINS:
        return as_text(threshold) not in as_text(value)

    try:
        limit = float(threshold)
    except (TypeError, ValueError):
        return False

    if operator == Operator.GT:
        return value > limit
    if operator == Operator.LT:
        return value < limit
    if operator == Operator.GTE:
        return value >= limit
    if operator == Operator.LTE:
        return value <= limit
    if operator == Operator.EQ:
        return value == limit
    return False
