"""
Threshold evaluation
====================

Pure functions that compare a measured value against a parameter's
``[min, max]`` band and grade the breach.

Severity is the percentage deviation beyond the breached bound, relative to
``abs(bound)``:

- > 50 %  -> CRITICAL
- > 25 %  -> HIGH
- > 10 %  -> MEDIUM
- otherwise LOW

A breach of a zero bound has no finite relative deviation and is CRITICAL.
Values exactly on a bound are within the band.
"""

from __future__ import annotations

import math
from dataclasses import dataclass

from greenhouse.enums import Severity, ViolationDirection

CRITICAL_DEVIATION_PCT = 50.0
HIGH_DEVIATION_PCT = 25.0
MEDIUM_DEVIATION_PCT = 10.0


@dataclass(frozen=True)
class ThresholdEvaluation:
    """Result of evaluating one value against one threshold band."""

    direction: ViolationDirection
    deviation_pct: float
    severity: Severity | None

    @property
    def is_alert(self) -> bool:
        return self.direction is not ViolationDirection.WITHIN

    @property
    def breached_bound_is_max(self) -> bool:
        return self.direction is ViolationDirection.ABOVE_MAX


def violation_direction(value: float, min_value: float, max_value: float) -> ViolationDirection:
    if value > max_value:
        return ViolationDirection.ABOVE_MAX
    if value < min_value:
        return ViolationDirection.BELOW_MIN
    return ViolationDirection.WITHIN


def deviation_percent(value: float, min_value: float, max_value: float) -> float:
    """Percentage by which *value* lies beyond the breached bound (0.0 if within)."""
    direction = violation_direction(value, min_value, max_value)
    if direction is ViolationDirection.WITHIN:
        return 0.0
    bound = max_value if direction is ViolationDirection.ABOVE_MAX else min_value
    distance = abs(value - bound)
    if bound == 0:
        return math.inf
    return distance / abs(bound) * 100.0


def severity_for_deviation(deviation_pct: float) -> Severity:
    if deviation_pct > CRITICAL_DEVIATION_PCT:
        return Severity.CRITICAL
    if deviation_pct > HIGH_DEVIATION_PCT:
        return Severity.HIGH
    if deviation_pct > MEDIUM_DEVIATION_PCT:
        return Severity.MEDIUM
    return Severity.LOW


def evaluate(value: float, min_value: float, max_value: float) -> ThresholdEvaluation:
    """Classify *value* against ``[min_value, max_value]``."""
    direction = violation_direction(value, min_value, max_value)
    if direction is ViolationDirection.WITHIN:
        return ThresholdEvaluation(direction=direction, deviation_pct=0.0, severity=None)
    deviation = deviation_percent(value, min_value, max_value)
    return ThresholdEvaluation(
        direction=direction,
        deviation_pct=deviation,
        severity=severity_for_deviation(deviation),
    )
