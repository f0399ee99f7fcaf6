"""
Numeric helpers shared by the strategies.

Every helper refuses to produce NaN or Infinity.
"""

import math
from typing import Iterable, List, Sequence

from revforce.core.exceptions import ComputationError


def safe_ratio(numerator: float, denominator: float, default: float = 0.0) -> float:
    """numerator / denominator, or default when the denominator is zero."""
    if denominator == 0:
        return default
    return numerator / denominator


def clamp(value: float, lower: float, upper: float) -> float:
    return max(lower, min(upper, value))


def mean(values: Sequence[float]) -> float:
    if not values:
        raise ComputationError("Cannot take the mean of an empty sequence")
    return sum(values) / len(values)


def linear_slope(values: Sequence[float]) -> float:
    """Least-squares slope of values against their index."""
    n = len(values)
    if n < 2:
        raise ComputationError("At least two points are required for a slope")
    x_mean = (n - 1) / 2
    y_mean = mean(values)
    num = sum((i - x_mean) * (y - y_mean) for i, y in enumerate(values))
    den = sum((i - x_mean) ** 2 for i in range(n))
    return num / den


def moving_average(values: Sequence[float], window: int) -> float:
    """Mean of the last `window` values (all values when shorter)."""
    return mean(list(values)[-window:])


def ensure_finite(values: Iterable[float], label: str = "value") -> List[float]:
    out = []
    for v in values:
        if not math.isfinite(v):
            raise ComputationError(f"Non-finite {label}: {v}")
        out.append(float(v))
    return out
