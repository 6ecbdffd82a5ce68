"""Small numeric helpers shared by the analysis engines."""

from __future__ import annotations

import math
from collections.abc import Sequence

EARTH_RADIUS_MILES = 3958.8


def round_half_up(value: float) -> int:
    """Round to the nearest integer, ties toward +infinity.

    ``round()`` uses banker's rounding; scores and batch values are defined
    with half-up rounding (2.5 → 3, -2.5 → -2).
    """
    return math.floor(value + 0.5)


def upper_median(values: Sequence[float]) -> float:
    """Middle element of the sorted values; even lengths take the upper middle."""
    ordered = sorted(values)
    return ordered[len(ordered) // 2]


def mean_absolute_deviation(values: Sequence[float], center: float) -> float:
    """Average absolute distance of ``values`` from ``center``."""
    if not values:
        return 0.0
    return sum(abs(v - center) for v in values) / len(values)


def haversine_miles(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance between two WGS84 points, in miles."""
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    dphi = math.radians(lat2 - lat1)
    dlambda = math.radians(lon2 - lon1)

    a = (
        math.sin(dphi / 2) ** 2
        + math.cos(phi1) * math.cos(phi2) * math.sin(dlambda / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_MILES * c


def compact_number(value: float | None) -> str:
    """Render a number without a trailing '.0' (1500.0 → '1500', 12.5 → '12.5')."""
    if value is None:
        return "None"
    return str(int(value)) if float(value).is_integer() else str(value)
