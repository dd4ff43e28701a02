"""
Scalar reducers used when merging several weather models.

All reducers are total: an empty input yields 0 rather than an error, so a
merge can never fail because a field happens to have no contributor.
"""
from __future__ import annotations

import statistics
from typing import Sequence

import numpy as np
from scipy import stats


def round2(value: float) -> float:
    """Round to two decimals (stage-boundary rounding for weather values)."""
    return round(float(value), 2)


def mean(values: Sequence[float]) -> float:
    if len(values) == 0:
        return 0.0
    return float(np.mean(np.asarray(values, dtype=np.float64)))


def median(values: Sequence[float]) -> float:
    """Median; robust to a single model's outlier spike."""
    if len(values) == 0:
        return 0.0
    return float(np.median(np.asarray(values, dtype=np.float64)))


def mode(values: Sequence[float]) -> float:
    """Most common value. Ties go to the value encountered first."""
    if len(values) == 0:
        return 0
    return statistics.mode(values)


def circular_mean(degrees: Sequence[float]) -> float:
    """
    Mean of compass bearings in degrees, normalised to [0, 360).

    Angles are averaged as unit vectors so that 350° and 10° give ~0°,
    not 180°.
    """
    if len(degrees) == 0:
        return 0.0
    angle = float(stats.circmean(np.asarray(degrees, dtype=np.float64), high=360.0, low=0.0))
    # A mean a hair below 0° comes back as ~360.0; fold it onto 0°.
    return round(angle, 9) % 360.0


AGGREGATORS = {
    "mean": mean,
    "median": median,
    "mode": mode,
    "circular_mean": circular_mean,
}
