"""Robust statistics shared by the aggregation and baseline engines.

All helpers accept any sequence of floats and return ``None`` instead of
NaN when the statistic is undefined, so callers can tell "absent" apart
from a real value.
"""

from __future__ import annotations

import math
from typing import Sequence

import numpy as np


def finite_values(values: Sequence[float | None]) -> list[float]:
    """Keep only real, finite numbers."""
    return [float(v) for v in values if v is not None and math.isfinite(v)]


def median(values: Sequence[float]) -> float | None:
    """Median (mean of the two middle values for even counts)."""
    if len(values) == 0:
        return None
    return float(np.median(np.asarray(values, dtype=np.float64)))


def mean(values: Sequence[float]) -> float | None:
    if len(values) == 0:
        return None
    return float(np.mean(np.asarray(values, dtype=np.float64)))


def sample_std(values: Sequence[float]) -> float | None:
    """Bessel-corrected standard deviation (divisor N-1).

    Returns None if fewer than 2 values are provided.
    """
    if len(values) < 2:
        return None
    return float(np.std(np.asarray(values, dtype=np.float64), ddof=1))


def percentile(values: Sequence[float], p: float) -> float | None:
    """Nearest-rank percentile.

    Picks the sorted element at index ``round(p/100 * (n-1))`` with halves
    rounded up, so the result is always one of the inputs.
    """
    if len(values) == 0:
        return None
    arr = np.sort(np.asarray(values, dtype=np.float64))
    idx = int(math.floor(p / 100.0 * (len(arr) - 1) + 0.5))
    idx = min(len(arr) - 1, max(0, idx))
    return float(arr[idx])


def clamp(value: float, lo: float, hi: float) -> float:
    return min(hi, max(lo, value))
