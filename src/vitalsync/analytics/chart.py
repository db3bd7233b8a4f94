"""Chart-safe series and linear resampling.

Bounded chart renderers break on empty data, NaN values or a zero-height
value range.  :func:`make_chart_safe` guarantees at least two finite
points and a range with ``max_value > min_value`` for any input.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Sequence

import numpy as np

MIN_POINTS = 2
DEFAULT_FALLBACK = 60.0
MIN_RANGE = 1.0


@dataclass(frozen=True)
class ChartPoint:
    value: float
    label: str | None = None


@dataclass(frozen=True)
class TimedValue:
    t: float  # epoch seconds
    v: float


@dataclass
class ChartSeries:
    """A series safe to hand to a bounded renderer."""

    data: list[ChartPoint] = field(default_factory=list)
    max_value: float = 0.0
    min_value: float = 0.0


def make_chart_safe(
    points: Sequence[ChartPoint],
    fallback: float = DEFAULT_FALLBACK,
    non_negative: bool = True,
) -> ChartSeries:
    """Normalize an arbitrary point list into a renderable series.

    Args:
        points: Input points, possibly empty or containing NaN/inf.
        fallback: Value used for a flat two-point series when fewer than
            two finite points remain.
        non_negative: Floor the lower bound at 0 (physiological rates).

    Returns:
        ChartSeries with >= 2 finite points and max_value > min_value.

    Raises:
        ValueError: if *fallback* itself is not finite.
    """
    if not math.isfinite(fallback):
        raise ValueError(f"fallback must be finite, got {fallback!r}")

    series = [p for p in points if p.value is not None and math.isfinite(p.value)]
    if len(series) < MIN_POINTS:
        series = [ChartPoint(fallback), ChartPoint(fallback)]

    values = [p.value for p in series]
    lo, hi = min(values), max(values)
    if hi - lo < MIN_RANGE:
        hi += 0.5
        lo -= 0.5
    if non_negative:
        lo = max(0.0, lo)
        if hi <= lo:
            hi = lo + MIN_RANGE
    if hi <= lo:
        # magnitudes where +-0.5 is below float resolution
        hi = math.nextafter(lo, math.inf)

    return ChartSeries(data=series, max_value=hi, min_value=lo)


def resample_linear(series: Sequence[TimedValue], n: int) -> list[TimedValue]:
    """Resample a time-ordered series to exactly *n* evenly spaced points.

    Points are placed at equal time steps between the first and last
    timestamps, with values linearly interpolated between the bracketing
    originals.  Series with ``len(series) <= n`` are returned unchanged.
    """
    if len(series) <= n:
        return list(series)
    if n <= 0:
        return []
    if n == 1:
        return [series[0]]

    t = np.asarray([p.t for p in series], dtype=np.float64)
    v = np.asarray([p.v for p in series], dtype=np.float64)
    t_new = np.linspace(t[0], t[-1], n)
    v_new = np.interp(t_new, t, v)
    # linspace/interp can drift in the last ulp; pin endpoints exactly
    v_new[0], v_new[-1] = v[0], v[-1]
    return [TimedValue(float(a), float(b)) for a, b in zip(t_new, v_new)]


# ---------------------------------------------------------------------------
# Formatting helpers
# ---------------------------------------------------------------------------


def safe_label(x: Any) -> str:
    return x if isinstance(x, str) else ""


def safe_bpm(x: Any) -> str:
    """``"72 bpm"`` for anything numeric and finite, ``"--"`` otherwise."""
    try:
        v = float(x)
    except (TypeError, ValueError):
        return "--"
    if not math.isfinite(v):
        return "--"
    return f"{int(math.floor(v + 0.5))} bpm"


def hhmm(ts: datetime) -> str:
    return ts.astimezone().strftime("%H:%M")
