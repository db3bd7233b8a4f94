"""Trailing N-day baseline (median) and sigma (sample std) per day.

The window for day ``i`` is ``[max(0, i - W), i)``: it looks backward only
and never contains day ``i`` itself, so a day's own value can never move
its own baseline.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Sequence

from vitalsync.analytics.stats import finite_values, median, sample_std

DEFAULT_WINDOW_DAYS = 28


def _resting_value(day: Any) -> float | None:
    return day.resting_value


@dataclass(frozen=True)
class BaselinePoint:
    """Baseline for one day computed from the days before it."""

    date: str
    baseline: float | None = None
    sigma: float | None = None

    def __repr__(self) -> str:
        b = f"{self.baseline:.1f}" if self.baseline is not None else "--"
        s = f"{self.sigma:.2f}" if self.sigma is not None else "--"
        return f"BaselinePoint({self.date}: {b} ±{s})"


def baseline_series(
    dates: Sequence[str],
    values: Sequence[float | None],
    window: int = DEFAULT_WINDOW_DAYS,
) -> list[BaselinePoint]:
    """Rolling baseline over a plain per-day series.

    Args:
        dates: Ordered day labels.
        values: Per-day values aligned with *dates*; None/NaN means missing.
        window: Number of prior days considered (W).

    Returns:
        One BaselinePoint per input day, same order.
    """
    if len(dates) != len(values):
        raise ValueError("dates and values must have the same length")
    if window < 1:
        raise ValueError("window must be at least 1 day")

    out: list[BaselinePoint] = []
    for i, day in enumerate(dates):
        prev = finite_values(values[max(0, i - window) : i])
        out.append(
            BaselinePoint(
                date=day,
                baseline=median(prev),
                sigma=sample_std(prev),
            )
        )
    return out


def rolling_baseline(
    days: Sequence[Any],
    window: int = DEFAULT_WINDOW_DAYS,
    key: Callable[[Any], float | None] | None = None,
) -> list[BaselinePoint]:
    """Rolling baseline over daily records (DailySummary or similar).

    Args:
        days: Ordered records exposing a ``date`` attribute.
        window: Number of prior days considered.
        key: Extracts the value to baseline; defaults to ``resting_value``.
    """
    if key is None:
        key = _resting_value
    return baseline_series(
        [d.date for d in days],
        [key(d) for d in days],
        window=window,
    )
