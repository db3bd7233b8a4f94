"""Daily aggregation: raw samples -> one DailySummary per local calendar day.

Days are keyed on the device's local calendar date, not the UTC day, so
the boundary moves with the timezone passed in (or the host zone).

For rate metrics with a resting value (heart rate) the representative
value is estimated from the overnight window:

  1. Average same-minute samples into minute buckets.
  2. Keep buckets inside local ``[00:00, 08:00)``.
  3. With fewer than 5 buckets the day has no resting value.
  4. Otherwise take the median of every run of 5 consecutive buckets and
     report the 10th percentile of those medians.

For other metrics (HRV) the representative value is the daily median.
min/max/avg always cover every sample of the day.
"""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from datetime import tzinfo
from typing import Any, Iterable

from vitalsync.analytics.stats import mean, median, percentile
from vitalsync.samples import MinuteBucket, Sample, clean_samples, local_day, to_local, to_minute_series

# Overnight window, local clock hours
RESTING_WINDOW_START_HOUR = 0
RESTING_WINDOW_END_HOUR = 8

MIN_RESTING_BUCKETS = 5
ROLLING_MEDIAN_SPAN = 5
RESTING_PERCENTILE = 10.0


@dataclass(frozen=True)
class DailySummary:
    """Statistical summary of one local calendar day."""

    date: str  # ISO date string, e.g. "2025-01-02"
    min: float
    max: float
    avg: float
    resting_value: float | None = None  # absent when there is not enough data

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    def to_json(self, indent: int = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent)

    def __repr__(self) -> str:
        rv = f"{self.resting_value:.1f}" if self.resting_value is not None else "--"
        return (
            f"DailySummary({self.date}: resting={rv}, "
            f"min={self.min:.0f}, max={self.max:.0f}, avg={self.avg:.1f})"
        )


# ---------------------------------------------------------------------------
# Resting value estimation
# ---------------------------------------------------------------------------


def resting_estimate(
    minutes: list[MinuteBucket],
    tz: tzinfo | None = None,
) -> float | None:
    """Robust resting estimate from one day's minute buckets.

    Args:
        minutes: Ascending minute buckets belonging to a single local day.
        tz: Timezone used to read the local clock (None = host zone).

    Returns:
        10th percentile of the 5-bucket rolling medians inside the
        overnight window, or None if the window holds fewer than 5 buckets.
    """
    night = [
        m.mean
        for m in minutes
        if RESTING_WINDOW_START_HOUR
        <= to_local(m.minute_start, tz).hour
        < RESTING_WINDOW_END_HOUR
    ]
    if len(night) < MIN_RESTING_BUCKETS:
        return None

    medians = [
        median(night[i : i + ROLLING_MEDIAN_SPAN])
        for i in range(len(night) - ROLLING_MEDIAN_SPAN + 1)
    ]
    return percentile(medians, RESTING_PERCENTILE)


# ---------------------------------------------------------------------------
# Daily summaries
# ---------------------------------------------------------------------------


def group_by_local_day(
    samples: Iterable[Sample],
    tz: tzinfo | None = None,
) -> dict[str, list[Sample]]:
    """Bucket cleaned samples by ISO local date, in ascending date order."""
    by_day: dict[str, list[Sample]] = {}
    for s in clean_samples(samples):
        by_day.setdefault(local_day(s.timestamp, tz).isoformat(), []).append(s)
    return dict(sorted(by_day.items()))


def build_daily_summaries(
    samples: Iterable[Sample],
    tz: tzinfo | None = None,
    resting: bool = True,
) -> list[DailySummary]:
    """Aggregate samples for one metric into ordered daily summaries.

    Args:
        samples: Unsorted samples; non-finite values are discarded.
        tz: Device timezone for the calendar boundary (None = host zone).
        resting: Estimate a resting value from the overnight window
            (heart-rate style).  When False the daily median is used as the
            representative value (HRV style).

    Returns:
        One DailySummary per local day that has at least one sample.
    """
    days: list[DailySummary] = []
    for day, arr in group_by_local_day(samples, tz).items():
        values = [s.value for s in arr]
        if resting:
            rep = resting_estimate(to_minute_series(arr), tz)
        else:
            rep = median(values)
        days.append(
            DailySummary(
                date=day,
                min=min(values),
                max=max(values),
                avg=mean(values),
                resting_value=rep,
            )
        )
    return days


def latest_day_average(
    samples: Iterable[Sample],
    tz: tzinfo | None = None,
) -> float | None:
    """Average of every sample on the most recent local day with data."""
    by_day = group_by_local_day(samples, tz)
    if not by_day:
        return None
    last = by_day[next(reversed(by_day))]
    return mean([s.value for s in last])
