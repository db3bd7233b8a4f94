"""Canonical sample model, minute bucketing and time-window filtering.

Every physiological reading (heart rate in bpm, SpO2 in percent, HRV in ms)
is a :class:`Sample`: an aware timestamp and a float value.  Sources do not
guarantee ordering, so everything downstream calls :func:`clean_samples`
first, which drops unusable readings and sorts ascending by timestamp.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone, tzinfo
from typing import Any, Iterable, Sequence


@dataclass(frozen=True)
class Sample:
    """A single time-stamped reading for one metric."""

    timestamp: datetime  # timezone-aware
    value: float

    def __repr__(self) -> str:
        return f"Sample({self.timestamp.isoformat()}, {self.value:g})"


@dataclass(frozen=True)
class MinuteBucket:
    """Mean of all samples whose timestamp falls inside one bucket."""

    minute_start: datetime
    mean: float


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------


def parse_timestamp(raw: Any) -> datetime | None:
    """Parse an ISO-8601 string, epoch seconds or datetime into an aware datetime.

    Naive values are taken to be UTC.  Returns None for anything that
    cannot be interpreted as an instant.
    """
    if isinstance(raw, datetime):
        dt = raw
    elif isinstance(raw, (int, float)) and not isinstance(raw, bool):
        if not math.isfinite(raw):
            return None
        try:
            dt = datetime.fromtimestamp(raw, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    elif isinstance(raw, str):
        text = raw.strip()
        if text.endswith("Z") or text.endswith("z"):
            text = text[:-1] + "+00:00"
        try:
            dt = datetime.fromisoformat(text)
        except ValueError:
            return None
    else:
        return None

    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def _as_float(raw: Any) -> float | None:
    if isinstance(raw, bool):
        return None
    try:
        value = float(raw)
    except (TypeError, ValueError):
        return None
    return value if math.isfinite(value) else None


def make_sample(ts: Any, value: Any) -> Sample | None:
    """Build a Sample from loosely typed input, or None if either part is bad."""
    dt = parse_timestamp(ts)
    v = _as_float(value)
    if dt is None or v is None:
        return None
    return Sample(timestamp=dt, value=v)


def clean_samples(samples: Iterable[Sample]) -> list[Sample]:
    """Drop non-finite values and sort ascending by timestamp (stable)."""
    kept = [s for s in samples if math.isfinite(s.value)]
    kept.sort(key=lambda s: s.timestamp)
    return kept


# ---------------------------------------------------------------------------
# Calendar helpers
# ---------------------------------------------------------------------------


def to_local(dt: datetime, tz: tzinfo | None = None) -> datetime:
    """Convert to *tz*, or to the host's local zone when tz is None."""
    return dt.astimezone(tz) if tz is not None else dt.astimezone()


def local_day(dt: datetime, tz: tzinfo | None = None) -> date:
    """Local calendar day of an instant (device-timezone dependent)."""
    return to_local(dt, tz).date()


def floor_to_minute(dt: datetime) -> datetime:
    return dt.replace(second=0, microsecond=0)


# ---------------------------------------------------------------------------
# Bucketing
# ---------------------------------------------------------------------------


def to_minute_series(samples: Iterable[Sample]) -> list[MinuteBucket]:
    """Average same-minute samples into one bucket per distinct minute.

    Buckets are returned in ascending time order.
    """
    sums: dict[datetime, list[float]] = {}
    for s in samples:
        if not math.isfinite(s.value):
            continue
        acc = sums.setdefault(floor_to_minute(s.timestamp), [0.0, 0.0])
        acc[0] += s.value
        acc[1] += 1.0
    return [
        MinuteBucket(minute_start=t, mean=total / n)
        for t, (total, n) in sorted(sums.items())
    ]


def filter_window(
    samples: Iterable[Sample],
    start: datetime,
    end: datetime,
) -> list[Sample]:
    """Samples with ``start <= timestamp < end``."""
    return [s for s in samples if start <= s.timestamp < end]


def bucket_average(
    samples: Sequence[Sample],
    start: datetime,
    end: datetime,
    bucket_minutes: int,
) -> list[MinuteBucket]:
    """Average samples into fixed-width bins covering ``[start, end)``.

    Used for intraday charts (e.g. 5-minute bins for one day, 15-minute
    bins for three days).  Bins without any finite sample are omitted.

    Args:
        samples: Readings in any order.
        start: Inclusive window start.
        end: Exclusive window end.
        bucket_minutes: Width of each bin in minutes (>= 1).
    """
    width = timedelta(minutes=max(1, bucket_minutes))
    span = (end - start) / width
    size = max(1, math.ceil(span))

    sums = [0.0] * size
    counts = [0] * size
    for s in samples:
        if s.timestamp < start or s.timestamp >= end or not math.isfinite(s.value):
            continue
        idx = min(max(int((s.timestamp - start) // width), 0), size - 1)
        sums[idx] += s.value
        counts[idx] += 1

    return [
        MinuteBucket(minute_start=start + i * width, mean=sums[i] / counts[i])
        for i in range(size)
        if counts[i]
    ]
