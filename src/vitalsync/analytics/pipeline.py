"""Analytics pipeline: raw samples -> daily -> baseline -> badge.

Everything is recomputed from the full sample set on each call; nothing
is mutated incrementally.
"""

from __future__ import annotations

from datetime import tzinfo
from typing import Iterable

from vitalsync.analytics.baseline import DEFAULT_WINDOW_DAYS, rolling_baseline
from vitalsync.analytics.daily import build_daily_summaries
from vitalsync.analytics.deviation import decide_heart_rate_badge, decide_hrv_badge
from vitalsync.analytics.summary import InsightReport, build_insight_report
from vitalsync.samples import Sample


def run_heart_rate_pipeline(
    samples: Iterable[Sample],
    tz: tzinfo | None = None,
    window: int = DEFAULT_WINDOW_DAYS,
) -> InsightReport:
    """Resting heart rate insight from raw bpm samples.

    Args:
        samples: Heart rate samples in any order.
        tz: Device timezone for day boundaries (None = host zone).
        window: Baseline window in days.
    """
    daily = build_daily_summaries(samples, tz=tz, resting=True)
    baselines = rolling_baseline(daily, window=window)
    badge = decide_heart_rate_badge(daily, baselines)
    return build_insight_report("heart_rate", daily, baselines, badge)


def run_hrv_pipeline(
    samples: Iterable[Sample],
    tz: tzinfo | None = None,
    window: int = DEFAULT_WINDOW_DAYS,
) -> InsightReport:
    """HRV insight from raw SDNN samples (ms), using daily medians."""
    daily = build_daily_summaries(samples, tz=tz, resting=False)
    baselines = rolling_baseline(daily, window=window)
    badge = decide_hrv_badge(daily, baselines)
    return build_insight_report("hrv", daily, baselines, badge)
