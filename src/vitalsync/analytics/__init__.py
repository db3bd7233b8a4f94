"""Analytics engine turning raw physiological samples into insights.

Modules:
    stats      -- Robust statistics (median, percentile, sample std)
    daily      -- Daily aggregation with overnight resting estimate
    baseline   -- Trailing 28-day baseline, strictly excluding the current day
    deviation  -- Percentage / z-score deviations and single-metric badges
    readiness  -- Multi-driver readiness score
    chart      -- Chart-safe series and linear resampling
    summary    -- Per-metric insight report
    pipeline   -- Samples -> report wiring
"""

from vitalsync.analytics.daily import (
    build_daily_summaries,
    latest_day_average,
    resting_estimate,
    DailySummary,
)
from vitalsync.analytics.baseline import rolling_baseline, baseline_series, BaselinePoint
from vitalsync.analytics.deviation import (
    pct_delta,
    delta_percent,
    z_score,
    decide_heart_rate_badge,
    decide_hrv_badge,
    decide_activity_badge,
    Badge,
    BadgeResult,
)
from vitalsync.analytics.readiness import (
    compute_readiness,
    readiness_from_pack,
    Driver,
    DriverBaseline,
    ReadinessResult,
)
from vitalsync.analytics.chart import make_chart_safe, resample_linear, ChartPoint, ChartSeries
from vitalsync.analytics.summary import InsightReport
from vitalsync.analytics.pipeline import run_heart_rate_pipeline, run_hrv_pipeline

__all__ = [
    # daily
    "build_daily_summaries",
    "latest_day_average",
    "resting_estimate",
    "DailySummary",
    # baseline
    "rolling_baseline",
    "baseline_series",
    "BaselinePoint",
    # deviation
    "pct_delta",
    "delta_percent",
    "z_score",
    "decide_heart_rate_badge",
    "decide_hrv_badge",
    "decide_activity_badge",
    "Badge",
    "BadgeResult",
    # readiness
    "compute_readiness",
    "readiness_from_pack",
    "Driver",
    "DriverBaseline",
    "ReadinessResult",
    # chart
    "make_chart_safe",
    "resample_linear",
    "ChartPoint",
    "ChartSeries",
    # summary / pipeline
    "InsightReport",
    "run_heart_rate_pipeline",
    "run_hrv_pipeline",
]
