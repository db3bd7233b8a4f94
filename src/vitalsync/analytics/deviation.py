"""Deviation forms and single-metric readiness badges.

Two ways of expressing how far today's value sits from its baseline:

  - percentage delta ``(value - baseline) / baseline`` for duration or
    efficiency style metrics
  - z-score ``(value - baseline) / sigma`` for rate style metrics

Both return None when any input is missing or non-finite, when the
baseline is not positive (percentage form) or when sigma <= 0 (z form).
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum
from typing import Sequence

from vitalsync.analytics.baseline import BaselinePoint
from vitalsync.analytics.daily import DailySummary

NO_DATA_REASON = "No data yet"
NORMAL_REASON = "Within normal range"

# Single-metric thresholds, in percent
RHR_HIGH_PCT = 5.0
RHR_LOW_PCT = -3.0
HRV_LOW_PCT = -5.0
HRV_HIGH_PCT = 3.0

# Activity badge thresholds
ACTIVITY_TRAIN_STEPS = 10_000
ACTIVITY_TRAIN_KCAL = 500
ACTIVITY_MAINTAIN_STEPS = 5_000
ACTIVITY_MAINTAIN_KCAL = 250


class Badge(str, Enum):
    """Coarse readiness category."""

    RECOVER = "RECOVER"
    MAINTAIN = "MAINTAIN"
    TRAIN = "TRAIN"


@dataclass(frozen=True)
class BadgeResult:
    badge: Badge
    reason: str

    def to_dict(self) -> dict[str, str]:
        return {"badge": self.badge.value, "reason": self.reason}


def _finite(*values: float | None) -> bool:
    return all(v is not None and math.isfinite(v) for v in values)


# ---------------------------------------------------------------------------
# Deviation forms
# ---------------------------------------------------------------------------


def pct_delta(value: float | None, baseline: float | None) -> float | None:
    """Fractional change vs baseline (0.10 == +10%)."""
    if not _finite(value, baseline) or baseline <= 0:
        return None
    return (value - baseline) / baseline


def delta_percent(value: float | None, baseline: float | None) -> float | None:
    """Change vs baseline in percent (10.0 == +10%)."""
    d = pct_delta(value, baseline)
    return d * 100.0 if d is not None else None


def z_score(
    value: float | None,
    baseline: float | None,
    sigma: float | None,
) -> float | None:
    """Standard score of *value* against baseline and sigma."""
    if not _finite(value, baseline, sigma) or sigma <= 0:
        return None
    return (value - baseline) / sigma


# ---------------------------------------------------------------------------
# Single-metric badges
# ---------------------------------------------------------------------------


def _last(seq: Sequence, offset: int = 1):
    return seq[-offset] if len(seq) >= offset else None


def decide_heart_rate_badge(
    days: Sequence[DailySummary],
    baselines: Sequence[BaselinePoint],
) -> BadgeResult:
    """Badge from today's resting heart rate vs its baseline.

    Resting HR at least 5% above baseline means RECOVER, at least 3% below
    means TRAIN.  The previous day's delta is also computed and checked
    together with today's, although the combined condition is implied by
    today's check alone.
    """
    if not days:
        return BadgeResult(Badge.MAINTAIN, NO_DATA_REASON)

    today = _last(days)
    base = _last(baselines)
    dp = delta_percent(today.resting_value, base.baseline if base else None)

    prev = _last(days, 2)
    prev_base = _last(baselines, 2)
    prev_dp = delta_percent(
        prev.resting_value if prev else None,
        prev_base.baseline if prev_base else None,
    )

    def high(v: float | None) -> bool:
        return v is not None and v >= RHR_HIGH_PCT

    def low(v: float | None) -> bool:
        return v is not None and v <= RHR_LOW_PCT

    # TODO: decide whether a two-day confirmation (AND only) was intended here
    if (high(dp) and high(prev_dp)) or high(dp):
        return BadgeResult(Badge.RECOVER, f"RHR {dp:.1f}% above baseline")
    if low(dp):
        return BadgeResult(Badge.TRAIN, f"RHR {dp:.1f}% below baseline")
    return BadgeResult(Badge.MAINTAIN, NORMAL_REASON)


def decide_hrv_badge(
    days: Sequence[DailySummary],
    baselines: Sequence[BaselinePoint],
) -> BadgeResult:
    """Badge from today's HRV vs baseline (higher HRV is better)."""
    if not days:
        return BadgeResult(Badge.MAINTAIN, NO_DATA_REASON)

    base = _last(baselines)
    dp = delta_percent(_last(days).resting_value, base.baseline if base else None)

    if dp is not None and dp <= HRV_LOW_PCT:
        return BadgeResult(Badge.RECOVER, f"HRV {dp:.1f}% below baseline")
    if dp is not None and dp >= HRV_HIGH_PCT:
        return BadgeResult(Badge.TRAIN, f"HRV {dp:.1f}% above baseline")
    return BadgeResult(Badge.MAINTAIN, NORMAL_REASON)


def decide_activity_badge(steps: float, active_energy_kcal: float) -> BadgeResult:
    """Badge from today's step count and active energy."""
    if steps >= ACTIVITY_TRAIN_STEPS or active_energy_kcal >= ACTIVITY_TRAIN_KCAL:
        return BadgeResult(Badge.TRAIN, "High activity")
    if steps >= ACTIVITY_MAINTAIN_STEPS or active_energy_kcal >= ACTIVITY_MAINTAIN_KCAL:
        return BadgeResult(Badge.MAINTAIN, "Solid movement")
    return BadgeResult(Badge.RECOVER, "Low activity today")
