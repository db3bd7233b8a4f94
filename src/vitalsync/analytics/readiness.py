"""Multi-driver readiness score.

Each driver compares today's value with its trailing baseline and turns
the deviation into signed points:

    driver            form   points (clamped)              direction
    hrv               z      25 * z/2     in [-25, 25]     higher better
    rhr               z     -20 * z/2     in [-20, 10]     lower better
    sleep_duration    %d     20 * d/0.20  in [-20, 20]     higher better
    sleep_efficiency  %d     10 * d/0.10  in [-10, 10]     higher better
    respiratory_rate  z     -10 * z/2     in [-10, 5]      lower better
    prior_day_strain  z     -10 * z/2     in [-10, 0]      lower better

score = clamp(50 + sum(points), 0, 100); < 40 RECOVER, > 70 TRAIN, else
MAINTAIN.  The driver with the largest absolute contribution supplies the
reason (first one wins on ties).  Drivers whose deviation is undefined
contribute nothing and are left out of the breakdown.
"""

from __future__ import annotations

import json
import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping

from vitalsync.analytics.deviation import NO_DATA_REASON, Badge, pct_delta, z_score
from vitalsync.analytics.stats import clamp

BASE_SCORE = 50.0
SCORE_MIN = 0.0
SCORE_MAX = 100.0
RECOVER_BELOW = 40.0
TRAIN_ABOVE = 70.0


class Driver(str, Enum):
    HRV = "hrv"
    RHR = "rhr"
    SLEEP_DURATION = "sleep_duration"
    SLEEP_EFFICIENCY = "sleep_efficiency"
    RESPIRATORY_RATE = "respiratory_rate"
    PRIOR_DAY_STRAIN = "prior_day_strain"


@dataclass(frozen=True)
class DriverRule:
    label: str
    form: str  # "z" or "pct"
    weight: float
    scale: float
    lo: float
    hi: float


RULES: dict[Driver, DriverRule] = {
    Driver.HRV: DriverRule("HRV", "z", 25.0, 2.0, -25.0, 25.0),
    Driver.RHR: DriverRule("RHR", "z", -20.0, 2.0, -20.0, 10.0),
    Driver.SLEEP_DURATION: DriverRule("Sleep", "pct", 20.0, 0.20, -20.0, 20.0),
    Driver.SLEEP_EFFICIENCY: DriverRule("Eff", "pct", 10.0, 0.10, -10.0, 10.0),
    Driver.RESPIRATORY_RATE: DriverRule("Resp", "z", -10.0, 2.0, -10.0, 5.0),
    Driver.PRIOR_DAY_STRAIN: DriverRule("Strain", "z", -10.0, 2.0, -10.0, 0.0),
}


@dataclass(frozen=True)
class DriverBaseline:
    baseline: float | None = None
    sigma: float | None = None


@dataclass(frozen=True)
class DeviationResult:
    """One driver's deviation and the points it contributes."""

    driver: Driver
    deviation: float  # z-score or fractional delta, per RULES
    points: float
    reason: str


@dataclass
class ReadinessResult:
    """Readiness score with per-driver breakdown."""

    score: float
    badge: Badge
    reason: str
    drivers: list[DeviationResult] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "score": self.score,
            "badge": self.badge.value,
            "reason": self.reason,
            "drivers": [
                {
                    "driver": d.driver.value,
                    "deviation": d.deviation,
                    "points": d.points,
                    "reason": d.reason,
                }
                for d in self.drivers
            ],
        }

    def to_json(self, indent: int = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent)

    def __repr__(self) -> str:
        return f"ReadinessResult(score={self.score:.1f}, badge={self.badge.value}, reason={self.reason!r})"


def _sign(v: float) -> str:
    return "+" if v >= 0 else ""


def _round_half_up(v: float) -> int:
    return int(math.floor(v + 0.5))


def score_driver(
    driver: Driver,
    value: float | None,
    base: DriverBaseline | None,
) -> DeviationResult | None:
    """Deviation and clamped points for one driver, or None if undefined."""
    if base is None:
        return None
    rule = RULES[driver]
    if rule.form == "z":
        dev = z_score(value, base.baseline, base.sigma)
        if dev is None:
            return None
        reason = f"{rule.label} {_sign(dev)}{dev:.1f}σ"
    else:
        dev = pct_delta(value, base.baseline)
        if dev is None:
            return None
        reason = f"{rule.label} {_sign(dev)}{_round_half_up(dev * 100)}%"
    points = clamp(rule.weight * (dev / rule.scale), rule.lo, rule.hi)
    return DeviationResult(driver=driver, deviation=dev, points=points, reason=reason)


def compute_readiness(
    today: Mapping[Driver | str, float | None],
    baselines: Mapping[Driver | str, DriverBaseline],
) -> ReadinessResult:
    """Combine all available drivers into a 0-100 readiness score.

    Args:
        today: Today's value per driver (missing keys or None are skipped).
        baselines: Baseline and sigma per driver.

    Returns:
        ReadinessResult; with no usable driver the score stays at 50 and
        the badge is MAINTAIN with reason "No data yet".
    """
    today_by = {Driver(k): v for k, v in today.items()}
    base_by = {Driver(k): v for k, v in baselines.items()}

    parts: list[DeviationResult] = []
    for driver in Driver:
        part = score_driver(driver, today_by.get(driver), base_by.get(driver))
        if part is not None:
            parts.append(part)

    score = clamp(BASE_SCORE + sum(p.points for p in parts), SCORE_MIN, SCORE_MAX)
    if score < RECOVER_BELOW:
        badge = Badge.RECOVER
    elif score > TRAIN_ABOVE:
        badge = Badge.TRAIN
    else:
        badge = Badge.MAINTAIN

    top = sorted(parts, key=lambda p: -abs(p.points))
    reason = top[0].reason if top else NO_DATA_REASON

    return ReadinessResult(score=score, badge=badge, reason=reason, drivers=parts)


def readiness_from_pack(pack: Mapping[str, Any]) -> ReadinessResult:
    """Score a JSON-style pack ``{"today": {...}, "base": {driver: {...}}}``."""
    base = {
        k: DriverBaseline(baseline=v.get("baseline"), sigma=v.get("sigma"))
        for k, v in pack.get("base", {}).items()
    }
    return compute_readiness(pack.get("today", {}), base)
