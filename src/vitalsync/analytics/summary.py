"""Per-metric insight report.

Bundles the derived views a metric card needs (daily summaries, baselines,
today's delta, badge and a short sparkline) into one JSON-serializable
object.
"""

from __future__ import annotations

import json
import math
from dataclasses import dataclass, field
from typing import Any, Sequence

from vitalsync.analytics.baseline import BaselinePoint
from vitalsync.analytics.daily import DailySummary
from vitalsync.analytics.deviation import Badge, BadgeResult, delta_percent

SPARKLINE_DAYS = 7


@dataclass
class InsightReport:
    """Derived insight for one metric."""

    metric: str
    daily: list[DailySummary] = field(default_factory=list)
    baselines: list[BaselinePoint] = field(default_factory=list)
    today: DailySummary | None = None
    today_delta_pct: float | None = None
    badge: Badge = Badge.MAINTAIN
    reason: str = ""
    sparkline: list[float] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "metric": self.metric,
            "today": self.today.to_dict() if self.today else None,
            "today_delta_pct": self.today_delta_pct,
            "badge": self.badge.value,
            "reason": self.reason,
            "sparkline": self.sparkline,
            "daily": [d.to_dict() for d in self.daily],
            "baselines": [
                {"date": b.date, "baseline": b.baseline, "sigma": b.sigma}
                for b in self.baselines
            ],
        }

    def to_json(self, indent: int = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent)

    def __repr__(self) -> str:
        delta = f"{self.today_delta_pct:+.1f}%" if self.today_delta_pct is not None else "--"
        day = self.today.date if self.today else "no data"
        return f"InsightReport({self.metric} {day}: {self.badge.value}, delta={delta})"


def sparkline(days: Sequence[DailySummary], n: int = SPARKLINE_DAYS) -> list[float]:
    """Finite representative values of the last *n* days."""
    return [
        d.resting_value
        for d in days[-n:]
        if d.resting_value is not None and math.isfinite(d.resting_value)
    ]


def build_insight_report(
    metric: str,
    daily: list[DailySummary],
    baselines: list[BaselinePoint],
    badge: BadgeResult,
) -> InsightReport:
    today = daily[-1] if daily else None
    base = baselines[-1].baseline if baselines else None
    return InsightReport(
        metric=metric,
        daily=daily,
        baselines=baselines,
        today=today,
        today_delta_pct=delta_percent(today.resting_value if today else None, base),
        badge=badge.badge,
        reason=badge.reason,
        sparkline=sparkline(daily),
    )
