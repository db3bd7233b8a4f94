"""End-to-end tests for the analytics pipeline and insight report."""

import json
from datetime import date, timedelta, timezone

import pytest

from vitalsync.analytics.deviation import Badge
from vitalsync.analytics.pipeline import run_heart_rate_pipeline, run_hrv_pipeline
from vitalsync.analytics.summary import sparkline

from tests.conftest import night, summary

UTC = timezone.utc


def _days(n: int, start: date = date(2025, 6, 1)) -> list[str]:
    return [(start + timedelta(days=i)).isoformat() for i in range(n)]


class TestHeartRatePipeline:
    def test_elevated_today_recover(self):
        days = _days(30)
        samples = []
        for d in days[:-1]:
            samples += night(d, 60.0)
        samples += night(days[-1], 66.0)

        report = run_heart_rate_pipeline(samples, tz=UTC)

        assert len(report.daily) == 30
        assert report.today.date == days[-1]
        assert report.today.resting_value == 66.0
        assert report.baselines[-1].baseline == 60.0
        assert report.today_delta_pct == pytest.approx(10.0)
        assert report.badge is Badge.RECOVER
        assert report.reason == "RHR 10.0% above baseline"
        assert report.sparkline == [60.0] * 6 + [66.0]

    def test_steady_maintain(self):
        samples = []
        for d in _days(10):
            samples += night(d, 58.0)
        report = run_heart_rate_pipeline(samples, tz=UTC)
        assert report.badge is Badge.MAINTAIN
        assert report.reason == "Within normal range"

    def test_first_day_has_no_baseline(self):
        report = run_heart_rate_pipeline(night("2025-06-01", 60.0), tz=UTC)
        assert report.baselines[0].baseline is None
        assert report.today_delta_pct is None
        assert report.badge is Badge.MAINTAIN

    def test_no_samples(self):
        report = run_heart_rate_pipeline([], tz=UTC)
        assert report.daily == []
        assert report.today is None
        assert report.reason == "No data yet"
        assert "no data" in repr(report)

    def test_short_window(self):
        days = _days(5)
        samples = night(days[0], 90.0)
        for d in days[1:]:
            samples += night(d, 60.0)
        report = run_heart_rate_pipeline(samples, tz=UTC, window=2)
        assert report.baselines[-1].baseline == 60.0

    def test_report_json(self):
        samples = night("2025-06-01", 60.0) + night("2025-06-02", 61.0)
        parsed = json.loads(run_heart_rate_pipeline(samples, tz=UTC).to_json())
        assert parsed["metric"] == "heart_rate"
        assert parsed["today"]["date"] == "2025-06-02"
        assert parsed["baselines"][1]["baseline"] == 60.0
        assert len(parsed["daily"]) == 2


class TestHRVPipeline:
    def test_low_hrv_recover(self):
        days = _days(8)
        samples = []
        for d in days[:-1]:
            samples += night(d, 50.0, minutes=3)
        samples += night(days[-1], 40.0, minutes=3)

        report = run_hrv_pipeline(samples, tz=UTC)

        assert report.metric == "hrv"
        assert report.today.resting_value == 40.0
        assert report.badge is Badge.RECOVER

    def test_hrv_uses_daily_median(self):
        samples = [
            *night("2025-06-01", 40.0, minutes=1, start_hour=9),
            *night("2025-06-01", 50.0, minutes=1, start_hour=12),
            *night("2025-06-01", 90.0, minutes=1, start_hour=18),
        ]
        report = run_hrv_pipeline(samples, tz=UTC)
        assert report.today.resting_value == 50.0


class TestSparkline:
    def test_last_seven_finite(self):
        days = [summary(d, float(i)) for i, d in enumerate(_days(10))]
        assert sparkline(days) == [3.0, 4.0, 5.0, 6.0, 7.0, 8.0, 9.0]

    def test_skips_missing(self):
        days = [summary("2025-06-01", None), summary("2025-06-02", 60.0)]
        assert sparkline(days) == [60.0]
