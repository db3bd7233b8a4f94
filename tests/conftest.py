"""Shared fixtures and helpers for the vitalsync test suite."""

from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Sequence

import pytest

from vitalsync.analytics.daily import DailySummary
from vitalsync.ingestion.client import DeliveryResult
from vitalsync.ingestion.rows import IngestContext, MetricRow
from vitalsync.samples import Sample

UTC = timezone.utc
NOW = datetime(2025, 8, 22, 12, 0, tzinfo=UTC)


# ---------------------------------------------------------------------------
# Sample-building helpers
# ---------------------------------------------------------------------------


def at(day: str, hh: int = 0, mm: int = 0, ss: int = 0) -> datetime:
    """UTC datetime on an ISO day, e.g. at("2025-01-02", 1, 30)."""
    d = datetime.fromisoformat(day)
    return datetime(d.year, d.month, d.day, hh, mm, ss, tzinfo=UTC)


def minute_samples(start: datetime, values: Sequence[float]) -> list[Sample]:
    """One sample per minute starting at *start*."""
    return [Sample(start + timedelta(minutes=i), float(v)) for i, v in enumerate(values)]


def night(day: str, value: float, minutes: int = 30, start_hour: int = 1) -> list[Sample]:
    """A flat overnight stretch of per-minute samples."""
    return minute_samples(at(day, start_hour), [value] * minutes)


def summary(day: str, resting: float | None, lo: float = 50.0, hi: float = 90.0) -> DailySummary:
    return DailySummary(date=day, min=lo, max=hi, avg=(lo + hi) / 2, resting_value=resting)


# ---------------------------------------------------------------------------
# Row helpers
# ---------------------------------------------------------------------------

CTX = IngestContext(user_id="u_dev", source="apple_health", device_id="iphone11")


def make_row(i: int = 0, metric: str = "heart_rate", value: float = 70.0) -> MetricRow:
    ts = NOW + timedelta(seconds=i)
    return MetricRow(
        user_id="u_dev",
        metric=metric,
        ts=ts.strftime("%Y-%m-%d %H:%M:%S.000"),
        value=value,
        unit="bpm",
        source="apple_health",
        device_id="iphone11",
        day=ts.date().isoformat(),
    )


def make_rows(n: int, metric: str = "heart_rate") -> list[MetricRow]:
    return [make_row(i, metric) for i in range(n)]


class FakeSink:
    """Scripted delivery callable.

    ``outcomes`` is consumed one entry per call: True = success,
    False = HTTP failure, an Exception instance = raised.  Once exhausted
    every call succeeds.
    """

    def __init__(self, outcomes: Sequence = ()) -> None:
        self.outcomes = list(outcomes)
        self.calls: list[list[MetricRow]] = []
        self.delivered: list[MetricRow] = []

    async def __call__(self, rows: Sequence[MetricRow]) -> DeliveryResult:
        self.calls.append(list(rows))
        outcome = self.outcomes.pop(0) if self.outcomes else True
        if isinstance(outcome, Exception):
            raise outcome
        if not outcome:
            return DeliveryResult(ok=False, error="HTTP 503: unavailable")
        self.delivered.extend(rows)
        return DeliveryResult(ok=True, sent=len(rows))


class RecordingSleep:
    """Stand-in for asyncio.sleep that records delays and returns at once."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


# ---------------------------------------------------------------------------
# Export file helpers
# ---------------------------------------------------------------------------


def write_jsonl(path: Path, entries: list[dict]) -> Path:
    """Write a list of dicts as JSONL to the given path."""
    with open(path, "w") as f:
        for entry in entries:
            f.write(json.dumps(entry) + "\n")
    return path


def export_entry(metric: str, ts: datetime, value: float) -> dict:
    return {"metric": metric, "ts": ts.isoformat().replace("+00:00", "Z"), "value": value}


@pytest.fixture
def sink() -> FakeSink:
    return FakeSink()


@pytest.fixture
def recording_sleep() -> RecordingSleep:
    return RecordingSleep()
