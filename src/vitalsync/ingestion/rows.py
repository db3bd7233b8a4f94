"""Wire rows for the remote metrics store.

A :class:`MetricRow` is the unit of transmission:

    {user_id, metric, ts, value, unit, source, device_id, day}

``ts`` is UTC formatted as ``YYYY-MM-DD HH:mm:ss.mmm`` and ``day`` is the
UTC calendar day of the same instant, derived from the datetime itself
rather than sliced out of ``ts``.
"""

from __future__ import annotations

import math
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Iterable

from vitalsync.samples import Sample

DEDUP_KEY_SEPARATOR = "|"


@dataclass(frozen=True)
class IngestContext:
    """Who and what produced the samples."""

    user_id: str
    source: str = "apple_health"  # apple_health | google_fit | demo
    device_id: str = "ios_device"


@dataclass(frozen=True)
class MetricRow:
    user_id: str
    metric: str
    ts: str
    value: float
    unit: str
    source: str
    device_id: str
    day: str

    @property
    def dedup_key(self) -> str:
        """Full-tuple identity used by the ingestion queue."""
        return DEDUP_KEY_SEPARATOR.join(
            str(v)
            for v in (
                self.user_id,
                self.metric,
                self.ts,
                self.value,
                self.unit,
                self.source,
                self.device_id,
                self.day,
            )
        )

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


# ---------------------------------------------------------------------------
# Timestamp normalization
# ---------------------------------------------------------------------------


def to_utc_ts(dt: datetime) -> str:
    """``2025-08-22 12:40:00.000`` (UTC, millisecond precision, truncated)."""
    u = dt.astimezone(timezone.utc)
    return u.strftime("%Y-%m-%d %H:%M:%S") + f".{u.microsecond // 1000:03d}"


def day_from_utc(dt: datetime) -> str:
    return dt.astimezone(timezone.utc).date().isoformat()


# ---------------------------------------------------------------------------
# Unit handling
# ---------------------------------------------------------------------------


def normalize_spo2(value: float) -> float:
    """Convert fractional SpO2 (0-1) to percent; percent passes through.

    This is a heuristic: any value <= 1 is assumed to be a fraction.  It
    cannot tell a fractional 0.8 apart from a (clinically implausible)
    0.8 percent reading.
    """
    return value * 100.0 if value <= 1 else value


# ---------------------------------------------------------------------------
# Mappers
# ---------------------------------------------------------------------------


def _map(
    samples: Iterable[Sample],
    ctx: IngestContext,
    metric: str,
    unit: str,
    convert: Callable[[float], float] | None = None,
) -> list[MetricRow]:
    rows: list[MetricRow] = []
    for s in samples:
        if s.value is None or not math.isfinite(s.value):
            continue
        value = convert(s.value) if convert else s.value
        rows.append(
            MetricRow(
                user_id=ctx.user_id,
                metric=metric,
                ts=to_utc_ts(s.timestamp),
                value=value,
                unit=unit,
                source=ctx.source,
                device_id=ctx.device_id,
                day=day_from_utc(s.timestamp),
            )
        )
    return rows


def map_heart_rate(samples: Iterable[Sample], ctx: IngestContext) -> list[MetricRow]:
    return _map(samples, ctx, "heart_rate", "bpm")


def map_spo2(samples: Iterable[Sample], ctx: IngestContext) -> list[MetricRow]:
    """SpO2 rows in percent, applying :func:`normalize_spo2`."""
    return _map(samples, ctx, "spo2", "%", convert=normalize_spo2)


def map_hrv(samples: Iterable[Sample], ctx: IngestContext) -> list[MetricRow]:
    return _map(samples, ctx, "hrv", "ms")


MAPPERS: dict[str, Callable[[Iterable[Sample], IngestContext], list[MetricRow]]] = {
    "heart_rate": map_heart_rate,
    "spo2": map_spo2,
    "hrv": map_hrv,
}
