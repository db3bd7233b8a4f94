"""Health data sources.

A source exposes one capability, "fetch samples of metric M in
``[start, end]``", as an async request/response call that returns a
tagged :class:`FetchResult` instead of raising.  Sources must be
authorized once per process before the first fetch.

Two implementations ship here:

  - :class:`MemorySampleSource` holds samples in a dict (tests, demos)
  - :class:`FileSampleSource` reads an exported JSON / JSON-lines file of
    ``{"metric": ..., "ts": ..., "value": ...}`` objects
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Iterable, Protocol

from vitalsync.samples import Sample, clean_samples, make_sample

logger = logging.getLogger(__name__)


class SourceError(Exception):
    """Base class for sample-source failures."""


class SourceAuthorizationError(SourceError):
    """Permission not granted, or authorize() was never called."""


class SourceFetchError(SourceError):
    """Transient platform or I/O failure while fetching."""


@dataclass
class FetchResult:
    """Either ``samples`` or ``error``."""

    samples: list[Sample] = field(default_factory=list)
    error: SourceError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def unwrap(self) -> list[Sample]:
        if self.error is not None:
            raise self.error
        return self.samples


class SampleSource(Protocol):
    async def authorize(self) -> None: ...

    async def fetch_samples(
        self,
        metric: str,
        start: datetime,
        end: datetime,
    ) -> FetchResult: ...


def _in_range(samples: Iterable[Sample], start: datetime, end: datetime) -> list[Sample]:
    return clean_samples(s for s in samples if start <= s.timestamp <= end)


class MemorySampleSource:
    """In-memory source keyed by metric name.

    Args:
        data: Samples per metric.
        authorized: Start in the authorized state.
    """

    def __init__(
        self,
        data: dict[str, list[Sample]] | None = None,
        authorized: bool = False,
    ) -> None:
        self.data: dict[str, list[Sample]] = {k: list(v) for k, v in (data or {}).items()}
        self.authorized = authorized
        self.errors: dict[str, SourceError] = {}
        self.calls: list[tuple[str, datetime, datetime]] = []

    def add(self, metric: str, samples: Iterable[Sample]) -> None:
        self.data.setdefault(metric, []).extend(samples)

    async def authorize(self) -> None:
        self.authorized = True

    async def fetch_samples(self, metric: str, start: datetime, end: datetime) -> FetchResult:
        self.calls.append((metric, start, end))
        if not self.authorized:
            return FetchResult(error=SourceAuthorizationError("source not authorized"))
        if metric in self.errors:
            return FetchResult(error=self.errors[metric])
        return FetchResult(samples=_in_range(self.data.get(metric, []), start, end))


# ---------------------------------------------------------------------------
# File exports
# ---------------------------------------------------------------------------


def parse_sample_entries(entries: Iterable[dict]) -> dict[str, list[Sample]]:
    """Group export entries by metric, skipping malformed ones."""
    out: dict[str, list[Sample]] = {}
    skipped = 0
    for entry in entries:
        if not isinstance(entry, dict):
            skipped += 1
            continue
        metric = entry.get("metric")
        sample = make_sample(entry.get("ts"), entry.get("value"))
        if not isinstance(metric, str) or sample is None:
            skipped += 1
            continue
        out.setdefault(metric, []).append(sample)
    if skipped:
        logger.debug("SOURCE skipped_entries=%d", skipped)
    return out


def load_samples_file(path: str | Path) -> dict[str, list[Sample]]:
    """Read a JSON array or JSON-lines export into samples per metric.

    Raises:
        OSError: if the file cannot be read.
        UnicodeDecodeError: if the file is not UTF-8 text.
    """
    text = Path(path).read_text(encoding="utf-8")
    stripped = text.lstrip()
    if stripped.startswith("["):
        try:
            entries = json.loads(stripped)
        except json.JSONDecodeError:
            logger.warning("SOURCE invalid_json path=%s", path)
            entries = []
        return parse_sample_entries(entries if isinstance(entries, list) else [])

    entries = []
    for line_num, line in enumerate(text.splitlines(), 1):
        line = line.strip()
        if not line:
            continue
        try:
            entries.append(json.loads(line))
        except json.JSONDecodeError:
            logger.debug("SOURCE invalid_line path=%s line=%d", path, line_num)
    return parse_sample_entries(entries)


class FileSampleSource:
    """Source backed by an export file, re-read on every fetch."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self.authorized = False

    async def authorize(self) -> None:
        if not self.path.is_file():
            raise SourceAuthorizationError(f"export not readable: {self.path}")
        self.authorized = True

    async def fetch_samples(self, metric: str, start: datetime, end: datetime) -> FetchResult:
        if not self.authorized:
            return FetchResult(error=SourceAuthorizationError("source not authorized"))
        try:
            data = load_samples_file(self.path)
        except (OSError, UnicodeDecodeError) as e:
            return FetchResult(error=SourceFetchError(str(e)))
        return FetchResult(samples=_in_range(data.get(metric, []), start, end))
