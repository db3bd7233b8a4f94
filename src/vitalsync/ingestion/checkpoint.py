"""Per-metric checkpoints: the newest sample timestamp the sink has confirmed.

Checkpoints live in a small key-value store, one key per metric of the
form ``lastTs:<metric>`` holding an ISO-8601 instant.  When no usable
checkpoint exists the fetch window starts a default lookback (48 h)
before now.
"""

from __future__ import annotations

import asyncio
import json
import logging
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Callable, Protocol

from vitalsync.samples import parse_timestamp

logger = logging.getLogger(__name__)

KEY_PREFIX = "lastTs:"
DEFAULT_LOOKBACK_HOURS = 48.0


def checkpoint_key(metric: str) -> str:
    return f"{KEY_PREFIX}{metric}"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class KeyValueStore(Protocol):
    async def get_item(self, key: str) -> str | None: ...

    async def set_item(self, key: str, value: str) -> None: ...


class MemoryStore:
    """Process-local store, for tests and dry runs."""

    def __init__(self, data: dict[str, str] | None = None) -> None:
        self.data: dict[str, str] = dict(data or {})

    async def get_item(self, key: str) -> str | None:
        return self.data.get(key)

    async def set_item(self, key: str, value: str) -> None:
        self.data[key] = value


class JsonFileStore:
    """Key-value store persisted as one JSON object on disk.

    Writes go to a temporary sibling file first and are then renamed over
    the target, so a crash mid-write leaves the previous contents intact.
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path).expanduser()
        self._lock = asyncio.Lock()

    def _read(self) -> dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except ValueError:
            logger.warning("CHECKPOINT corrupt_store path=%s", self.path)
            return {}
        return data if isinstance(data, dict) else {}

    async def get_item(self, key: str) -> str | None:
        value = self._read().get(key)
        return value if isinstance(value, str) else None

    async def set_item(self, key: str, value: str) -> None:
        async with self._lock:
            data = self._read()
            data[key] = value
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp = self.path.with_suffix(self.path.suffix + ".tmp")
            tmp.write_text(json.dumps(data, indent=2, sort_keys=True), encoding="utf-8")
            tmp.replace(self.path)


class CheckpointStore:
    """Read and advance per-metric checkpoints.

    Args:
        store: Backing key-value store.
        clock: Returns the current aware datetime (used for the default
            lookback).
    """

    def __init__(
        self,
        store: KeyValueStore,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.store = store
        self._clock = clock

    async def get_last_ts(
        self,
        metric: str,
        fallback_hours: float = DEFAULT_LOOKBACK_HOURS,
    ) -> datetime:
        """Stored checkpoint, or ``now - fallback_hours`` if none is usable."""
        try:
            raw = await self.store.get_item(checkpoint_key(metric))
        except OSError as e:
            logger.warning("CHECKPOINT read_failed metric=%s err=%s", metric, e)
            raw = None
        if raw:
            dt = parse_timestamp(raw)
            if dt is not None:
                return dt
            logger.warning("CHECKPOINT unparseable metric=%s value=%r", metric, raw)
        return self._clock() - timedelta(hours=fallback_hours)

    async def set_last_ts(self, metric: str, ts: datetime | str) -> None:
        """Persist the checkpoint as an ISO-8601 string.

        Storage failures are logged; the next cycle then re-fetches from
        the old checkpoint.
        """
        iso = ts if isinstance(ts, str) else ts.isoformat()
        try:
            await self.store.set_item(checkpoint_key(metric), iso)
        except OSError as e:
            logger.warning("CHECKPOINT write_failed metric=%s err=%s", metric, e)
