"""Foreground-gated auto-ingestion.

While the host reports itself active the scheduler runs one poll cycle
immediately and then one every ``interval_sec``.  A cycle, per metric:

    checkpoint -> fetch since checkpoint -> keep samples strictly after it
    and after anything already queued -> map to rows -> enqueue

The checkpoint moves only when the queue confirms delivery: each enqueued
batch waits until every one of its rows has reached the sink, and then
the checkpoint advances to the newest sample of that batch.  Rows lost
with the process are therefore fetched again on the next start.

Only one cycle runs at a time; timer ticks and manual refreshes that
come while a cycle is in flight are skipped.  Metrics run concurrently
inside a cycle and each has its own error boundary, so one failing
metric never stops the others.  Deactivation cancels only the timer; a
cycle already running finishes on its own.
"""

from __future__ import annotations

import asyncio
import logging
import time
from datetime import datetime
from dataclasses import dataclass, field
from enum import Enum
from typing import Awaitable, Callable, Iterable, Mapping, TypeVar

from vitalsync.ingestion.checkpoint import DEFAULT_LOOKBACK_HOURS, CheckpointStore, utc_now
from vitalsync.ingestion.queue import IngestionQueue
from vitalsync.ingestion.rows import MAPPERS, IngestContext, MetricRow
from vitalsync.ingestion.source import SampleSource, SourceAuthorizationError
from vitalsync.samples import Sample

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_INTERVAL_SEC = 120.0
DEFAULT_METRICS = ("heart_rate", "spo2")
DEFAULT_MIN_SPACING_SEC = 7.0

Mapper = Callable[[Iterable[Sample], IngestContext], list[MetricRow]]


class SchedulerState(str, Enum):
    IDLE = "idle"
    POLLING = "polling"
    BACKOFF = "backoff"


@dataclass
class _Batch:
    """Rows handed to the queue in one cycle, not yet all delivered."""

    up_to: datetime
    keys: set[str] = field(default_factory=set)


class RefreshGuard:
    """Debounce plus in-flight guard for user-triggered refreshes.

    A call is dropped (returns None) while a previous one is still running
    or when it comes less than ``min_spacing`` seconds after the last
    accepted call.
    """

    def __init__(
        self,
        min_spacing: float = DEFAULT_MIN_SPACING_SEC,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.min_spacing = min_spacing
        self._clock = clock
        self._last: float | None = None
        self.in_flight = False

    def ready(self) -> bool:
        if self.in_flight:
            return False
        return self._last is None or self._clock() - self._last >= self.min_spacing

    async def run(self, fn: Callable[[], Awaitable[T]]) -> T | None:
        if not self.ready():
            logger.debug("REFRESH debounced")
            return None
        self.in_flight = True
        self._last = self._clock()
        try:
            return await fn()
        finally:
            self.in_flight = False


class AutoIngestionScheduler:
    """Poll a sample source and feed the ingestion queue.

    Args:
        source: Where samples come from.
        queue: Shared ingestion queue.
        checkpoints: Per-metric checkpoint store.
        ctx: user/source/device stamped on every row.
        metrics: Metric name -> row mapper; defaults to heart rate and SpO2.
        interval_sec: Delay between cycles while active.
        lookback_hours: Fetch window when a metric has no checkpoint yet.
        clock: Current aware datetime (end of each fetch window).
        refresh_guard: Guard for :meth:`trigger_once`.
    """

    def __init__(
        self,
        source: SampleSource,
        queue: IngestionQueue,
        checkpoints: CheckpointStore,
        ctx: IngestContext,
        metrics: Mapping[str, Mapper] | None = None,
        interval_sec: float = DEFAULT_INTERVAL_SEC,
        lookback_hours: float = DEFAULT_LOOKBACK_HOURS,
        clock: Callable[[], datetime] = utc_now,
        refresh_guard: RefreshGuard | None = None,
    ) -> None:
        self.source = source
        self.queue = queue
        self.checkpoints = checkpoints
        self.ctx = ctx
        self.metrics: dict[str, Mapper] = dict(
            metrics if metrics is not None else {m: MAPPERS[m] for m in DEFAULT_METRICS}
        )
        self.interval_sec = interval_sec
        self.lookback_hours = lookback_hours
        self._clock = clock
        self.refresh_guard = refresh_guard or RefreshGuard()

        self._timer: asyncio.Task | None = None
        self._cycles: set[asyncio.Task] = set()
        self._polling = False
        self._authorized = False
        self._auth_failed = False
        self._queued_up_to: dict[str, datetime] = {}
        self._batches: dict[str, list[_Batch]] = {}
        self._blocked: set[str] = set()
        self.last_errors: dict[str, Exception] = {}
        self.cycles_run = 0
        self.cycles_skipped = 0

        queue.add_listener(self._on_delivered)

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def state(self) -> SchedulerState:
        if self._polling:
            return SchedulerState.POLLING
        if self.queue.retry_scheduled:
            return SchedulerState.BACKOFF
        return SchedulerState.IDLE

    @property
    def active(self) -> bool:
        return self._timer is not None and not self._timer.done()

    @property
    def blocked_metrics(self) -> set[str]:
        return set(self._blocked)

    # ------------------------------------------------------------------
    # Activity gating
    # ------------------------------------------------------------------

    def set_active(self, active: bool) -> None:
        """Host activity signal: True in foreground, False otherwise."""
        if active:
            self.start()
        else:
            self.stop()

    def start(self) -> None:
        """Run a cycle now and then every ``interval_sec``; no-op if running."""
        if self.active:
            return
        self._timer = asyncio.get_running_loop().create_task(self._tick())
        logger.info("INGEST timer started interval=%.0fs", self.interval_sec)

    def stop(self) -> None:
        """Cancel the timer.  Cycles already in flight are left to finish."""
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
            logger.info("INGEST timer stopped")

    async def _tick(self) -> None:
        while True:
            task = asyncio.get_running_loop().create_task(self.run_once())
            self._cycles.add(task)
            task.add_done_callback(self._cycles.discard)
            await asyncio.sleep(self.interval_sec)

    async def wait_idle(self) -> None:
        """Wait for every cycle started by the timer to finish."""
        while self._cycles:
            await asyncio.gather(*list(self._cycles), return_exceptions=True)

    # ------------------------------------------------------------------
    # Cycles
    # ------------------------------------------------------------------

    async def reauthorize(self) -> bool:
        """Retry authorization and unblock metrics on success."""
        self._authorized = False
        self._auth_failed = False
        ok = await self._ensure_authorized()
        if ok:
            self._blocked.clear()
        return ok

    async def _ensure_authorized(self) -> bool:
        if self._authorized:
            return True
        if self._auth_failed:
            return False
        try:
            await self.source.authorize()
        except SourceAuthorizationError as e:
            logger.error("INGEST authorization failed err=%s", e)
            self._auth_failed = True
            self._blocked.update(self.metrics)
            for metric in self.metrics:
                self.last_errors[metric] = e
            return False
        self._authorized = True
        return True

    async def trigger_once(self) -> dict[str, int] | None:
        """Manual refresh; None when debounced or a cycle is already running."""
        if self._polling:
            self.cycles_skipped += 1
            return None
        return await self.refresh_guard.run(self.run_once)

    async def run_once(self) -> dict[str, int] | None:
        """One poll cycle over every metric.

        Returns:
            Rows newly queued per metric, or None when another cycle was
            already running.
        """
        if self._polling:
            self.cycles_skipped += 1
            logger.debug("INGEST cycle skipped, previous one still running")
            return None
        self._polling = True
        try:
            if not await self._ensure_authorized():
                return {m: 0 for m in self.metrics}
            names = list(self.metrics)
            counts = await asyncio.gather(*(self._run_metric(m) for m in names))
            self.cycles_run += 1
            return dict(zip(names, counts))
        finally:
            self._polling = False

    # ------------------------------------------------------------------
    # Checkpoints
    # ------------------------------------------------------------------

    async def _on_delivered(self, rows: list[MetricRow]) -> None:
        keys = {r.dedup_key for r in rows}
        for batches in self._batches.values():
            for batch in batches:
                batch.keys -= keys
        for metric in list(self._batches):
            await self._settle(metric)

    async def _settle(self, metric: str) -> None:
        """Advance the checkpoint past every fully delivered leading batch."""
        batches = self._batches.get(metric, [])
        up_to = None
        while batches and not batches[0].keys:
            up_to = batches.pop(0).up_to
        if up_to is not None:
            await self.checkpoints.set_last_ts(metric, up_to)
            logger.info("INGEST metric=%s checkpoint upTo=%s", metric, up_to.isoformat())

    async def _run_metric(self, metric: str) -> int:
        if metric in self._blocked:
            logger.debug("INGEST metric=%s blocked until reauthorized", metric)
            return 0
        try:
            since = await self.checkpoints.get_last_ts(metric, self.lookback_hours)
            result = await self.source.fetch_samples(metric, since, self._clock())
            samples = result.unwrap()

            # The source range is inclusive; drop the checkpoint sample itself
            # and anything this process already queued past the checkpoint.
            floor = max(since, self._queued_up_to.get(metric, since))
            fresh = [s for s in samples if s.timestamp > floor]
            if not fresh:
                self.last_errors.pop(metric, None)
                return 0

            rows = self.metrics[metric](fresh, self.ctx)
            up_to = max(s.timestamp for s in fresh)
            self._queued_up_to[metric] = up_to
            self._batches.setdefault(metric, []).append(
                _Batch(up_to, {r.dedup_key for r in rows})
            )
            added = self.queue.enqueue(rows)
            await self._settle(metric)

            self.last_errors.pop(metric, None)
            logger.info(
                "INGEST metric=%s fetched=%d queued=%d upTo=%s",
                metric, len(fresh), added, up_to.isoformat(),
            )
            return added
        except SourceAuthorizationError as e:
            self._blocked.add(metric)
            self.last_errors[metric] = e
            logger.error("INGEST metric=%s not authorized err=%s", metric, e)
            return 0
        except Exception as e:
            self.last_errors[metric] = e
            logger.exception("INGEST metric=%s error", metric)
            return 0
