"""In-memory deduplicating ingestion queue with chunked delivery and backoff.

One queue instance is created per process and handed to whoever produces
rows.  It owns:

  - ``pending``: rows not yet confirmed delivered, in enqueue order
  - a dedup set of full-tuple keys for every pending row
  - the backoff position and a single "flush in flight" flag

``flush`` takes chunks of at most ``chunk_size`` rows off the front.  A
chunk leaves the queue only after the delivery callable confirms it; on
failure the unconfirmed rows and everything behind them stay pending and
one retry is scheduled after the next backoff step (2s, 5s, 15s, 60s,
then 60s).  A failed result may still report ``sent`` rows that landed
before the failure; those leading rows are dropped so they are never sent
twice.

Listeners registered with :meth:`IngestionQueue.add_listener` are awaited
with every batch of confirmed rows.

The queue lives in memory only: rows still pending when the process
exits are lost.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Iterable, Sequence

from vitalsync.ingestion.client import DeliveryResult
from vitalsync.ingestion.rows import MetricRow

logger = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE = 200
DEFAULT_BACKOFF_STEPS: tuple[float, ...] = (2.0, 5.0, 15.0, 60.0)

Deliver = Callable[[Sequence[MetricRow]], Awaitable[DeliveryResult]]
Listener = Callable[[list[MetricRow]], Awaitable[None]]
Sleep = Callable[[float], Awaitable[None]]


class IngestionQueue:
    """Deduplicating delivery queue.

    Args:
        deliver: Async callable sending one chunk; returns a DeliveryResult.
            Raising is treated like ``ok=False``.
        chunk_size: Maximum rows per delivery call.
        backoff_steps: Retry delays in seconds; the last one repeats.
        sleep: Awaitable delay used for retries (``asyncio.sleep``).
    """

    def __init__(
        self,
        deliver: Deliver,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        backoff_steps: Sequence[float] = DEFAULT_BACKOFF_STEPS,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        if chunk_size < 1:
            raise ValueError("chunk_size must be >= 1")
        if not backoff_steps:
            raise ValueError("backoff_steps must not be empty")
        self._deliver = deliver
        self.chunk_size = chunk_size
        self.backoff_steps = tuple(backoff_steps)
        self._sleep = sleep

        self._pending: list[MetricRow] = []
        self._keys: set[str] = set()
        self._failures = 0
        self._flushing = False
        self._retry_task: asyncio.Task | None = None
        self._tasks: set[asyncio.Task] = set()
        self._listeners: list[Listener] = []

        # Stats
        self.delivered_total = 0
        self.duplicates_dropped = 0
        self.retry_delays: list[float] = []

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def pending(self) -> list[MetricRow]:
        return list(self._pending)

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    @property
    def is_flushing(self) -> bool:
        return self._flushing

    @property
    def retry_scheduled(self) -> bool:
        return self._retry_task is not None and not self._retry_task.done()

    @property
    def stats(self) -> dict:
        return {
            "pending": len(self._pending),
            "delivered_total": self.delivered_total,
            "duplicates_dropped": self.duplicates_dropped,
            "consecutive_failures": self._failures,
            "retry_scheduled": self.retry_scheduled,
        }

    def next_delay(self) -> float:
        """Backoff delay for the next retry, capped at the last step."""
        idx = min(self._failures, len(self.backoff_steps) - 1)
        return self.backoff_steps[idx]

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def add_listener(self, listener: Listener) -> None:
        """Await *listener* with each batch of rows the sink confirmed."""
        self._listeners.append(listener)

    def enqueue(self, rows: Iterable[MetricRow]) -> int:
        """Add rows that are not already pending and kick off a flush.

        Returns:
            Number of rows actually added, which may be lower than the
            number submitted.
        """
        added = 0
        for row in rows:
            key = row.dedup_key
            if key in self._keys:
                self.duplicates_dropped += 1
                continue
            self._keys.add(key)
            self._pending.append(row)
            added += 1

        if added:
            logger.debug("QUEUE enqueue added=%d pending=%d", added, len(self._pending))
            self._spawn(self.flush())
        return added

    async def flush(self) -> int:
        """Deliver pending rows chunk by chunk.

        Calls made while another flush is running return immediately.

        Returns:
            Rows still pending afterwards.
        """
        if self._flushing:
            return len(self._pending)

        self._flushing = True
        try:
            while self._pending:
                chunk = self._pending[: self.chunk_size]
                result = await self._try_deliver(chunk)
                done = chunk if result.ok else chunk[: max(0, min(result.sent, len(chunk)))]
                if done:
                    await self._confirm(done)
                if not result.ok:
                    self._schedule_retry()
                    break
                self._failures = 0
        finally:
            self._flushing = False
        return len(self._pending)

    async def drain(self) -> int:
        """Wait for in-flight flush and retry tasks started by this queue."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
        return len(self._pending)

    def cancel_retry(self) -> None:
        if self._retry_task is not None and not self._retry_task.done():
            self._retry_task.cancel()
        self._retry_task = None

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _try_deliver(self, chunk: list[MetricRow]) -> DeliveryResult:
        try:
            result = await self._deliver(chunk)
        except Exception as e:
            logger.warning("QUEUE deliver_error rows=%d err=%s", len(chunk), e)
            return DeliveryResult(ok=False, error=str(e))
        if not result.ok:
            logger.warning(
                "QUEUE deliver_failed rows=%d landed=%d err=%s",
                len(chunk), result.sent, result.error,
            )
            return result
        logger.info("QUEUE delivered rows=%d pending_after=%d", len(chunk), len(self._pending) - len(chunk))
        return result

    async def _confirm(self, rows: list[MetricRow]) -> None:
        del self._pending[: len(rows)]
        for row in rows:
            self._keys.discard(row.dedup_key)
        self.delivered_total += len(rows)
        for listener in self._listeners:
            try:
                await listener(rows)
            except Exception:
                logger.exception("QUEUE listener_error rows=%d", len(rows))

    def _schedule_retry(self) -> None:
        if self.retry_scheduled:
            return
        delay = self.next_delay()
        self._failures += 1
        self.retry_delays.append(delay)
        logger.warning(
            "QUEUE retry_scheduled delay=%.0fs attempt=%d pending=%d",
            delay, self._failures, len(self._pending),
        )
        self._retry_task = self._spawn(self._retry_after(delay))

    async def _retry_after(self, delay: float) -> None:
        await self._sleep(delay)
        self._retry_task = None
        await self.flush()

    def _spawn(self, coro) -> asyncio.Task | None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # No loop: rows stay pending until someone awaits flush().
            coro.close()
            return None
        task = loop.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task
