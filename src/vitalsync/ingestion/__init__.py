"""Reliable relay of samples to the remote metrics store.

Modules:
    rows       -- MetricRow wire shape and per-metric mappers
    client     -- httpx client for the relay (insert rows, health, debug SQL)
    queue      -- Deduplicating queue with chunked delivery and backoff
    checkpoint -- Per-metric "last timestamp sent" store
    source     -- Sample source contract and file / in-memory sources
    scheduler  -- Foreground-gated polling loop
"""

from vitalsync.ingestion.rows import (
    IngestContext,
    MetricRow,
    map_heart_rate,
    map_spo2,
    map_hrv,
    normalize_spo2,
    to_utc_ts,
    day_from_utc,
)
from vitalsync.ingestion.client import RelayClient, DeliveryResult
from vitalsync.ingestion.queue import IngestionQueue
from vitalsync.ingestion.checkpoint import CheckpointStore, JsonFileStore, MemoryStore
from vitalsync.ingestion.source import (
    FetchResult,
    FileSampleSource,
    MemorySampleSource,
    SourceError,
    SourceAuthorizationError,
    SourceFetchError,
)
from vitalsync.ingestion.scheduler import AutoIngestionScheduler, RefreshGuard, SchedulerState

__all__ = [
    # rows
    "IngestContext",
    "MetricRow",
    "map_heart_rate",
    "map_spo2",
    "map_hrv",
    "normalize_spo2",
    "to_utc_ts",
    "day_from_utc",
    # client
    "RelayClient",
    "DeliveryResult",
    # queue
    "IngestionQueue",
    # checkpoint
    "CheckpointStore",
    "JsonFileStore",
    "MemoryStore",
    # source
    "FetchResult",
    "FileSampleSource",
    "MemorySampleSource",
    "SourceError",
    "SourceAuthorizationError",
    "SourceFetchError",
    # scheduler
    "AutoIngestionScheduler",
    "RefreshGuard",
    "SchedulerState",
]
