"""HTTP client for the remote metrics relay.

Endpoints:
    POST /metrics/insertRows  {"rows": [...]}  -> 200 {"sent": n}
    GET  /health                               -> {"ok": bool}
    POST /dev/sql             {"sql": "..."}   -> raw text (debug only)

Delivery is all-or-nothing per POST: any non-2xx status or transport
error is a failure for the whole chunk.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Sequence

import httpx

from vitalsync.ingestion.rows import MetricRow

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SEC = 10.0
DEFAULT_POST_CHUNK = 1000


@dataclass(frozen=True)
class DeliveryResult:
    """Outcome of a delivery attempt: ``ok`` with ``sent`` rows, or ``error``."""

    ok: bool
    sent: int = 0
    error: str | None = None


class RelayClient:
    """Async client for the relay, built on :class:`httpx.AsyncClient`."""

    def __init__(
        self,
        base_url: str,
        timeout: float = DEFAULT_TIMEOUT_SEC,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout)

    async def __aenter__(self) -> RelayClient:
        return self

    async def __aexit__(self, *exc) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    def _url(self, path: str) -> str:
        return f"{self.base_url}{path}"

    async def _post_chunk(self, rows: Sequence[MetricRow]) -> DeliveryResult:
        try:
            resp = await self._client.post(
                self._url("/metrics/insertRows"),
                json={"rows": [r.to_dict() for r in rows]},
            )
        except httpx.HTTPError as e:
            logger.warning("RELAY insertRows transport_error rows=%d err=%s", len(rows), e)
            return DeliveryResult(ok=False, error=f"{type(e).__name__}: {e}")

        if not resp.is_success:
            logger.warning("RELAY insertRows status=%d rows=%d", resp.status_code, len(rows))
            return DeliveryResult(ok=False, error=f"HTTP {resp.status_code}: {resp.text}")

        try:
            body = resp.json()
        except ValueError:
            body = {}
        sent = body.get("sent", len(rows)) if isinstance(body, dict) else len(rows)
        try:
            sent = int(sent)
        except (TypeError, ValueError):
            sent = len(rows)
        return DeliveryResult(ok=True, sent=sent)

    async def insert_rows(
        self,
        rows: Sequence[MetricRow],
        chunk_size: int = DEFAULT_POST_CHUNK,
    ) -> DeliveryResult:
        """Insert rows, splitting into POSTs of at most *chunk_size* rows.

        Stops at the first failed POST.  The failed result carries the
        error and, in ``sent``, the rows that earlier POSTs already landed.
        """
        if not rows:
            return DeliveryResult(ok=True, sent=0)
        total = 0
        for i in range(0, len(rows), chunk_size):
            result = await self._post_chunk(rows[i : i + chunk_size])
            if not result.ok:
                return DeliveryResult(ok=False, sent=i, error=result.error)
            total += result.sent
        logger.debug("RELAY insertRows ok sent=%d", total)
        return DeliveryResult(ok=True, sent=total)

    async def health(self) -> bool:
        """Liveness probe; False on any failure."""
        try:
            resp = await self._client.get(self._url("/health"))
            body = resp.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.info("RELAY health unreachable err=%s", e)
            return False
        return bool(isinstance(body, dict) and body.get("ok"))

    async def dev_sql(self, sql: str) -> str:
        """Run a debug SQL query on the relay and return the raw response text."""
        resp = await self._client.post(self._url("/dev/sql"), json={"sql": sql})
        return resp.text
