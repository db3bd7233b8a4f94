"""Tests for vitalsync.ingestion.client against an in-process mock transport."""

import asyncio
import json

import httpx

from vitalsync.ingestion.client import RelayClient
from vitalsync.ingestion.queue import IngestionQueue

from tests.conftest import RecordingSleep, make_rows

BASE = "http://relay.test"


def _run(handler, fn):
    async def main():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http:
            client = RelayClient(BASE + "/", client=http)
            return await fn(client)

    return asyncio.run(main())


class TestInsertRows:
    def test_success(self):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            body = json.loads(request.content)
            return httpx.Response(200, json={"sent": len(body["rows"])})

        result = _run(handler, lambda c: c.insert_rows(make_rows(3)))

        assert result.ok
        assert result.sent == 3
        assert len(seen) == 1
        assert seen[0].method == "POST"
        assert str(seen[0].url) == BASE + "/metrics/insertRows"
        rows = json.loads(seen[0].content)["rows"]
        assert rows[0]["metric"] == "heart_rate"
        assert rows[0]["ts"] == "2025-08-22 12:00:00.000"

    def test_missing_sent_uses_row_count(self):
        result = _run(lambda r: httpx.Response(200, text="ok"), lambda c: c.insert_rows(make_rows(2)))
        assert result.ok
        assert result.sent == 2

    def test_http_error(self):
        result = _run(
            lambda r: httpx.Response(500, text="boom"),
            lambda c: c.insert_rows(make_rows(2)),
        )
        assert not result.ok
        assert result.error == "HTTP 500: boom"

    def test_transport_error(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        result = _run(handler, lambda c: c.insert_rows(make_rows(1)))
        assert not result.ok
        assert "ConnectError" in result.error

    def test_chunking(self):
        sizes = []

        def handler(request):
            n = len(json.loads(request.content)["rows"])
            sizes.append(n)
            return httpx.Response(200, json={"sent": n})

        result = _run(handler, lambda c: c.insert_rows(make_rows(2500)))
        assert sizes == [1000, 1000, 500]
        assert result.sent == 2500

    def test_stops_at_first_failed_chunk(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(503 if len(calls) == 2 else 200, json={})

        result = _run(handler, lambda c: c.insert_rows(make_rows(30), chunk_size=10))
        assert not result.ok
        assert result.sent == 10
        assert len(calls) == 2

    def test_empty(self):
        def handler(request):
            raise AssertionError("no request expected")

        result = _run(handler, lambda c: c.insert_rows([]))
        assert result.ok
        assert result.sent == 0


class TestHealth:
    def test_ok(self):
        assert _run(lambda r: httpx.Response(200, json={"ok": True}), lambda c: c.health()) is True

    def test_not_ok(self):
        assert _run(lambda r: httpx.Response(200, json={"ok": False}), lambda c: c.health()) is False

    def test_non_json(self):
        assert _run(lambda r: httpx.Response(502, text="bad gateway"), lambda c: c.health()) is False

    def test_unreachable(self):
        def handler(request):
            raise httpx.ConnectError("down", request=request)

        assert _run(handler, lambda c: c.health()) is False


class TestDevSql:
    def test_returns_text(self):
        seen = []

        def handler(request):
            seen.append(json.loads(request.content))
            return httpx.Response(200, text="count()\n42\n")

        out = _run(handler, lambda c: c.dev_sql("SELECT count() FROM metrics"))
        assert out == "count()\n42\n"
        assert seen == [{"sql": "SELECT count() FROM metrics"}]


class TestQueueOverRelay:
    def test_landed_posts_not_resent(self):
        received = []
        attempts = []

        def handler(request):
            rows = json.loads(request.content)["rows"]
            attempts.append(len(rows))
            if len(attempts) == 2:
                return httpx.Response(503, text="busy")
            received.extend(r["ts"] for r in rows)
            return httpx.Response(200, json={"sent": len(rows)})

        async def main():
            async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http:
                client = RelayClient(BASE, client=http)
                queue = IngestionQueue(client.insert_rows, chunk_size=2500, sleep=RecordingSleep())
                queue.enqueue(make_rows(2500))
                await queue.drain()
                return queue

        queue = asyncio.run(main())
        assert attempts == [1000, 1000, 1000, 500]
        assert len(received) == 2500
        assert len(set(received)) == 2500
        assert queue.pending_count == 0
