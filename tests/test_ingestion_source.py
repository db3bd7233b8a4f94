"""Tests for vitalsync.ingestion.source -- sample sources and export files."""

import asyncio
import json
from datetime import timedelta

import pytest

from vitalsync.ingestion.source import (
    FileSampleSource,
    MemorySampleSource,
    SourceAuthorizationError,
    SourceFetchError,
    load_samples_file,
    parse_sample_entries,
)
from vitalsync.samples import Sample

from tests.conftest import NOW, export_entry, write_jsonl


def _hr(minutes_ago: int, value: float = 60.0) -> Sample:
    return Sample(NOW - timedelta(minutes=minutes_ago), value)


class TestMemorySampleSource:
    def test_requires_authorization(self):
        source = MemorySampleSource({"heart_rate": [_hr(5)]})
        result = asyncio.run(source.fetch_samples("heart_rate", NOW - timedelta(hours=1), NOW))
        assert not result.ok
        assert isinstance(result.error, SourceAuthorizationError)
        with pytest.raises(SourceAuthorizationError):
            result.unwrap()

    def test_inclusive_range_sorted(self):
        source = MemorySampleSource({"heart_rate": [_hr(5, 61), _hr(60, 60), _hr(61, 59)]})

        async def main():
            await source.authorize()
            return await source.fetch_samples("heart_rate", NOW - timedelta(minutes=60), NOW)

        samples = asyncio.run(main()).unwrap()
        assert [s.value for s in samples] == [60.0, 61.0]

    def test_unknown_metric_empty(self):
        source = MemorySampleSource(authorized=True)
        assert asyncio.run(source.fetch_samples("spo2", NOW - timedelta(hours=1), NOW)).unwrap() == []

    def test_injected_error(self):
        source = MemorySampleSource(authorized=True)
        source.errors["spo2"] = SourceFetchError("query failed")
        result = asyncio.run(source.fetch_samples("spo2", NOW, NOW))
        assert isinstance(result.error, SourceFetchError)
        assert source.calls == [("spo2", NOW, NOW)]

    def test_add(self):
        source = MemorySampleSource(authorized=True)
        source.add("heart_rate", [_hr(1)])
        assert len(asyncio.run(source.fetch_samples("heart_rate", NOW - timedelta(hours=1), NOW)).unwrap()) == 1


class TestExportFiles:
    def test_parse_entries_skips_malformed(self):
        out = parse_sample_entries([
            {"metric": "heart_rate", "ts": "2025-08-22T12:00:00Z", "value": 61},
            {"metric": "heart_rate", "ts": "not a time", "value": 61},
            {"metric": "heart_rate", "ts": "2025-08-22T12:01:00Z", "value": "abc"},
            {"ts": "2025-08-22T12:02:00Z", "value": 62},
            "junk",
            {"metric": "spo2", "ts": 1755864000, "value": 0.97},
        ])
        assert [s.value for s in out["heart_rate"]] == [61.0]
        assert out["spo2"][0].value == 0.97

    def test_jsonl(self, tmp_path):
        path = write_jsonl(tmp_path / "export.jsonl", [
            export_entry("heart_rate", NOW, 60.0),
            export_entry("spo2", NOW, 98.0),
        ])
        with open(path, "a") as f:
            f.write("{broken\n\n")
        data = load_samples_file(path)
        assert data["heart_rate"][0].timestamp == NOW
        assert data["spo2"][0].value == 98.0

    def test_json_array(self, tmp_path):
        path = tmp_path / "export.json"
        path.write_text(json.dumps([export_entry("hrv", NOW, 45.0)]))
        assert load_samples_file(path)["hrv"][0].value == 45.0

    def test_invalid_json_array(self, tmp_path):
        path = tmp_path / "export.json"
        path.write_text("[{")
        assert load_samples_file(path) == {}

    def test_missing_file_raises(self, tmp_path):
        with pytest.raises(OSError):
            load_samples_file(tmp_path / "missing.jsonl")


class TestFileSampleSource:
    def test_authorize_missing_file(self, tmp_path):
        source = FileSampleSource(tmp_path / "missing.jsonl")
        with pytest.raises(SourceAuthorizationError):
            asyncio.run(source.authorize())

    def test_fetch(self, tmp_path):
        path = write_jsonl(tmp_path / "export.jsonl", [
            export_entry("heart_rate", NOW - timedelta(hours=3), 58.0),
            export_entry("heart_rate", NOW - timedelta(hours=1), 60.0),
        ])
        source = FileSampleSource(path)

        async def main():
            await source.authorize()
            return await source.fetch_samples("heart_rate", NOW - timedelta(hours=2), NOW)

        assert [s.value for s in asyncio.run(main()).unwrap()] == [60.0]

    def test_fetch_before_authorize(self, tmp_path):
        path = write_jsonl(tmp_path / "export.jsonl", [])
        result = asyncio.run(FileSampleSource(path).fetch_samples("heart_rate", NOW, NOW))
        assert isinstance(result.error, SourceAuthorizationError)

    def test_undecodable_file(self, tmp_path):
        path = tmp_path / "export.jsonl"
        path.write_bytes(b"\xff\xfe\x00\x81")
        source = FileSampleSource(path)
        asyncio.run(source.authorize())
        result = asyncio.run(source.fetch_samples("heart_rate", NOW, NOW))
        assert isinstance(result.error, SourceFetchError)

    def test_file_removed_after_authorize(self, tmp_path):
        path = write_jsonl(tmp_path / "export.jsonl", [])
        source = FileSampleSource(path)
        asyncio.run(source.authorize())
        path.unlink()
        result = asyncio.run(source.fetch_samples("heart_rate", NOW, NOW))
        assert isinstance(result.error, SourceFetchError)
