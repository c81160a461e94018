"""Tests for batch token accounting over conversation logs."""

import pytest

from claude_relay.backend.history.jsonl import local_date
from claude_relay.backend.history.token_scanner import (
    TokenScanner,
    daily_usage,
    find_usage_files,
    load_file,
    sort_by_earliest_timestamp,
)

from .support import assistant_record, write_jsonl

USAGE = {"input_tokens": 100, "output_tokens": 10, "cache_read_input_tokens": 50}


def _entry(message_id, request_id, timestamp, usage=USAGE):
    return assistant_record(message_id, request_id=request_id, usage=usage, timestamp=timestamp)


@pytest.fixture
def log_files(projects_dir):
    # later.jsonl repeats a message first logged in earlier.jsonl (resumed session)
    later = write_jsonl(projects_dir / "proj-a" / "later.jsonl", [
        _entry("msg-1", "req-1", "2024-03-02T12:00:00Z"),
        _entry("msg-3", "req-3", "2024-03-02T12:05:00Z"),
    ])
    earlier = write_jsonl(projects_dir / "proj-b" / "earlier.jsonl", [
        _entry("msg-1", "req-1", "2024-03-01T12:00:00Z"),
        _entry("msg-2", "req-2", "2024-03-01T12:01:00Z", usage={"input_tokens": 1, "output_tokens": 1}),
    ])
    return later, earlier


class TestFileHelpers:
    def test_find_usage_files(self, projects_dir, log_files):
        (projects_dir / "proj-a" / "notes.txt").write_text("x")

        assert sorted(p.name for p in find_usage_files(projects_dir)) == ["earlier.jsonl", "later.jsonl"]
        assert find_usage_files(projects_dir / "missing") == []

    def test_sort_by_earliest_timestamp(self, projects_dir, log_files):
        later, earlier = log_files
        undated = write_jsonl(projects_dir / "undated.jsonl", [{"type": "summary"}])

        assert sort_by_earliest_timestamp([undated, later, earlier]) == [earlier, later, undated]

    def test_load_file_errors(self, tmp_path):
        assert load_file(tmp_path / "missing.jsonl").error == "File not found"


class TestTokenScanner:
    @pytest.mark.asyncio
    async def test_cross_file_deduplication(self, log_files):
        later, earlier = log_files
        scanner = TokenScanner()

        results = await scanner.process_files([str(later), str(earlier)])

        assert [r.file_name for r in results] == ["earlier.jsonl", "later.jsonl"]
        first, second = results
        assert first.usage.total_tokens == 162
        assert first.duplicates_skipped == 0
        assert second.usage.total_tokens == 160
        assert second.duplicates_skipped == 1
        assert second.valid_lines == 1
        assert second.duplicate_rate == 50.0

        stats = scanner.global_stats(results)
        assert stats["global_identities_used"] == 3
        assert stats["total_duplicates_skipped"] == 1

    @pytest.mark.asyncio
    async def test_batch_size_does_not_change_totals(self, log_files):
        paths = [str(p) for p in log_files]

        small = await TokenScanner().process_files(paths, batch_size=1)
        large = await TokenScanner().process_files(paths, batch_size=100)

        assert [r.usage for r in small] == [r.usage for r in large]

    @pytest.mark.asyncio
    async def test_fallback_for_broken_lines(self, projects_dir):
        broken = '{"type":"assistant","message":{"usage":{"input_tokens":7,"output_tokens":3'
        path = write_jsonl(projects_dir / "broken.jsonl", [broken, broken, "plain text"])

        result = await TokenScanner().process_file(str(path))

        assert result.usage.total_tokens == 10
        assert result.valid_lines == 1
        assert result.duplicates_skipped == 1
        assert result.total_lines == 3

    @pytest.mark.asyncio
    async def test_missing_file(self, tmp_path):
        result = await TokenScanner().process_file(str(tmp_path / "gone.jsonl"))

        assert not result.success
        assert result.error == "File not found"


class TestDailyUsage:
    def test_groups_by_local_date(self, log_files):
        stats = daily_usage(log_files)

        first_day = local_date("2024-03-01T12:00:00Z")
        second_day = local_date("2024-03-02T12:00:00Z")

        assert list(stats) == sorted(stats)
        assert stats[first_day]["total"] + stats[second_day]["total"] == 322
        assert stats[first_day]["cache"] == 50

    def test_entries_without_timestamp_are_skipped(self, projects_dir):
        path = write_jsonl(projects_dir / "a.jsonl", [assistant_record("m", usage=USAGE)])
        assert daily_usage([path]) == {}
