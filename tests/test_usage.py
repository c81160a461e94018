"""Tests for usage normalization and deduplication."""

from claude_relay.backend.runtime.record import decode_record
from claude_relay.backend.runtime.usage import (
    UsageDeduplicator,
    UsageEvent,
    extract_usage_fallback,
    fallback_identity,
)

from .support import assistant_record

USAGE = {
    "input_tokens": 10,
    "output_tokens": 5,
    "cache_creation_input_tokens": 3,
    "cache_read_input_tokens": 2,
}


class TestUsageEvent:
    def test_from_usage_and_totals(self):
        event = UsageEvent.from_usage(USAGE)

        assert event.input_tokens == 10
        assert event.cache_tokens == 5
        assert event.total_tokens == 20
        assert event.to_dict() == {
            "inputTokens": 10,
            "outputTokens": 5,
            "cacheCreationTokens": 3,
            "cacheReadTokens": 2,
            "totalTokens": 20,
        }

    def test_missing_and_invalid_counters_are_zero(self):
        event = UsageEvent.from_usage({"input_tokens": None, "output_tokens": "abc", "cache_read_input_tokens": -4})
        assert event.is_empty

    def test_addition(self):
        total = UsageEvent(1, 2, 3, 4) + UsageEvent(10, 20, 30, 40)
        assert total == UsageEvent(11, 22, 33, 44)


class TestUsageDeduplicator:
    def test_zero_usage_is_not_an_event(self):
        dedup = UsageDeduplicator()
        record = decode_record(assistant_record(
            "msg-unique",
            usage={
                "input_tokens": 0,
                "output_tokens": 0,
                "cache_creation_input_tokens": 0,
                "cache_read_input_tokens": 0,
            },
        ))

        assert dedup.dedupe(record) is None
        assert len(dedup) == 0

    def test_same_message_different_request_are_distinct(self):
        dedup = UsageDeduplicator()
        first = decode_record(assistant_record("msg-1", request_id="req-a", usage=USAGE))
        second = decode_record(assistant_record("msg-1", request_id="req-b", usage=USAGE))

        assert dedup.dedupe(first) is not None
        assert dedup.dedupe(second) is not None
        assert len(dedup) == 2

    def test_duplicate_identity_counted_once(self):
        dedup = UsageDeduplicator()
        record = decode_record(assistant_record("msg-1", request_id="req-a", usage=USAGE))

        assert dedup.dedupe(record) == UsageEvent.from_usage(USAGE)
        assert dedup.dedupe(record) is None
        assert dedup.duplicates == 1

    def test_totals_do_not_depend_on_duplicate_count(self):
        records = [
            decode_record(assistant_record("msg-1", usage=USAGE)),
            decode_record(assistant_record("msg-2", usage={"input_tokens": 7})),
        ]

        def total(stream):
            dedup = UsageDeduplicator()
            result = UsageEvent()
            for record in stream:
                event = dedup.dedupe(record)
                if event is not None:
                    result = result + event
            return result

        once = total(records)
        repeated = total(records * 3 + records[::-1])

        assert once == repeated
        assert once.total_tokens == 27

    def test_records_without_usage(self):
        dedup = UsageDeduplicator()
        assert dedup.dedupe(decode_record({"type": "system", "subtype": "init"})) is None
        assert dedup.dedupe(decode_record(assistant_record("msg-1"))) is None

    def test_result_aggregate_is_not_counted(self):
        dedup = UsageDeduplicator()
        record = decode_record({"type": "result", "result": "done", "usage": USAGE})
        assert dedup.dedupe(record) is None

    def test_bare_usage_line_is_counted(self):
        dedup = UsageDeduplicator()
        record = decode_record({"usage": USAGE, "timestamp": "2024-01-01T00:00:00Z"})
        assert dedup.dedupe(record) == UsageEvent.from_usage(USAGE)

    def test_bounded_window_forgets_oldest(self):
        dedup = UsageDeduplicator(max_identities=2)
        records = [decode_record(assistant_record(f"msg-{i}", usage=USAGE)) for i in range(3)]

        for record in records:
            assert dedup.dedupe(record) is not None

        assert len(dedup) == 2
        assert records[0].identity not in dedup
        # Evicted identity is credited again
        assert dedup.dedupe(records[0]) is not None


class TestFallback:
    def test_extracts_counters_from_broken_line(self):
        line = '{"message": {"usage": {"input_tokens": 12, "output_tokens": 3'
        assert extract_usage_fallback(line) == UsageEvent(input_tokens=12, output_tokens=3)

    def test_no_counters(self):
        assert extract_usage_fallback("not json at all") is None
        assert extract_usage_fallback('"input_tokens": 0') is None

    def test_identity_ignores_surrounding_whitespace(self):
        assert fallback_identity("  abc \n") == fallback_identity("abc")
        assert fallback_identity("abc").startswith("regex:")
