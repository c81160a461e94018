"""Incremental newline-delimited JSON splitter for CLI stdout

The CLI writes one JSON object per line, but stdout arrives in arbitrary
chunks and may be interleaved with plain log text. The splitter keeps the
bytes of the current incomplete line, decodes each complete line, and only
surfaces JSON objects; everything else is dropped.

A line that starts like a JSON object but does not parse is kept as a
partial record and re-tried with the following lines, in case the record
itself was broken by an embedded newline. The partial record is bounded by
`max_buffer_bytes`; beyond that it is discarded with a warning.
"""

import json
import logging
from typing import List, Optional

from .record import StructuredRecord, decode_record

logger = logging.getLogger(__name__)

DEFAULT_MAX_BUFFER_BYTES = 100_000

# An incomplete line is legitimate output (large tool results), so it gets
# a far larger bound than an unparsable partial record.
DEFAULT_MAX_LINE_BYTES = 16 * 1024 * 1024


class StreamLineSplitter:
    """
    Turns raw stdout chunks into decoded structured records.

    Usage:
        splitter = StreamLineSplitter()
        for chunk in chunks:
            for record in splitter.feed(chunk):
                handle(record)
        for record in splitter.flush():
            handle(record)

    Guarantees:
    - Never raises on malformed input
    - Records are returned in the order their lines appeared
    - Output does not depend on how the byte stream was chunked
    """

    def __init__(
        self,
        max_buffer_bytes: int = DEFAULT_MAX_BUFFER_BYTES,
        max_line_bytes: int = DEFAULT_MAX_LINE_BYTES,
    ):
        self.max_buffer_bytes = max_buffer_bytes
        self.max_line_bytes = max(max_line_bytes, max_buffer_bytes)

        self._pending = bytearray()
        self._partial: Optional[str] = None

        self.dropped_lines = 0
        self.overflow_resets = 0

    @property
    def buffered_bytes(self) -> int:
        partial = len(self._partial.encode("utf-8")) if self._partial else 0
        return len(self._pending) + partial

    def feed(self, chunk: bytes) -> List[StructuredRecord]:
        """
        Append a chunk and return every record completed by it.

        Args:
            chunk: Raw bytes read from the process stdout

        Returns:
            Decoded records, possibly empty
        """
        if not chunk:
            return []

        self._pending.extend(chunk)
        records: List[StructuredRecord] = []

        while True:
            newline = self._pending.find(b"\n")
            if newline < 0:
                break
            line = bytes(self._pending[:newline])
            del self._pending[:newline + 1]
            self._consume_line(line, records)

        if len(self._pending) > self.max_line_bytes:
            logger.warning(
                f"Unterminated output line exceeded {self.max_line_bytes} bytes, discarding buffer"
            )
            self._reset()

        return records

    def flush(self) -> List[StructuredRecord]:
        """
        Decode whatever is left once the stream has ended.

        Returns:
            A record for a trailing unterminated line, if it parses
        """
        records: List[StructuredRecord] = []
        if self._pending:
            line = bytes(self._pending)
            self._pending.clear()
            self._consume_line(line, records)

        if self._partial is not None:
            logger.debug(f"Discarding unterminated partial record ({len(self._partial)} chars)")
            self._partial = None
            self.dropped_lines += 1

        return records

    def _reset(self) -> None:
        self._pending.clear()
        self._partial = None
        self.overflow_resets += 1

    def _consume_line(self, raw: bytes, records: List[StructuredRecord]) -> None:
        text = raw.decode("utf-8", errors="replace").strip()
        if not text:
            return

        if self._partial is not None:
            candidate = f"{self._partial}\n{text}"
            payload = self._parse(candidate)
            if payload is not None:
                self._partial = None
                records.append(decode_record(payload))
                return

            payload = self._parse(text)
            if payload is not None:
                # A complete record started; the partial one never closed
                logger.debug("Dropping stale partial record superseded by a complete line")
                self._partial = None
                self.dropped_lines += 1
                records.append(decode_record(payload))
                return

            self._partial = candidate
            if len(candidate.encode("utf-8")) > self.max_buffer_bytes:
                logger.warning(
                    f"Partial record exceeded {self.max_buffer_bytes} bytes without parsing, "
                    f"resetting buffer"
                )
                self._reset()
            return

        payload = self._parse(text)
        if payload is not None:
            records.append(decode_record(payload))
            return

        if text.startswith("{"):
            self._partial = text
            if len(text.encode("utf-8")) > self.max_buffer_bytes:
                logger.warning(
                    f"Partial record exceeded {self.max_buffer_bytes} bytes without parsing, "
                    f"resetting buffer"
                )
                self._reset()
            return

        # Incidental log text
        self.dropped_lines += 1

    @staticmethod
    def _parse(text: str) -> Optional[dict]:
        try:
            payload = json.loads(text)
        except ValueError:
            return None
        return payload if isinstance(payload, dict) else None
