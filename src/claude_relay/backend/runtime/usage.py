"""Token usage normalization and deduplication

Shared by the live relay (one bounded deduplicator per session, kept across
reconnects) and the batch token scanner (one unbounded deduplicator per scan run).
"""

import hashlib
import logging
import re
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Dict, Optional

from .record import StructuredRecord

logger = logging.getLogger(__name__)


def _count(value: Any) -> int:
    """Coerce a usage counter to a non-negative int (missing/invalid -> 0)"""
    try:
        count = int(value or 0)
    except (TypeError, ValueError):
        return 0
    return max(count, 0)


@dataclass(frozen=True)
class UsageEvent:
    """Normalized token accounting tuple"""

    input_tokens: int = 0
    output_tokens: int = 0
    cache_creation_tokens: int = 0
    cache_read_tokens: int = 0

    @classmethod
    def from_usage(cls, usage: Dict[str, Any]) -> "UsageEvent":
        return cls(
            input_tokens=_count(usage.get("input_tokens")),
            output_tokens=_count(usage.get("output_tokens")),
            cache_creation_tokens=_count(usage.get("cache_creation_input_tokens")),
            cache_read_tokens=_count(usage.get("cache_read_input_tokens")),
        )

    @property
    def cache_tokens(self) -> int:
        return self.cache_creation_tokens + self.cache_read_tokens

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens + self.cache_tokens

    @property
    def is_empty(self) -> bool:
        return self.total_tokens == 0

    def __add__(self, other: "UsageEvent") -> "UsageEvent":
        return UsageEvent(
            input_tokens=self.input_tokens + other.input_tokens,
            output_tokens=self.output_tokens + other.output_tokens,
            cache_creation_tokens=self.cache_creation_tokens + other.cache_creation_tokens,
            cache_read_tokens=self.cache_read_tokens + other.cache_read_tokens,
        )

    def to_dict(self) -> Dict[str, int]:
        return {
            "inputTokens": self.input_tokens,
            "outputTokens": self.output_tokens,
            "cacheCreationTokens": self.cache_creation_tokens,
            "cacheReadTokens": self.cache_read_tokens,
            "totalTokens": self.total_tokens,
        }


class UsageDeduplicator:
    """
    Decides whether a record is a new token-usage event.

    Each identity (see StructuredRecord.identity) is credited at most once
    for the lifetime of the instance. Records with all-zero counters are
    non-events: they are never counted and their identity is not stored.

    Attributes:
        max_identities: Keep only this many most recent identities
            (None = unbounded, used by the batch scanner)
        duplicates: Number of records rejected as already seen
    """

    def __init__(self, max_identities: Optional[int] = None):
        self.max_identities = max_identities
        self.duplicates = 0
        self._seen: "OrderedDict[str, None]" = OrderedDict()

    def __len__(self) -> int:
        return len(self._seen)

    def __contains__(self, identity: str) -> bool:
        return identity in self._seen

    def dedupe(self, record: StructuredRecord) -> Optional[UsageEvent]:
        """
        Return the normalized usage of a first-seen record, else None.

        Args:
            record: Decoded structured record

        Returns:
            UsageEvent on first sight of a non-empty usage identity,
            None for duplicates, zero-usage records and records without usage
        """
        usage = record.usage
        if usage is None:
            return None

        event = UsageEvent.from_usage(usage)
        if event.is_empty:
            return None

        return self.accept(record.identity, event)

    def accept(self, identity: str, event: UsageEvent) -> Optional[UsageEvent]:
        """Credit `event` under `identity` unless that identity was already seen"""
        if identity in self._seen:
            self.duplicates += 1
            return None

        self._seen[identity] = None
        if self.max_identities is not None:
            while len(self._seen) > self.max_identities:
                self._seen.popitem(last=False)

        return event


# ==================== Reduced-confidence fallback ====================

_FALLBACK_PATTERNS = {
    "input_tokens": re.compile(r'"input_tokens"\s*:\s*(\d+)'),
    "output_tokens": re.compile(r'"output_tokens"\s*:\s*(\d+)'),
    "cache_creation_input_tokens": re.compile(r'"cache_creation_input_tokens"\s*:\s*(\d+)'),
    "cache_read_input_tokens": re.compile(r'"cache_read_input_tokens"\s*:\s*(\d+)'),
}


def extract_usage_fallback(line: str) -> Optional[UsageEvent]:
    """
    Pull usage counters out of a line that is not valid JSON.

    This is the degraded path for truncated or corrupted log lines. There
    are no message/request ids to rely on, so callers must deduplicate on
    `fallback_identity(line)`, which only catches byte-identical repeats.

    Args:
        line: Raw text line

    Returns:
        UsageEvent if any counter was found and non-zero, else None
    """
    usage = {}
    for key, pattern in _FALLBACK_PATTERNS.items():
        match = pattern.search(line)
        if match:
            usage[key] = match.group(1)

    if not usage:
        return None

    event = UsageEvent.from_usage(usage)
    return None if event.is_empty else event


def fallback_identity(line: str) -> str:
    """Identity for a fallback-decoded line: md5 of its stripped text"""
    digest = hashlib.md5(line.strip().encode("utf-8")).hexdigest()[:12]
    return f"regex:{digest}"
