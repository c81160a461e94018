"""Helpers shared by the conversation-log readers"""

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterator, Optional

logger = logging.getLogger(__name__)

LOG_SUFFIX = ".jsonl"


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse an ISO-8601 timestamp (`...Z` accepted) into an aware datetime"""
    if not isinstance(value, str) or not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def local_date(value: Any) -> Optional[str]:
    """YYYY-MM-DD of a timestamp in the server's local timezone"""
    parsed = parse_timestamp(value)
    if parsed is None:
        return None
    return parsed.astimezone().strftime("%Y-%m-%d")


def file_mtime(path: Path) -> datetime:
    return datetime.fromtimestamp(path.stat().st_mtime, tz=timezone.utc)


def parse_line(line: str) -> Optional[Dict[str, Any]]:
    try:
        value = json.loads(line)
    except ValueError:
        return None
    return value if isinstance(value, dict) else None


def iter_entries(path: Path) -> Iterator[Dict[str, Any]]:
    """Yield the JSON objects of a log file, skipping blank and unparsable lines"""
    with open(path, "r", encoding="utf-8", errors="replace") as f:
        for line in f:
            line = line.strip()
            if not line:
                continue
            entry = parse_line(line)
            if entry is not None:
                yield entry
