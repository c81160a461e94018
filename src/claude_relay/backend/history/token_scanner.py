"""Batch token accounting over the conversation logs

A scan run owns one unbounded UsageDeduplicator, so a message that was
logged into several session files (resumed or forked conversations) is
counted once. Files are read on worker threads, but every record goes
through a single tally step on the event loop, in file order, with files
ordered by their earliest timestamp. Results are therefore deterministic
and the deduplicator needs no locking.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple

from ..runtime.record import decode_record
from ..runtime.usage import UsageDeduplicator, UsageEvent, extract_usage_fallback, fallback_identity
from .jsonl import LOG_SUFFIX, local_date, parse_line

logger = logging.getLogger(__name__)

MAX_FILE_BYTES = 100 * 1024 * 1024
TIMESTAMP_PROBE_LINES = 3


@dataclass
class LoadedFile:
    """Raw lines of one log file, or the reason it could not be read"""

    path: Path
    size: int = 0
    lines: List[str] = field(default_factory=list)
    error: Optional[str] = None


@dataclass
class FileUsage:
    """Token totals of one file after global deduplication"""

    file_path: str
    file_name: str
    file_size: int = 0
    usage: UsageEvent = field(default_factory=UsageEvent)
    valid_lines: int = 0
    duplicates_skipped: int = 0
    total_lines: int = 0
    unique_identities: int = 0
    error: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.error is None

    @property
    def duplicate_rate(self) -> float:
        if not self.total_lines:
            return 0.0
        return round(self.duplicates_skipped / self.total_lines * 100, 2)


def find_usage_files(root: Path) -> List[Path]:
    """All `*.jsonl` files below root, recursively"""
    root = Path(root)
    if not root.is_dir():
        return []
    return sorted(p for p in root.rglob(f"*{LOG_SUFFIX}") if p.is_file())


def earliest_timestamp(path: Path) -> Optional[str]:
    """First `timestamp` within the first few lines of a file"""
    try:
        with open(path, "r", encoding="utf-8", errors="replace") as f:
            for _ in range(TIMESTAMP_PROBE_LINES):
                line = f.readline()
                if not line:
                    break
                entry = parse_line(line.strip()) if line.strip() else None
                if entry and isinstance(entry.get("timestamp"), str):
                    return entry["timestamp"]
    except OSError:
        return None
    return None


def sort_by_earliest_timestamp(paths: Iterable[Path]) -> List[Path]:
    """Order files by earliest timestamp; files without one go last, in input order"""
    keyed = [(earliest_timestamp(Path(p)), Path(p)) for p in paths]
    return [p for _, p in sorted(keyed, key=lambda item: (item[0] is None, item[0] or ""))]


def load_file(path: Path) -> LoadedFile:
    path = Path(path)
    if not path.is_file():
        return LoadedFile(path=path, error="File not found")

    try:
        size = path.stat().st_size
        if size > MAX_FILE_BYTES:
            return LoadedFile(path=path, size=size, error="File too large (>100MB)")
        text = path.read_text(encoding="utf-8", errors="replace")
    except OSError as e:
        return LoadedFile(path=path, error=str(e))

    lines = [line.strip() for line in text.split("\n") if line.strip()]
    return LoadedFile(path=path, size=size, lines=lines)


class TokenScanner:
    """
    One scan run.

    Attributes:
        deduplicator: Identity set shared by every file of the run
    """

    def __init__(self, deduplicator: Optional[UsageDeduplicator] = None):
        self.deduplicator = deduplicator or UsageDeduplicator()
        self.files_processed = 0

    def tally(self, loaded: LoadedFile) -> FileUsage:
        """Credit the records of one loaded file against the run's deduplicator"""
        result = FileUsage(file_path=str(loaded.path), file_name=loaded.path.name, file_size=loaded.size)
        if loaded.error is not None:
            result.error = loaded.error
            return result

        result.total_lines = len(loaded.lines)
        duplicates_before = self.deduplicator.duplicates
        identities_before = len(self.deduplicator)
        # Fallback identities only catch byte-identical lines, so they stay local to the file
        fallback_seen = set()
        fallback_duplicates = 0

        for line in loaded.lines:
            entry = parse_line(line)
            if entry is not None:
                event = self.deduplicator.dedupe(decode_record(entry))
            else:
                identity = fallback_identity(line)
                if identity in fallback_seen:
                    fallback_duplicates += 1
                    continue
                fallback_seen.add(identity)
                event = extract_usage_fallback(line)

            if event is not None:
                result.usage = result.usage + event
                result.valid_lines += 1

        result.duplicates_skipped = self.deduplicator.duplicates - duplicates_before + fallback_duplicates
        result.unique_identities = len(self.deduplicator) - identities_before + len(fallback_seen)
        self.files_processed += 1
        return result

    async def process_files(self, paths: List[str], batch_size: int = 100) -> List[FileUsage]:
        """
        Process many files with cross-file deduplication.

        Args:
            paths: Files to process (order is irrelevant)
            batch_size: Files read concurrently per batch

        Returns:
            One FileUsage per path, in processing order
        """
        ordered = await asyncio.to_thread(sort_by_earliest_timestamp, paths)
        batch_size = max(int(batch_size or 1), 1)

        results: List[FileUsage] = []
        for start in range(0, len(ordered), batch_size):
            batch = ordered[start:start + batch_size]
            loaded = await asyncio.gather(*(asyncio.to_thread(load_file, p) for p in batch))
            # gather preserves order, so tallying stays in timestamp order
            for item in loaded:
                results.append(self.tally(item))

        logger.info(
            f"Token scan finished: files={len(ordered)}, identities={len(self.deduplicator)}, "
            f"duplicates={self.deduplicator.duplicates}"
        )
        return results

    async def process_file(self, path: str) -> FileUsage:
        loaded = await asyncio.to_thread(load_file, Path(path))
        return self.tally(loaded)

    def global_stats(self, results: List[FileUsage]) -> Dict[str, object]:
        return {
            "total_files_processed": len(results),
            "global_identities_used": len(self.deduplicator),
            "total_duplicates_skipped": sum(r.duplicates_skipped for r in results),
            "files_ordered_by_timestamp": True,
            "deduplication_strategy": "global_cross_file",
        }


def daily_usage(paths: Iterable[Path]) -> Dict[str, Dict[str, int]]:
    """
    Per-day token totals in the server's local timezone.

    Only records with a timestamp and message usage count; identities are
    deduplicated across all files.

    Returns:
        {"YYYY-MM-DD": {"input", "output", "cache", "total"}}
    """
    deduplicator = UsageDeduplicator()
    stats: Dict[str, Dict[str, int]] = {}

    for path in sort_by_earliest_timestamp(paths):
        loaded = load_file(path)
        if loaded.error is not None:
            logger.debug(f"Skipping {path} in daily usage: {loaded.error}")
            continue

        for line in loaded.lines:
            entry = parse_line(line)
            if entry is None:
                continue
            day = local_date(entry.get("timestamp"))
            if day is None:
                continue
            event = deduplicator.dedupe(decode_record(entry))
            if event is None:
                continue

            bucket = stats.setdefault(day, {"input": 0, "output": 0, "cache": 0, "total": 0})
            bucket["input"] += event.input_tokens
            bucket["output"] += event.output_tokens
            bucket["cache"] += event.cache_tokens
            bucket["total"] += event.total_tokens

    return dict(sorted(stats.items()))


def scan_usage_files(root: Path) -> Tuple[List[Path], Dict[str, Dict[str, int]]]:
    """Find every log file under root and compute its daily usage (blocking)"""
    files = find_usage_files(root)
    return files, daily_usage(files)
