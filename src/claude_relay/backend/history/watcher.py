"""Change notifications for the conversation logs

Two sources feed the same callback:

    awatch(projects_dir)          ← filesystem events, near-instant
    poll every poll_interval      ← mtime comparison against a last-seen map

The poll catches events the native watcher misses under bursty writes,
so a change is noticed within at most one poll interval. Both sources
update the last-seen map, so a change reported by the watcher is not
reported again by the next poll.
"""

import asyncio
import logging
import os
import time
from pathlib import Path
from typing import Callable, Dict, List, Optional

from watchfiles import Change, awatch

from .jsonl import LOG_SUFFIX

logger = logging.getLogger(__name__)

ChangeCallback = Callable[[str, int], None]


def scan_mtimes(root: Path) -> Dict[str, float]:
    """mtime of every log file below root (blocking walk)"""
    mtimes: Dict[str, float] = {}
    for dirpath, _, filenames in os.walk(root):
        for name in filenames:
            if not name.endswith(LOG_SUFFIX):
                continue
            path = os.path.join(dirpath, name)
            try:
                mtimes[path] = os.stat(path).st_mtime
            except OSError:
                continue
    return mtimes


class ChatHistoryWatcher:
    """
    Watches projects_dir recursively and calls on_change(file_path, timestamp_ms)
    for every created or modified `*.jsonl` file.

    A missing directory is not an error: it is logged once and both loops
    keep checking until it appears.

    Attributes:
        projects_dir: Directory to watch
        on_change: Callback run on the event loop
        poll_interval: Seconds between fallback scans
    """

    def __init__(
        self,
        projects_dir: Path,
        on_change: ChangeCallback,
        poll_interval: float = 10.0,
        debounce_ms: int = 500,
    ):
        self.projects_dir = Path(projects_dir)
        self.on_change = on_change
        self.poll_interval = poll_interval
        self.debounce_ms = debounce_ms

        self._mtimes: Dict[str, float] = {}
        self._seeded = False
        self._missing_logged = False
        self._stop_event: Optional[asyncio.Event] = None
        self._tasks: List[asyncio.Task] = []

    @property
    def is_running(self) -> bool:
        return any(not t.done() for t in self._tasks)

    async def start(self) -> None:
        if self.is_running:
            return
        self._stop_event = asyncio.Event()
        self._tasks = [
            asyncio.create_task(self._watch_loop()),
            asyncio.create_task(self._poll_loop()),
        ]
        logger.info(f"Chat history watcher started: {self.projects_dir} (poll every {self.poll_interval}s)")

    async def stop(self) -> None:
        if self._stop_event is not None:
            self._stop_event.set()
        for task in self._tasks:
            task.cancel()
        for task in self._tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._tasks = []
        logger.info("Chat history watcher stopped")

    def _directory_available(self) -> bool:
        if self.projects_dir.is_dir():
            if self._missing_logged:
                logger.info(f"Chat history directory appeared: {self.projects_dir}")
            self._missing_logged = False
            return True
        if not self._missing_logged:
            logger.warning(f"Chat history directory not found, will keep checking: {self.projects_dir}")
            self._missing_logged = True
        return False

    async def _sleep(self, seconds: float) -> bool:
        """Wait up to `seconds`; True if stop was requested meanwhile"""
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            return False
        return True

    def _emit(self, path: str, mtime: Optional[float] = None) -> None:
        if mtime is not None:
            self._mtimes[path] = mtime
        try:
            self.on_change(path, int(time.time() * 1000))
        except Exception as e:
            logger.error(f"Chat history change callback failed for {path}: {e}", exc_info=True)

    # ==================== Native watcher ====================

    async def _watch_loop(self) -> None:
        while not self._stop_event.is_set():
            if not self._directory_available():
                if await self._sleep(self.poll_interval):
                    return
                continue

            try:
                async for changes in awatch(
                    self.projects_dir,
                    debounce=self.debounce_ms,
                    recursive=True,
                    stop_event=self._stop_event,
                ):
                    self._handle_changes(changes)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                # Directory removed or watcher backend failure: the poll loop still runs
                logger.error(f"File watcher error on {self.projects_dir}: {e}")
                if await self._sleep(self.poll_interval):
                    return

    def _handle_changes(self, changes) -> None:
        for change, path in changes:
            if change not in (Change.added, Change.modified) or not path.endswith(LOG_SUFFIX):
                continue
            try:
                mtime = os.stat(path).st_mtime
            except OSError:
                continue
            logger.debug(f"Chat history file {change.name}: {path}")
            self._emit(path, mtime)

    # ==================== Fallback poll ====================

    async def _poll_loop(self) -> None:
        while not self._stop_event.is_set():
            try:
                await self.poll_once()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"Chat history poll failed: {e}", exc_info=True)
            if await self._sleep(self.poll_interval):
                return

    async def poll_once(self) -> List[str]:
        """
        Compare current mtimes with the last-seen map.

        The first successful scan only records mtimes. Later scans report
        new files and files whose mtime advanced.

        Returns:
            Paths reported by this scan
        """
        if not self._directory_available():
            return []

        current = await asyncio.to_thread(scan_mtimes, self.projects_dir)
        changed = []
        if self._seeded:
            for path, mtime in current.items():
                previous = self._mtimes.get(path)
                if previous is None or mtime > previous:
                    changed.append(path)

        self._mtimes = current
        self._seeded = True

        for path in changed:
            logger.debug(f"Chat history change found by poll: {path}")
            self._emit(path)
        return changed
