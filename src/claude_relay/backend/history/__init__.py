"""Readers and watchers for the CLI's on-disk conversation logs

Layout: <projects_dir>/<project-id>/<session-id>.jsonl, one JSON record
per line.
"""
from .scanner import ChatHistoryScanner
from .token_scanner import TokenScanner
from .watcher import ChatHistoryWatcher

__all__ = ["ChatHistoryScanner", "TokenScanner", "ChatHistoryWatcher"]
