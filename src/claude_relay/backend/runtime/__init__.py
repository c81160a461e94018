"""Runtime layer for claude-relay

Provides the Claude CLI process runner, output stream decoding, usage
deduplication, the session registry and the per-connection relay.
"""
from .process_runner import ProcessRunner, ProcessHandle
from .session_registry import Session, SessionRegistry
from .relay import RelayConnection

__all__ = ["ProcessRunner", "ProcessHandle", "Session", "SessionRegistry", "RelayConnection"]
