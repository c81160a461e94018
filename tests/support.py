"""Test doubles and log builders shared by the test modules."""

import asyncio
import json
from pathlib import Path
from typing import Any, Dict, List, Optional

from claude_relay.backend.runtime.process_runner import build_claude_args


class FakeHandle:
    """Stands in for ProcessHandle; the test drives output and exit by hand."""

    def __init__(self, args: List[str], listener, exit_on_cancel: bool = True):
        self.args = args
        self.listener = listener
        self.exit_on_cancel = exit_on_cancel
        self.running = True
        self.cancel_requested = False
        self.cancel_calls = 0
        self.killed = False
        self.returncode: Optional[int] = None
        self.pid = 4242

    def emit(self, *records: Dict[str, Any]) -> None:
        """Write records to stdout as stream-json lines."""
        data = "".join(json.dumps(r) + "\n" for r in records)
        self.listener.on_data(data.encode("utf-8"))

    def emit_raw(self, chunk: bytes) -> None:
        self.listener.on_data(chunk)

    def emit_stderr(self, text: str) -> None:
        self.listener.on_error_data(text.encode("utf-8"))

    def finish(self, code: int = 0) -> None:
        if not self.running:
            return
        self.running = False
        self.returncode = code
        self.listener.on_exit(code)

    def request_cancel(self) -> bool:
        if not self.running:
            return False
        self.cancel_requested = True
        self.cancel_calls += 1
        if self.exit_on_cancel:
            self.finish(130)
        return True

    def kill(self, sig: int = 15) -> bool:
        self.killed = True
        self.finish(-sig)
        return True

    async def wait(self) -> Optional[int]:
        return self.returncode


class FakeRunner:
    """Records every spawn instead of starting the Claude CLI."""

    def __init__(self, model: str = "sonnet"):
        self.model = model
        self.handles: List[FakeHandle] = []
        self.calls: List[Dict[str, Any]] = []

    async def spawn(self, command, listener, working_directory, resume_token=None):
        args = ["claude"] + build_claude_args(command, self.model, resume_token)
        self.calls.append({
            "command": command,
            "cwd": working_directory,
            "resume_token": resume_token,
            "args": args,
        })
        handle = FakeHandle(args, listener)
        self.handles.append(handle)
        return handle

    @property
    def last(self) -> FakeHandle:
        return self.handles[-1]


class Outbox:
    """Collects frames a RelayConnection sends."""

    def __init__(self):
        self.messages: List[Dict[str, Any]] = []

    def __call__(self, message: Dict[str, Any]) -> None:
        self.messages.append(message)

    def of_type(self, message_type: str) -> List[Dict[str, Any]]:
        return [m for m in self.messages if m.get("type") == message_type]

    def types(self) -> List[str]:
        return [m.get("type") for m in self.messages]

    def clear(self) -> None:
        self.messages.clear()


def assistant_record(
    message_id: str,
    text: str = "hello",
    request_id: Optional[str] = None,
    session_id: str = "cli-session-1",
    usage: Optional[Dict[str, int]] = None,
    timestamp: Optional[str] = None,
) -> Dict[str, Any]:
    record: Dict[str, Any] = {
        "type": "assistant",
        "session_id": session_id,
        "message": {
            "id": message_id,
            "role": "assistant",
            "content": [{"type": "text", "text": text}],
        },
    }
    if usage is not None:
        record["message"]["usage"] = usage
    if request_id is not None:
        record["request_id"] = request_id
    if timestamp is not None:
        record["timestamp"] = timestamp
    return record


def write_jsonl(path: Path, entries: List[Any]) -> Path:
    """Write entries as JSON lines; str entries are written verbatim."""
    path.parent.mkdir(parents=True, exist_ok=True)
    lines = [e if isinstance(e, str) else json.dumps(e) for e in entries]
    path.write_text("\n".join(lines) + "\n", encoding="utf-8")
    return path


class ScriptedRunner(FakeRunner):
    """Plays canned stdout records on the event loop, then exits with code 0."""

    def __init__(self, records: List[Dict[str, Any]], model: str = "sonnet"):
        super().__init__(model)
        self.records = records

    async def spawn(self, command, listener, working_directory, resume_token=None):
        handle = await super().spawn(command, listener, working_directory, resume_token)

        def play():
            handle.emit(*self.records)
            handle.finish(0)

        asyncio.get_running_loop().call_soon(play)
        return handle
