"""Tests for Claude CLI process handling, using small Python child processes."""

import asyncio
import sys
from typing import List, Optional

import pytest

from claude_relay.backend.exception import ClaudeNotFoundError
from claude_relay.backend.runtime.process_runner import (
    ProcessHandle,
    ProcessRunner,
    build_claude_args,
)


class RecordingListener:
    def __init__(self):
        self.data: List[bytes] = []
        self.errors: List[bytes] = []
        self.exit_codes: List[Optional[int]] = []
        self.spawn_errors = []

    def on_data(self, chunk: bytes) -> None:
        self.data.append(chunk)

    def on_error_data(self, chunk: bytes) -> None:
        self.errors.append(chunk)

    def on_exit(self, code: Optional[int]) -> None:
        self.exit_codes.append(code)

    def on_spawn_error(self, error) -> None:
        self.spawn_errors.append(error)


def _python(code: str) -> List[str]:
    return [sys.executable, "-c", code]


class TestBuildArgs:
    def test_fresh_turn(self):
        args = build_claude_args("hello", "sonnet")

        assert args[:2] == ["--print", "hello"]
        assert args[args.index("--output-format") + 1] == "stream-json"
        assert "--verbose" in args
        assert args[args.index("--model") + 1] == "sonnet"
        assert "--resume" not in args

    def test_resumed_turn(self):
        args = build_claude_args("hello", "opus", resume_token="abc")
        assert args[args.index("--resume") + 1] == "abc"


class TestProcessHandle:
    @pytest.mark.asyncio
    async def test_output_and_exit(self, tmp_path):
        listener = RecordingListener()
        code = (
            "import sys\n"
            "print('{\"type\": \"system\"}')\n"
            "sys.stderr.write('warn')\n"
            "sys.exit(3)\n"
        )
        handle = ProcessHandle(_python(code), str(tmp_path), listener)

        assert await handle.start()
        assert await handle.wait() == 3

        assert b"".join(listener.data).strip() == b'{"type": "system"}'
        assert b"".join(listener.errors) == b"warn"
        assert listener.exit_codes == [3]
        assert not handle.running

    @pytest.mark.asyncio
    async def test_stdin_is_closed(self, tmp_path):
        listener = RecordingListener()
        code = "import sys\nprint(repr(sys.stdin.read()))\n"
        handle = ProcessHandle(_python(code), str(tmp_path), listener)

        await handle.start()
        await asyncio.wait_for(handle.wait(), timeout=10)

        assert b"".join(listener.data).strip() == b"''"

    @pytest.mark.asyncio
    async def test_request_cancel_escalates_to_kill(self, tmp_path):
        listener = RecordingListener()
        code = (
            "import signal, time\n"
            "signal.signal(signal.SIGINT, signal.SIG_IGN)\n"
            "print('ready', flush=True)\n"
            "time.sleep(30)\n"
        )
        handle = ProcessHandle(_python(code), str(tmp_path), listener, kill_grace_seconds=0.2)
        await handle.start()
        while not listener.data:
            await asyncio.sleep(0.01)

        assert handle.request_cancel()
        assert handle.cancel_requested
        code = await asyncio.wait_for(handle.wait(), timeout=10)

        assert code == -9
        assert listener.exit_codes == [-9]
        assert not handle.request_cancel()

    @pytest.mark.asyncio
    async def test_missing_binary_reports_spawn_error(self, tmp_path):
        listener = RecordingListener()
        handle = ProcessHandle(["definitely-not-a-claude-binary"], str(tmp_path), listener)

        assert not await handle.start()
        assert isinstance(listener.spawn_errors[0], ClaudeNotFoundError)
        assert listener.exit_codes == []
        assert not handle.running
        assert not handle.kill()


class TestProcessRunner:
    @pytest.mark.asyncio
    async def test_spawn_builds_full_command(self, tmp_path):
        listener = RecordingListener()
        runner = ProcessRunner(binary="definitely-not-a-claude-binary", model="haiku")

        handle = await runner.spawn("hi", listener, str(tmp_path), resume_token="tok")

        assert handle.args[0] == "definitely-not-a-claude-binary"
        assert handle.args[handle.args.index("--resume") + 1] == "tok"
        assert handle.args[handle.args.index("--model") + 1] == "haiku"
        assert listener.spawn_errors
