"""Bounded one-shot subprocess execution

Used for the CLI's auxiliary commands (`claude mcp ...`) which, unlike a
conversation turn, must finish within a wall-clock bound. On timeout the
process gets SIGTERM, then SIGKILL if it is still alive after a short
grace period, and CommandTimeoutError is raised.
"""

import asyncio
import logging
import signal
from dataclasses import dataclass
from typing import List, Optional

from ..exception import ClaudeNotFoundError, CommandTimeoutError, ProcessSpawnError

logger = logging.getLogger(__name__)

KILL_GRACE_SECONDS = 2.0


@dataclass
class CommandResult:
    """Captured outcome of a finished command"""

    args: List[str]
    exit_code: Optional[int]
    output: str
    error_output: str

    @property
    def succeeded(self) -> bool:
        return self.exit_code == 0

    def contains(self, *markers: str) -> bool:
        """Case-insensitive search of stdout for any of the markers"""
        lowered = self.output.lower()
        return any(marker in lowered for marker in markers)


async def _terminate(proc: asyncio.subprocess.Process, grace: float) -> None:
    try:
        proc.send_signal(signal.SIGTERM)
    except ProcessLookupError:
        return
    try:
        await asyncio.wait_for(proc.wait(), timeout=grace)
    except asyncio.TimeoutError:
        logger.warning(f"pid={proc.pid} ignored SIGTERM, sending SIGKILL")
        try:
            proc.kill()
        except ProcessLookupError:
            return
        await proc.wait()


async def run_command(
    args: List[str],
    cwd: Optional[str] = None,
    timeout: float = 30.0,
    kill_grace_seconds: float = KILL_GRACE_SECONDS,
) -> CommandResult:
    """
    Run a command to completion and capture its output.

    Args:
        args: argv, first element is the executable
        cwd: Working directory
        timeout: Wall-clock bound in seconds
        kill_grace_seconds: Delay between SIGTERM and SIGKILL on timeout

    Returns:
        CommandResult (a non-zero exit code is not an error here)

    Raises:
        ClaudeNotFoundError: The executable is `claude` and it is not installed
        ProcessSpawnError: Any other failure to start the process
        CommandTimeoutError: The bound was exceeded; the process has been killed
    """
    if not args:
        raise ProcessSpawnError("Empty command")

    try:
        proc = await asyncio.create_subprocess_exec(
            *args,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            cwd=cwd,
        )
    except FileNotFoundError:
        if args[0].endswith("claude"):
            raise ClaudeNotFoundError(args[0])
        raise ProcessSpawnError(f"Command not found: {args[0]}")
    except OSError as e:
        raise ProcessSpawnError(f"Failed to start {args[0]}: {e}")

    logger.info(f"Running command (timeout={timeout}s): {' '.join(args)}")

    try:
        stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=timeout)
    except asyncio.TimeoutError:
        logger.warning(f"Command timed out after {timeout}s: {' '.join(args)}")
        await _terminate(proc, kill_grace_seconds)
        raise CommandTimeoutError(f"Command timed out after {timeout:g} seconds: {' '.join(args)}")

    result = CommandResult(
        args=list(args),
        exit_code=proc.returncode,
        output=stdout.decode("utf-8", errors="replace"),
        error_output=stderr.decode("utf-8", errors="replace"),
    )
    logger.debug(f"Command finished: exit_code={result.exit_code}, args={args}")
    return result
