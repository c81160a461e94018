"""Claude CLI subprocess management for one conversation turn

Each turn spawns a fresh `claude --print ...` process; multi-turn context
is carried by `--resume <token>`, never by keeping stdin open. The handle
reads stdout/stderr on background tasks and reports through a listener:

    ProcessRunner.spawn()
        ↓ asyncio.create_subprocess_exec (stdin closed at once)
        ↓ _pump(stdout) → listener.on_data(chunk)
        ↓ _pump(stderr) → listener.on_error_data(chunk)
        ↓ proc.wait()   → listener.on_exit(code)
    or  ↓ OSError       → listener.on_spawn_error(exc)
"""

import asyncio
import logging
import signal
from typing import List, Optional, Protocol

from ..exception import ClaudeNotFoundError, ProcessSpawnError, RuntimeException

logger = logging.getLogger(__name__)

READ_CHUNK_SIZE = 64 * 1024


class ProcessListener(Protocol):
    """Receiver of process lifecycle events (all called on the event loop)"""

    def on_data(self, chunk: bytes) -> None: ...

    def on_error_data(self, chunk: bytes) -> None: ...

    def on_exit(self, code: Optional[int]) -> None: ...

    def on_spawn_error(self, error: RuntimeException) -> None: ...


def build_claude_args(
    command: str,
    model: str,
    resume_token: Optional[str] = None,
) -> List[str]:
    """
    Build the CLI argument list for one print-mode turn.

    Args:
        command: Prompt text for this turn
        model: Value for --model
        resume_token: CLI session id to continue, if any

    Returns:
        Arguments (without the binary name)
    """
    args = [
        "--print", command,
        "--output-format", "stream-json",
        "--verbose",
        "--model", model,
    ]
    if resume_token:
        args.extend(["--resume", resume_token])

    # Unattended: a permission prompt would block the turn forever
    args.extend(["--permission-mode", "bypassPermissions"])
    return args


class ProcessHandle:
    """
    One running (or finished) Claude CLI process.

    Lifecycle:
    1. start() - spawn, close stdin, start reader tasks
    2. listener receives data / error_data events while running
    3. listener receives exactly one of on_exit or on_spawn_error
    4. request_cancel() / kill() may be called at any time; both are no-ops
       once the process has exited

    Attributes:
        args: Full argv including the binary
        cwd: Working directory of the process
        kill_grace_seconds: Delay between SIGINT and SIGKILL in request_cancel()
    """

    def __init__(
        self,
        args: List[str],
        cwd: str,
        listener: ProcessListener,
        kill_grace_seconds: float = 2.0,
    ):
        self.args = args
        self.cwd = cwd
        self.listener = listener
        self.kill_grace_seconds = kill_grace_seconds

        self._proc: Optional[asyncio.subprocess.Process] = None
        self._wait_task: Optional[asyncio.Task] = None
        self._force_kill: Optional[asyncio.TimerHandle] = None
        self._exited = False
        self.cancel_requested = False

    @property
    def pid(self) -> Optional[int]:
        return self._proc.pid if self._proc else None

    @property
    def returncode(self) -> Optional[int]:
        return self._proc.returncode if self._proc else None

    @property
    def running(self) -> bool:
        return self._proc is not None and not self._exited

    async def start(self) -> bool:
        """
        Spawn the process and begin streaming its output.

        Returns:
            True if the process started, False if spawning failed
            (the listener has then received on_spawn_error)
        """
        binary = self.args[0]
        try:
            self._proc = await asyncio.create_subprocess_exec(
                *self.args,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=self.cwd,
            )
        except FileNotFoundError:
            logger.error(f"Claude CLI binary not found: {binary}")
            self._exited = True
            self.listener.on_spawn_error(ClaudeNotFoundError(binary))
            return False
        except OSError as e:
            logger.error(f"Failed to spawn {binary}: {e}", exc_info=True)
            self._exited = True
            self.listener.on_spawn_error(ProcessSpawnError(f"Failed to start Claude CLI: {e}"))
            return False

        # One-shot command per process: nothing is ever written to stdin
        if self._proc.stdin is not None:
            self._proc.stdin.close()

        logger.info(f"Claude process started: pid={self._proc.pid}, cwd={self.cwd}")

        self._wait_task = asyncio.create_task(self._run())
        return True

    async def _run(self) -> None:
        proc = self._proc
        code: Optional[int] = None
        try:
            await asyncio.gather(
                self._pump(proc.stdout, self.listener.on_data),
                self._pump(proc.stderr, self.listener.on_error_data),
            )
            code = await proc.wait()
        except asyncio.CancelledError:
            logger.debug(f"Process wait task cancelled: pid={proc.pid}")
            raise
        except Exception as e:
            logger.error(f"Error reading Claude process output: pid={proc.pid}: {e}", exc_info=True)
            code = proc.returncode
        finally:
            self._exited = True
            if self._force_kill is not None:
                self._force_kill.cancel()
                self._force_kill = None

        logger.info(f"Claude process exited: pid={proc.pid}, code={code}")
        self.listener.on_exit(code)

    @staticmethod
    async def _pump(stream: Optional[asyncio.StreamReader], callback) -> None:
        if stream is None:
            return
        while True:
            chunk = await stream.read(READ_CHUNK_SIZE)
            if not chunk:
                break
            try:
                callback(chunk)
            except Exception as e:
                # A listener bug must not stall the pipe and block the child
                logger.error(f"Process output listener failed: {e}", exc_info=True)

    def kill(self, sig: int = signal.SIGTERM) -> bool:
        """
        Send a signal to the process.

        Returns:
            True if the signal was delivered
        """
        if not self.running:
            return False
        try:
            self._proc.send_signal(sig)
        except ProcessLookupError:
            return False
        logger.debug(f"Sent signal {sig} to pid={self._proc.pid}")
        return True

    def request_cancel(self) -> bool:
        """
        Cooperative cancellation: SIGINT now, SIGKILL after the grace window.

        Returns:
            True if the process was running and the interrupt was sent
        """
        if not self.running:
            return False

        self.cancel_requested = True
        delivered = self.kill(signal.SIGINT)

        if self._force_kill is None:
            loop = asyncio.get_running_loop()
            self._force_kill = loop.call_later(self.kill_grace_seconds, self._escalate)

        return delivered

    def _escalate(self) -> None:
        self._force_kill = None
        if self.running:
            logger.warning(
                f"Process pid={self.pid} still running {self.kill_grace_seconds}s after SIGINT, "
                f"sending SIGKILL"
            )
            self.kill(signal.SIGKILL)

    async def wait(self) -> Optional[int]:
        """Wait until the process has exited and the listener was notified"""
        if self._wait_task is not None:
            await asyncio.shield(self._wait_task)
        return self.returncode


class ProcessRunner:
    """
    Factory for Claude CLI turns.

    Attributes:
        binary: CLI executable
        model: Model selector passed on every turn
        kill_grace_seconds: Grace window for request_cancel()
    """

    def __init__(self, binary: str = "claude", model: str = "sonnet", kill_grace_seconds: float = 2.0):
        self.binary = binary
        self.model = model
        self.kill_grace_seconds = kill_grace_seconds

    async def spawn(
        self,
        command: str,
        listener: ProcessListener,
        working_directory: str,
        resume_token: Optional[str] = None,
    ) -> ProcessHandle:
        """
        Start one turn of the CLI.

        Args:
            command: Prompt text
            listener: Receiver of data/exit/error events
            working_directory: cwd for the process
            resume_token: CLI session id to continue

        Returns:
            ProcessHandle (check `running`; spawn failures are reported
            to the listener, not raised)
        """
        args = [self.binary] + build_claude_args(command, self.model, resume_token)
        logger.info(
            f"Spawning Claude turn: resume={resume_token or '-'}, "
            f"command_length={len(command)}"
        )
        handle = ProcessHandle(args, working_directory, listener, self.kill_grace_seconds)
        await handle.start()
        return handle
