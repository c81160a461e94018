"""Relay protocol handler: one instance per client WebSocket connection

State machine:

    Idle ──input / resume_session──▶ Bound ──input──▶ Streaming
      ▲                               ▲                  │
      │                               └── exit / stop ───┘
      └──────────── disconnect (from any state) ─────────┘

The state is derived from the registry rather than stored: a connection is
Idle without an attached session, Streaming while that session has a turn
running, and Bound otherwise.

Process output is delivered to whichever connection is attached to the
session when the output arrives, not to the connection that started the
turn. After a disconnect the turn keeps running and its output is dropped
until another client resumes the session. Token usage is still credited to
the session total while it is detached.
"""

import asyncio
import base64
import binascii
import logging
import mimetypes
import os
import tempfile
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from ..enum import ClientMessageType, RelayState, ServerMessageType
from ..exception import RelayException, RuntimeException, ValidationError
from ..rules import read_claude_md, write_claude_md
from ..workspace import WorkspaceState
from .process_runner import ProcessHandle, ProcessRunner
from .record import StructuredRecord, UserRecord
from .session_registry import Session, SessionRegistry
from .stream_splitter import StreamLineSplitter

logger = logging.getLogger(__name__)

DEEP_THINK_PREFIX = "think harder: "

SendFn = Callable[[Dict[str, Any]], None]


def apply_deep_think(command: str) -> str:
    if command.startswith(DEEP_THINK_PREFIX):
        return command
    return DEEP_THINK_PREFIX + command


def save_image(image: Dict[str, Any]) -> str:
    """
    Write an uploaded image to a temp file so the CLI can read it.

    Args:
        image: {"name", "type", "data"} with base64 data (a data: URL prefix is tolerated)

    Returns:
        Path of the written file

    Raises:
        ValidationError: Missing or undecodable image data
    """
    data = image.get("data")
    if not isinstance(data, str) or not data:
        raise ValidationError("Image data is missing")
    if data.startswith("data:") and "," in data:
        data = data.split(",", 1)[1]

    try:
        raw = base64.b64decode(data, validate=True)
    except (binascii.Error, ValueError):
        raise ValidationError("Image data is not valid base64")

    suffix = Path(image.get("name") or "").suffix
    if not suffix:
        suffix = mimetypes.guess_extension(image.get("type") or "") or ".png"

    fd, path = tempfile.mkstemp(prefix="claude-relay-", suffix=suffix)
    with os.fdopen(fd, "wb") as f:
        f.write(raw)

    logger.info(f"Image saved for prompt: {path} ({len(raw)} bytes)")
    return path


class TurnListener:
    """
    Receives the events of one CLI turn and turns them into client frames.

    Owns the turn's line splitter. Once suppressed (stop requested or
    superseded by a newer turn) nothing more is forwarded, but a session
    id reported by the CLI is still bound so that context carries over.
    """

    def __init__(
        self,
        registry: SessionRegistry,
        session: Session,
        max_buffer_bytes: int = 100_000,
    ):
        self.registry = registry
        self.session = session
        self.splitter = StreamLineSplitter(max_buffer_bytes=max_buffer_bytes)
        self.handle: Optional[ProcessHandle] = None
        self.suppressed = False

    def suppress(self) -> None:
        self.suppressed = True

    def _deliver(self, message: Dict[str, Any]) -> None:
        client = self.session.client
        if client is None:
            logger.debug(
                f"No client attached to session {self.session.session_id}, "
                f"dropping {message.get('type')}"
            )
            return
        client.send(message)

    def on_data(self, chunk: bytes) -> None:
        for record in self.splitter.feed(chunk):
            self._on_record(record)

    def _on_record(self, record: StructuredRecord) -> None:
        session = self.session

        token = record.session_id
        if token and not session.is_active:
            if self.registry.bind_resume_token(session.session_id, token):
                self._deliver({
                    "type": ServerMessageType.SESSION_CREATED.value,
                    "sessionId": token,
                    "internalSessionId": session.session_id,
                })

        # Tokens are spent whether or not a client is watching
        event = session.deduplicator.dedupe(record)
        if event is not None:
            session.usage_total = session.usage_total + event

        if self.suppressed:
            return

        if event is not None and session.client is not None:
            session.client.send({
                "type": ServerMessageType.USAGE_UPDATE.value,
                "sessionId": session.session_id,
                "usage": event.to_dict(),
                "total": session.usage_total.to_dict(),
            })

        # The CLI mirrors the prompt back; the client already rendered it
        if isinstance(record, UserRecord) and record.is_echo:
            return

        data = dict(record.payload)
        data.pop("result", None)
        self._deliver({"type": ServerMessageType.CLAUDE_RESPONSE.value, "data": data})

    def on_error_data(self, chunk: bytes) -> None:
        text = chunk.decode("utf-8", errors="replace")
        logger.warning(f"Claude stderr (session {self.session.session_id}): {text.strip()}")
        if self.suppressed:
            return
        self._deliver({"type": ServerMessageType.CLAUDE_ERROR.value, "error": text})

    def on_exit(self, code: Optional[int]) -> None:
        for record in self.splitter.flush():
            self._on_record(record)

        if self.session.process is self.handle:
            self.session.process = None

        if self.suppressed:
            logger.info(f"Stopped turn of session {self.session.session_id} exited with code {code}")
            return

        self._deliver({
            "type": ServerMessageType.CLAUDE_COMPLETE.value,
            "exitCode": code,
            "sessionId": self.session.session_id,
        })

    def on_spawn_error(self, error: RuntimeException) -> None:
        if self.session.process is self.handle:
            self.session.process = None
        self._deliver({
            "type": ServerMessageType.CLAUDE_ERROR.value,
            "error": error.message,
            "code": error.code,
        })


class RelayConnection:
    """
    Protocol handler for one client connection.

    Attributes:
        registry: Shared session registry
        runner: Factory for CLI turns
        workspace: Holder of the working directory used as cwd
        send: Non-blocking frame sink for this connection
        session_id: Attached session, None while Idle
    """

    def __init__(
        self,
        registry: SessionRegistry,
        runner: ProcessRunner,
        workspace: WorkspaceState,
        send: SendFn,
        max_buffer_bytes: int = 100_000,
    ):
        self.registry = registry
        self.runner = runner
        self.workspace = workspace
        self.send = send
        self.max_buffer_bytes = max_buffer_bytes
        self.session_id: Optional[str] = None

        self._handlers = {
            ClientMessageType.INPUT.value: self._handle_input,
            ClientMessageType.RESUME_SESSION.value: self._handle_resume,
            ClientMessageType.STOP_GENERATION.value: self._handle_stop,
            ClientMessageType.GET_STATUS.value: self._handle_get_status,
            ClientMessageType.LIST_SESSIONS.value: self._handle_list_sessions,
            ClientMessageType.CLAUDE_MD_READ.value: self._handle_claude_md_read,
            ClientMessageType.CLAUDE_MD_WRITE.value: self._handle_claude_md_write,
        }

    # ==================== State ====================

    @property
    def session(self) -> Optional[Session]:
        if self.session_id is None:
            return None
        return self.registry.lookup(self.session_id)

    @property
    def state(self) -> RelayState:
        session = self.session
        if session is None:
            return RelayState.IDLE
        if session.is_streaming:
            return RelayState.STREAMING
        return RelayState.BOUND

    def status_message(self) -> Dict[str, Any]:
        return {
            "type": ServerMessageType.STATUS.value,
            "mode": "claude",
            "sessionActive": True,
            "sessionId": self.session_id,
            "state": self.state.value,
        }

    # ==================== Connection lifecycle ====================

    def on_connect(self) -> None:
        self.send(self.status_message())

    def on_disconnect(self) -> None:
        """Go Idle; the session and any running turn are left untouched"""
        if self.session_id is not None:
            self.registry.detach(self.session_id, self)
            logger.info(f"Client left session {self.session_id} ({self.state.value} before detach)")
        self.session_id = None

    async def handle_message(self, message: Dict[str, Any]) -> None:
        """
        Dispatch one client frame.

        Never raises: failures are reported to the client as claude-error.
        """
        message_type = message.get("type") if isinstance(message, dict) else None
        handler = self._handlers.get(message_type)

        if handler is None:
            logger.warning(f"Unknown message type from client: {message_type}")
            self.send({
                "type": ServerMessageType.CLAUDE_ERROR.value,
                "error": f"Unknown message type: {message_type}",
            })
            return

        try:
            await handler(message)
        except RelayException as e:
            logger.warning(f"Failed to handle {message_type}: {e.message}")
            self.send({
                "type": ServerMessageType.CLAUDE_ERROR.value,
                "error": e.message,
                "code": e.code,
            })
        except Exception as e:
            logger.error(f"Unexpected error handling {message_type}: {e}", exc_info=True)
            self.send({"type": ServerMessageType.CLAUDE_ERROR.value, "error": str(e)})

    # ==================== Handlers ====================

    def _attach(self, resume_token: Optional[str] = None) -> Session:
        target = self.registry.resolve(resume_token) if resume_token else None
        current = self.session
        if current is not None and current is not target:
            self.registry.detach(current.session_id, self)
        self.session_id, _ = self.registry.get_or_create(self, resume_token)
        return self.registry.lookup(self.session_id)

    async def _handle_input(self, message: Dict[str, Any]) -> None:
        text = message.get("data")
        command = text.strip() if isinstance(text, str) else ""
        if not command:
            logger.debug("Ignoring empty input")
            return

        if message.get("deepThink"):
            command = apply_deep_think(command)

        image = message.get("image")
        if isinstance(image, dict):
            image_path = await asyncio.to_thread(save_image, image)
            command = f"{command}\n\n[Attached image: {image_path}]"

        if self.session_id is None:
            session = self._attach()
        else:
            session = self.session
            if session is None:
                session = self._attach(self.session_id)
            session.client = self

        await self._finish_current_turn(session)

        listener = TurnListener(self.registry, session, self.max_buffer_bytes)
        resume_token = session.resume_token if session.is_active else None
        handle = await self.runner.spawn(
            command,
            listener,
            str(self.workspace.path),
            resume_token=resume_token,
        )
        listener.handle = handle
        if handle.running:
            session.process = handle

    async def _finish_current_turn(self, session: Session) -> None:
        """Stop the running turn (if any) and wait until it is gone"""
        process = session.process
        if process is None or not process.running:
            return

        logger.info(f"New input for session {session.session_id} while a turn is running, stopping it")
        process.listener.suppress()
        process.request_cancel()
        await process.wait()

    async def _handle_resume(self, message: Dict[str, Any]) -> None:
        requested = message.get("sessionId")
        if not isinstance(requested, str) or not requested.strip():
            self.send({
                "type": ServerMessageType.CLAUDE_ERROR.value,
                "error": "Invalid session id",
            })
            return

        session = self._attach(requested.strip())
        self.send({
            "type": ServerMessageType.SESSION_RESUMED.value,
            "sessionId": session.session_id,
        })

    async def _handle_stop(self, message: Dict[str, Any]) -> None:
        session = self.session
        if session is not None and session.is_streaming:
            process = session.process
            process.listener.suppress()
            process.request_cancel()
            logger.info(f"Generation stopped for session {session.session_id} (pid={process.pid})")
        else:
            logger.debug("Stop requested with no running turn")

        self.send({
            "type": ServerMessageType.GENERATION_STOPPED.value,
            "message": "Generation stopped",
        })

    async def _handle_get_status(self, message: Dict[str, Any]) -> None:
        self.send(self.status_message())

    async def _handle_list_sessions(self, message: Dict[str, Any]) -> None:
        sessions: List[str] = self.registry.list_ids()
        self.send({
            "type": ServerMessageType.SESSIONS_LIST.value,
            "sessions": sessions,
            "currentSession": self.session_id,
        })

    async def _handle_claude_md_read(self, message: Dict[str, Any]) -> None:
        try:
            content = await asyncio.to_thread(read_claude_md, message.get("filePath"))
        except RelayException as e:
            self._claude_md_failed("read", e)
            return
        self.send({
            "type": ServerMessageType.CLAUDE_MD_RESPONSE.value,
            "data": {"action": "read", "success": True, "content": content},
        })

    async def _handle_claude_md_write(self, message: Dict[str, Any]) -> None:
        try:
            await asyncio.to_thread(write_claude_md, message.get("filePath"), message.get("content"))
        except RelayException as e:
            self._claude_md_failed("write", e)
            return
        self.send({
            "type": ServerMessageType.CLAUDE_MD_RESPONSE.value,
            "data": {"action": "write", "success": True},
        })

    def _claude_md_failed(self, action: str, error: RelayException) -> None:
        self.send({
            "type": ServerMessageType.CLAUDE_MD_RESPONSE.value,
            "data": {"action": action, "success": False, "error": error.message},
        })
