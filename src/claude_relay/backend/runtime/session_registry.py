"""In-memory registry of relay sessions

A session is one logical conversation. It outlives both the processes that
serve its turns and the browser connections that drive it: the registry is
the only state shared across client connections.

Sessions are never evicted; they live until the server exits. A session
from a previous server run can still be continued by resuming its CLI
session id.
"""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from .usage import UsageDeduplicator, UsageEvent

logger = logging.getLogger(__name__)


@dataclass
class Session:
    """
    One logical conversation.

    Attributes:
        session_id: Client-facing identifier
        resume_token: CLI session id used with --resume (bound once)
        is_active: Whether resume_token has been bound
        process: Handle of the running turn, None when idle
        client: Currently attached client connection, None when detached
        usage_total: Tokens credited to this session so far
        deduplicator: Live usage identities seen for this session, kept across
            reconnects so a replayed message is credited once
        created_at: Creation time
    """

    session_id: str
    resume_token: Optional[str] = None
    is_active: bool = False
    process: Optional[Any] = None
    client: Optional[Any] = None
    usage_total: UsageEvent = field(default_factory=UsageEvent)
    deduplicator: UsageDeduplicator = field(default_factory=UsageDeduplicator)
    created_at: datetime = field(default_factory=datetime.now)

    @property
    def is_streaming(self) -> bool:
        """A turn is running and has not been asked to stop"""
        process = self.process
        return process is not None and process.running and not process.cancel_requested


class SessionRegistry:
    """
    Maps session ids to Session records.

    Runs entirely on the server event loop, so no locking is needed.

    Attributes:
        dedup_window: Identities kept by each session's usage deduplicator
    """

    def __init__(self, dedup_window: int = 50):
        self.dedup_window = dedup_window
        self._sessions: Dict[str, Session] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: str) -> bool:
        return session_id in self._sessions

    def resolve(self, session_id: str) -> Optional[Session]:
        """
        Find a session by its id or by its bound CLI session id.

        Clients learn the CLI id from session-created, so either may come
        back in a resume request.
        """
        if not session_id:
            return None
        session = self._sessions.get(session_id)
        if session is not None:
            return session
        for session in self._sessions.values():
            if session.resume_token == session_id:
                return session
        return None

    def get_or_create(self, client: Any, resume_token: Optional[str] = None) -> Tuple[str, bool]:
        """
        Attach `client` to the session known by `resume_token`, or create one.

        The token may be a session id or the CLI session id bound to one.
        Without a token a fresh session is created with a generated id and no
        bound token. With an unknown token a session is created under that
        id and bound to it, so the next turn runs with --resume.

        Args:
            client: Client connection to attach (replaces any previous one)
            resume_token: Historical session id supplied by the client

        Returns:
            Tuple of (session_id, is_new)
        """
        session = self.resolve(resume_token) if resume_token else None
        if session is not None:
            if session.client is not None and session.client is not client:
                logger.info(f"Session {session.session_id} re-attached to a new client, detaching previous one")
            session.client = client
            return session.session_id, False

        session_id = resume_token or str(uuid.uuid4())
        session = Session(
            session_id=session_id,
            resume_token=resume_token,
            is_active=bool(resume_token),
            client=client,
            deduplicator=UsageDeduplicator(max_identities=self.dedup_window),
        )
        self._sessions[session_id] = session

        logger.info(f"Session created: session_id={session_id}, resumed={bool(resume_token)}")
        return session_id, True

    def bind_resume_token(self, session_id: str, token: str) -> bool:
        """
        Bind the CLI session id reported by the first reply of a fresh session.

        First writer wins: once bound, the token never changes.

        Returns:
            True if the token was bound by this call
        """
        session = self._sessions.get(session_id)
        if session is None or not token:
            return False
        if session.resume_token is not None:
            return False

        session.resume_token = token
        session.is_active = True
        logger.info(f"Resume token bound: session_id={session_id}, token={token}")
        return True

    def lookup(self, session_id: str) -> Optional[Session]:
        return self._sessions.get(session_id)

    def list_ids(self) -> List[str]:
        return list(self._sessions.keys())

    def detach(self, session_id: str, client: Any) -> None:
        """Clear the attached client if it is still `client` (last writer wins)"""
        session = self._sessions.get(session_id)
        if session is not None and session.client is client:
            session.client = None
            logger.debug(f"Client detached from session {session_id}")

    def streaming_sessions(self) -> List[Session]:
        return [s for s in self._sessions.values() if s.is_streaming]
