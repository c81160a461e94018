"""Read-only index of past conversations

Projects are the directories under the projects root; each `*.jsonl`
file inside is one CLI session named by its session id.
"""

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from ..exception import InternalError, NotFoundError, ValidationError
from .jsonl import LOG_SUFFIX, file_mtime, iter_entries, parse_line, parse_timestamp

logger = logging.getLogger(__name__)

TITLE_MAX_LENGTH = 50
UNTITLED = "Untitled"

_CAVEAT = "Caveat: The messages below were generated by the user while running local commands"
_COMMAND_PREFIXES = ("<command-name>", "<local-command-stdout>")
_SESSION_ID = re.compile(r"^[A-Za-z0-9._-]+$")


@dataclass
class ChatSession:
    session_id: str
    file_path: Path
    title: str
    first_message: Optional[str]
    first_message_time: Optional[str]
    last_message_time: datetime
    message_count: int
    created_at: datetime


@dataclass
class ChatProject:
    project_id: str
    real_path: str
    sessions: List[ChatSession] = field(default_factory=list)

    @property
    def session_count(self) -> int:
        return len(self.sessions)

    @property
    def latest_session(self) -> ChatSession:
        return max(self.sessions, key=lambda s: s.last_message_time)

    @property
    def last_message_time(self) -> datetime:
        return self.latest_session.last_message_time

    @property
    def title(self) -> str:
        return self.latest_session.title or Path(self.real_path).name


def extract_message_text(message: Any) -> Optional[str]:
    """Text of a user message: a plain string or the first text block"""
    if isinstance(message, str):
        return message
    if not isinstance(message, dict) or message.get("role") != "user":
        return None

    content = message.get("content")
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        for item in content:
            if isinstance(item, dict) and item.get("type") == "text" and item.get("text"):
                return item["text"]
    return None


def is_valid_user_message(content: Optional[str]) -> bool:
    """False for local-command caveats and command output echoed into the log"""
    if not content or not isinstance(content, str):
        return False
    if _CAVEAT in content:
        return False
    if content.startswith(_COMMAND_PREFIXES):
        return False
    return True


def generate_title(content: Optional[str]) -> str:
    if not content:
        return UNTITLED
    cleaned = " ".join(content.split())
    if len(cleaned) <= TITLE_MAX_LENGTH:
        return cleaned
    return cleaned[:TITLE_MAX_LENGTH - 3] + "..."


def format_time_ago(moment: datetime, now: Optional[datetime] = None) -> str:
    now = now or datetime.now(timezone.utc)
    seconds = max((now - moment).total_seconds(), 0)
    days = int(seconds // 86400)
    if days == 0:
        hours = int(seconds // 3600)
        if hours == 0:
            return f"{int(seconds // 60)} minutes ago"
        return f"{hours} hours ago"
    if days == 1:
        return "1 day ago"
    return f"{days} days ago"


class ChatHistoryScanner:
    """
    Scans the projects root on every call; nothing is cached, so the
    result always reflects the files on disk.

    Attributes:
        projects_dir: Root holding one directory per project
    """

    def __init__(self, projects_dir: Path):
        self.projects_dir = Path(projects_dir)

    def scan_projects(self) -> List[ChatProject]:
        """All projects with at least one readable session, most recent first"""
        if not self.projects_dir.is_dir():
            logger.info(f"Claude projects directory not found: {self.projects_dir}")
            return []

        projects = []
        for project_dir in sorted(self.projects_dir.iterdir()):
            if not project_dir.is_dir():
                continue
            project = self._analyze_project(project_dir)
            if project is not None:
                projects.append(project)

        projects.sort(key=lambda p: p.last_message_time, reverse=True)
        return projects

    def _analyze_project(self, project_dir: Path) -> Optional[ChatProject]:
        files = sorted(p for p in project_dir.iterdir() if p.suffix == LOG_SUFFIX and p.is_file())
        if not files:
            return None

        real_path = self._project_path_from_session(files[0]) or decode_project_path(project_dir.name)
        sessions = [s for s in (self._analyze_session(f) for f in files) if s is not None]
        if not sessions:
            return None

        return ChatProject(project_id=project_dir.name, real_path=real_path, sessions=sessions)

    @staticmethod
    def _project_path_from_session(path: Path) -> Optional[str]:
        try:
            with open(path, "r", encoding="utf-8", errors="replace") as f:
                first_line = f.readline().strip()
        except OSError:
            return None
        entry = parse_line(first_line) if first_line else None
        cwd = entry.get("cwd") if entry else None
        return cwd if isinstance(cwd, str) and cwd else None

    def _analyze_session(self, path: Path) -> Optional[ChatSession]:
        try:
            stat = path.stat()
            last_message_time = file_mtime(path)
            first_message = None
            first_message_time = None
            count = 0

            for entry in iter_entries(path):
                count += 1
                moment = parse_timestamp(entry.get("timestamp"))
                if moment is not None and moment > last_message_time:
                    last_message_time = moment

                if first_message is None and entry.get("type") == "user" and entry.get("message"):
                    text = extract_message_text(entry["message"])
                    if is_valid_user_message(text):
                        first_message = text
                        first_message_time = entry.get("timestamp")
        except OSError as e:
            logger.error(f"Error analyzing session {path}: {e}")
            return None

        if count == 0:
            return None

        return ChatSession(
            session_id=path.stem,
            file_path=path,
            title=generate_title(first_message),
            first_message=first_message,
            first_message_time=first_message_time,
            last_message_time=last_message_time,
            message_count=count,
            created_at=datetime.fromtimestamp(stat.st_ctime, tz=timezone.utc),
        )

    def get_chat_history(self) -> List[Dict[str, Any]]:
        """Flat list of all sessions across projects, most recent first"""
        history = []
        for project in self.scan_projects():
            for session in project.sessions:
                history.append({
                    "id": session.session_id,
                    "title": session.title,
                    "last_message": format_time_ago(session.last_message_time),
                    "date": session.last_message_time,
                    "project_path": project.real_path,
                    "project_id": project.project_id,
                    "first_message": session.first_message,
                    "message_count": session.message_count,
                })
        history.sort(key=lambda item: item["date"], reverse=True)
        return history

    def find_session(self, session_id: str) -> Tuple[ChatProject, ChatSession]:
        """
        Raises:
            ValidationError: Malformed session id
            NotFoundError: No log file for that session
        """
        if not session_id or not _SESSION_ID.match(session_id):
            raise ValidationError(f"Invalid session id: {session_id}")

        for project in self.scan_projects():
            for session in project.sessions:
                if session.session_id == session_id:
                    return project, session
        raise NotFoundError("Session not found")

    def read_messages(self, session_id: str) -> List[Dict[str, Any]]:
        """The user and assistant entries of a session, in file order"""
        _, session = self.find_session(session_id)
        try:
            return [e for e in iter_entries(session.file_path) if e.get("type") in ("user", "assistant")]
        except OSError as e:
            raise InternalError(f"Failed to read session file: {e}")

    def delete_session(self, session_id: str) -> bool:
        """
        Delete a session's log file.

        Returns:
            True if a file was deleted, False if no such session existed
        """
        try:
            _, session = self.find_session(session_id)
        except NotFoundError:
            logger.info(f"Chat file not found for {session_id}, nothing to delete")
            return False

        try:
            session.file_path.unlink()
        except FileNotFoundError:
            return False
        except OSError as e:
            raise InternalError(f"Failed to delete chat: {e}")

        logger.info(f"Deleted chat file: {session.file_path}")
        return True


def decode_project_path(project_id: str) -> str:
    """Best-effort reverse of the CLI's directory naming (`/` encoded as `-`)"""
    return project_id.replace("-", "/")
