"""Enumeration types for backend"""
from enum import Enum


class RecordKind(str, Enum):
    """Discriminator of one structured record from the CLI output stream

    Values mirror the `type` field emitted by `claude --output-format stream-json`,
    plus USAGE for bare usage lines and UNKNOWN for anything unrecognised.
    """
    SYSTEM = "system"          # session-bound / init record, carries session_id
    ASSISTANT = "assistant"    # assistant content (text, thinking, tool_use)
    USER = "user"              # tool results, or an echo of the user's own input
    RESULT = "result"          # final turn summary
    USAGE = "usage"            # usage counters without message content
    ERROR = "error"
    UNKNOWN = "unknown"


class RelayState(str, Enum):
    """Per-connection relay state machine"""
    IDLE = "idle"              # no session attached
    BOUND = "bound"            # session attached, no process running
    STREAMING = "streaming"    # process running, events being forwarded


class ClientMessageType(str, Enum):
    """Client -> server frame types"""
    INPUT = "input"
    RESUME_SESSION = "resume_session"
    STOP_GENERATION = "stop_generation"
    GET_STATUS = "get_status"
    LIST_SESSIONS = "list_sessions"
    CLAUDE_MD_READ = "claude_md_read"
    CLAUDE_MD_WRITE = "claude_md_write"


class ServerMessageType(str, Enum):
    """Server -> client frame types"""
    SESSION_CREATED = "session-created"
    SESSION_RESUMED = "session-resumed"
    CLAUDE_RESPONSE = "claude-response"
    CLAUDE_ERROR = "claude-error"
    CLAUDE_COMPLETE = "claude-complete"
    GENERATION_STOPPED = "generation_stopped"
    STATUS = "status"
    SESSIONS_LIST = "sessions_list"
    CHAT_HISTORY_CHANGED = "chat-history-changed"
    CLAUDE_MD_RESPONSE = "claude_md_response"
    USAGE_UPDATE = "usage-update"


class McpType(str, Enum):
    """Tool servers with a fixed installation template"""
    CONTEXT7 = "context7"
    ATLASSIAN = "atlassian"
    NOTION = "notion"
    PLAYWRIGHT = "playwright"
