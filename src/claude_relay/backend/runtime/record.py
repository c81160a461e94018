"""Structured records decoded from `claude --output-format stream-json`

Every complete output line is decoded exactly once, at the line splitter
boundary, into one of the record variants below. Downstream consumers
(relay handler, usage deduplicator, batch token scanner) dispatch on
`kind` and use the typed accessors instead of re-sniffing the raw dict.

The same decoder is used for the on-disk conversation logs under
~/.claude/projects, which share the message/usage shape but spell a few
keys in camelCase (`sessionId`, `requestId`).
"""

import hashlib
import json
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from ..enum import RecordKind


@dataclass
class StructuredRecord:
    """Base variant; holds the original payload and the shared accessors"""

    kind: RecordKind
    payload: Dict[str, Any]

    @property
    def message(self) -> Optional[Dict[str, Any]]:
        message = self.payload.get("message")
        return message if isinstance(message, dict) else None

    @property
    def message_id(self) -> Optional[str]:
        message = self.message
        return message.get("id") if message and message.get("id") else None

    @property
    def request_id(self) -> Optional[str]:
        return self.payload.get("request_id") or self.payload.get("requestId") or None

    @property
    def session_id(self) -> Optional[str]:
        return self.payload.get("session_id") or self.payload.get("sessionId") or None

    @property
    def timestamp(self) -> Optional[str]:
        return self.payload.get("timestamp")

    @property
    def usage(self) -> Optional[Dict[str, Any]]:
        """Per-message usage counters, if this record carries any

        Only `message.usage` is considered. The `usage` on result records
        is the turn aggregate of messages already seen, so counting it
        would double the totals.
        """
        message = self.message
        if message and isinstance(message.get("usage"), dict):
            return message["usage"]
        return None

    @property
    def identity(self) -> str:
        """Best-effort unique key, strongest identifying fields first

        Priority: message id + request id, message id, request id, then a
        sha256 over timestamp and the usage payload (or the whole record
        when it has no usage).
        """
        message_id = self.message_id
        request_id = self.request_id
        if message_id and request_id:
            return f"msg_req:{message_id}:{request_id}"
        if message_id:
            return f"msg:{message_id}"
        if request_id:
            return f"req:{request_id}"
        content = self.usage if self.usage is not None else self.payload
        digest_source = json.dumps(
            {"timestamp": self.timestamp, "usage": content},
            sort_keys=True,
            default=str,
        )
        return hashlib.sha256(digest_source.encode("utf-8")).hexdigest()


@dataclass
class SystemRecord(StructuredRecord):
    """`system` record; the `init` subtype binds the CLI session id"""

    subtype: Optional[str] = None


@dataclass
class AssistantRecord(StructuredRecord):
    """Assistant message with its text blocks collected"""

    text_segments: List[str] = field(default_factory=list)


@dataclass
class UserRecord(StructuredRecord):
    """`user` record: tool results, or the CLI mirroring the user's input"""

    tool_results: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def is_echo(self) -> bool:
        """True when the record only repeats what the user typed

        Tool results also arrive as `user` records and must be forwarded;
        anything without a tool_result block is an echo.
        """
        return not self.tool_results


@dataclass
class ResultRecord(StructuredRecord):
    """Final record of a turn"""

    subtype: Optional[str] = None
    is_error: bool = False
    result: Optional[str] = None


@dataclass
class UsageRecord(StructuredRecord):
    """Line with bare usage counters and no message envelope"""

    @property
    def usage(self) -> Optional[Dict[str, Any]]:
        usage = self.payload.get("usage")
        return usage if isinstance(usage, dict) else None


@dataclass
class ErrorRecord(StructuredRecord):
    """Error reported in-band by the CLI"""

    error: str = ""


@dataclass
class UnknownRecord(StructuredRecord):
    """Any JSON object without a recognised `type`"""


def _content_blocks(message: Optional[Dict[str, Any]]) -> List[Dict[str, Any]]:
    if not message:
        return []
    content = message.get("content")
    if isinstance(content, list):
        return [block for block in content if isinstance(block, dict)]
    return []


def decode_record(payload: Dict[str, Any]) -> StructuredRecord:
    """Decode one parsed JSON object into its record variant

    Args:
        payload: JSON object parsed from one output line

    Returns:
        StructuredRecord subclass matching the payload's `type`
    """
    record_type = payload.get("type")
    message = payload.get("message") if isinstance(payload.get("message"), dict) else None

    if record_type == RecordKind.SYSTEM.value:
        return SystemRecord(RecordKind.SYSTEM, payload, subtype=payload.get("subtype"))

    if record_type == RecordKind.ASSISTANT.value:
        blocks = _content_blocks(message)
        return AssistantRecord(
            RecordKind.ASSISTANT,
            payload,
            text_segments=[b.get("text", "") for b in blocks if b.get("type") == "text"],
        )

    if record_type == RecordKind.USER.value:
        blocks = _content_blocks(message)
        return UserRecord(
            RecordKind.USER,
            payload,
            tool_results=[b for b in blocks if b.get("type") == "tool_result"],
        )

    if record_type == RecordKind.RESULT.value:
        return ResultRecord(
            RecordKind.RESULT,
            payload,
            subtype=payload.get("subtype"),
            is_error=bool(payload.get("is_error", False)),
            result=payload.get("result"),
        )

    if record_type == RecordKind.ERROR.value:
        error = payload.get("error") or payload.get("message") or ""
        return ErrorRecord(RecordKind.ERROR, payload, error=str(error))

    if record_type is None and isinstance(payload.get("usage"), dict):
        return UsageRecord(RecordKind.USAGE, payload)

    return UnknownRecord(RecordKind.UNKNOWN, payload)
