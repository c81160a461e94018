"""Chat history schemas"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


# ==================== Request Schemas ====================


class DeleteChatRequest(BaseModel):
    """Request schema for deleting a chat log"""
    model_config = ConfigDict(populate_by_name=True)

    chat_id: str = Field(..., alias="chatId", min_length=1, description="CLI session id of the chat")


# ==================== Response Schemas ====================


class ChatHistoryItemOut(BaseModel):
    """One entry of the flat chat history list"""
    id: str
    title: str
    last_message: str
    date: datetime
    project_path: str
    project_id: str
    first_message: Optional[str] = None
    message_count: int


class ChatSessionOut(BaseModel):
    """Summary of one session log"""
    session_id: str
    title: str
    first_message: Optional[str] = None
    first_message_time: Optional[str] = None
    last_message_time: datetime
    message_count: int
    created_at: datetime

    @classmethod
    def from_session(cls, session) -> "ChatSessionOut":
        return cls(
            session_id=session.session_id,
            title=session.title,
            first_message=session.first_message,
            first_message_time=session.first_message_time,
            last_message_time=session.last_message_time,
            message_count=session.message_count,
            created_at=session.created_at,
        )


class ChatProjectOut(BaseModel):
    """One project directory and its sessions"""
    id: str
    real_path: str
    title: str
    session_count: int
    last_message_time: datetime
    first_message: Optional[str] = None
    sessions: List[ChatSessionOut]

    @classmethod
    def from_project(cls, project) -> "ChatProjectOut":
        return cls(
            id=project.project_id,
            real_path=project.real_path,
            title=project.title,
            session_count=project.session_count,
            last_message_time=project.last_message_time,
            first_message=project.latest_session.first_message,
            sessions=[ChatSessionOut.from_session(s) for s in project.sessions],
        )


class ProjectRefOut(BaseModel):
    id: str
    title: str
    real_path: str


class ChatSessionDetailOut(BaseModel):
    """A session together with the project it belongs to"""
    session: ChatSessionOut
    project: ProjectRefOut


class ChatMessagesOut(BaseModel):
    """User and assistant entries of a session log"""
    session_id: str
    messages: List[Dict[str, Any]]
    total_messages: int


class DeleteChatOut(BaseModel):
    chat_id: str
    deleted: bool
