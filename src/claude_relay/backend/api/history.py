"""Chat history API endpoints (read-only view of the CLI's logs, plus delete)"""

import asyncio
import logging
import time
from typing import Annotated, List

from fastapi import APIRouter, Depends

from ..dep import get_connection_broker, get_history_scanner
from ..enum import ServerMessageType
from ..history import ChatHistoryScanner
from ..schema.history import (
    ChatHistoryItemOut,
    ChatMessagesOut,
    ChatProjectOut,
    ChatSessionDetailOut,
    ChatSessionOut,
    DeleteChatOut,
    DeleteChatRequest,
    ProjectRefOut,
)
from ..schema.response import SuccessResponse
from ..websocket.client_broker import ConnectionBroker

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Chat History"])

ScannerDep = Annotated[ChatHistoryScanner, Depends(get_history_scanner)]
BrokerDep = Annotated[ConnectionBroker, Depends(get_connection_broker)]


@router.get("/chat-history", response_model=SuccessResponse[List[ChatHistoryItemOut]])
async def chat_history(scanner: ScannerDep):
    """All sessions across projects, most recent first"""
    history = await asyncio.to_thread(scanner.get_chat_history)
    return SuccessResponse(
        data=[ChatHistoryItemOut(**item) for item in history],
        message=f"{len(history)} chats",
    )


@router.get("/chat-projects", response_model=SuccessResponse[List[ChatProjectOut]])
async def chat_projects(scanner: ScannerDep):
    """Projects with their sessions, most recently active first"""
    projects = await asyncio.to_thread(scanner.scan_projects)
    return SuccessResponse(data=[ChatProjectOut.from_project(p) for p in projects])


@router.get("/chat-session/{session_id}", response_model=SuccessResponse[ChatSessionDetailOut])
async def chat_session(session_id: str, scanner: ScannerDep):
    """Summary of one session

    Raises:
        NotFoundError: No log file for that session
    """
    project, session = await asyncio.to_thread(scanner.find_session, session_id)
    return SuccessResponse(
        data=ChatSessionDetailOut(
            session=ChatSessionOut.from_session(session),
            project=ProjectRefOut(id=project.project_id, title=project.title, real_path=project.real_path),
        )
    )


@router.get("/chat-session/{session_id}/messages", response_model=SuccessResponse[ChatMessagesOut])
async def chat_session_messages(session_id: str, scanner: ScannerDep):
    """User and assistant entries of a session, in order

    Raises:
        NotFoundError: No log file for that session
    """
    messages = await asyncio.to_thread(scanner.read_messages, session_id)
    return SuccessResponse(
        data=ChatMessagesOut(session_id=session_id, messages=messages, total_messages=len(messages))
    )


@router.post("/delete-chat", response_model=SuccessResponse[DeleteChatOut])
async def delete_chat(request: DeleteChatRequest, scanner: ScannerDep):
    """Delete a session's log file (succeeds even if it is already gone)"""
    deleted = await asyncio.to_thread(scanner.delete_session, request.chat_id)
    return SuccessResponse(
        data=DeleteChatOut(chat_id=request.chat_id, deleted=deleted),
        message="Chat deleted" if deleted else "Chat file not found",
    )


@router.post("/test-file-watch", response_model=SuccessResponse[dict])
async def test_file_watch(broker: BrokerDep):
    """Broadcast a synthetic chat-history-changed event to every client"""
    notified = broker.broadcast({
        "type": ServerMessageType.CHAT_HISTORY_CHANGED.value,
        "filePath": "/test/manual-trigger.jsonl",
        "timestamp": int(time.time() * 1000),
    })
    logger.info(f"Manual file-watch test notified {notified} clients")
    return SuccessResponse(data={"notified_clients": notified})
