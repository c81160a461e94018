"""
Pydantic schemas for request validation and response serialization.
"""

from .response import BaseResponse, SuccessResponse, ErrorResponse
from .workspace import (
    SetWorkingDirectoryRequest,
    ListFilesRequest,
    WorkingDirectoryOut,
    FileEntryOut,
    FileListOut,
)
from .usage import (
    ProcessTokenFileRequest,
    ProcessTokenFilesRequest,
    FileUsageOut,
    BatchUsageOut,
    DailyUsageOut,
    ScanTokensOut,
)
from .mcp import McpRequest, McpRemoveRequest, CustomCommandRequest, CommandResultOut, McpStatusOut
from .rules import AddRuleRequest, DeleteRuleRequest, RulesOut
from .history import (
    DeleteChatRequest,
    ChatHistoryItemOut,
    ChatSessionOut,
    ChatProjectOut,
    ProjectRefOut,
    ChatSessionDetailOut,
    ChatMessagesOut,
    DeleteChatOut,
)

__all__ = [
    # Response schemas
    "BaseResponse",
    "SuccessResponse",
    "ErrorResponse",
    # Workspace schemas
    "SetWorkingDirectoryRequest",
    "ListFilesRequest",
    "WorkingDirectoryOut",
    "FileEntryOut",
    "FileListOut",
    # Usage schemas
    "ProcessTokenFileRequest",
    "ProcessTokenFilesRequest",
    "FileUsageOut",
    "BatchUsageOut",
    "DailyUsageOut",
    "ScanTokensOut",
    # MCP schemas
    "McpRequest",
    "McpRemoveRequest",
    "CustomCommandRequest",
    "CommandResultOut",
    "McpStatusOut",
    # Rules schemas
    "AddRuleRequest",
    "DeleteRuleRequest",
    "RulesOut",
    # History schemas
    "DeleteChatRequest",
    "ChatHistoryItemOut",
    "ChatSessionOut",
    "ChatProjectOut",
    "ProjectRefOut",
    "ChatSessionDetailOut",
    "ChatMessagesOut",
    "DeleteChatOut",
]
