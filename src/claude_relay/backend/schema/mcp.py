"""MCP management schemas"""

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


# ==================== Request Schemas ====================


class McpRequest(BaseModel):
    """Request schema for installing a templated MCP server"""
    model_config = ConfigDict(populate_by_name=True)

    mcp_type: Optional[str] = Field(
        None,
        alias="mcpType",
        description="context7, atlassian, notion or playwright (defaults to context7)"
    )


class McpRemoveRequest(BaseModel):
    """Request schema for removing an MCP server"""
    model_config = ConfigDict(populate_by_name=True)

    mcp_type: str = Field(..., alias="mcpType", min_length=1, description="Name of the server to remove")


class CustomCommandRequest(BaseModel):
    """Request schema for running a custom command line"""
    command: str = Field(..., min_length=1, description="Command line, split like a POSIX shell")


# ==================== Response Schemas ====================


class CommandResultOut(BaseModel):
    """Captured output of a finished command"""
    output: str
    error_output: str
    exit_code: Optional[int]
    mcp_type: Optional[str] = None
    command: Optional[str] = None


class McpStatusOut(BaseModel):
    """Servers reported by `claude mcp list`"""
    installed_mcps: List[str]
    unauthenticated_mcps: List[str]
    detection_method: str = "cli"
    output: str
    error_output: str
    exit_code: Optional[int]
    working_directory: str
