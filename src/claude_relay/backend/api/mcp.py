"""MCP tool-server management API endpoints"""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends

from ..dep import get_mcp_manager, get_workspace
from ..exception import CommandFailedError
from ..runtime.mcp import McpManager, resolve_mcp_type
from ..schema.mcp import (
    CommandResultOut,
    CustomCommandRequest,
    McpRemoveRequest,
    McpRequest,
    McpStatusOut,
)
from ..schema.response import SuccessResponse
from ..workspace import WorkspaceState

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/mcp", tags=["MCP"])

McpDep = Annotated[McpManager, Depends(get_mcp_manager)]
WorkspaceDep = Annotated[WorkspaceState, Depends(get_workspace)]


@router.post("/install", response_model=SuccessResponse[CommandResultOut])
async def install_mcp(request: McpRequest, mcp: McpDep, workspace: WorkspaceDep):
    """Install a templated MCP server via `claude mcp add`

    Success is exit code 0, or an exit code with "successfully", "added"
    or "installed" in the output.

    Raises:
        ValidationError: Unknown MCP type
        ClaudeNotFoundError: Claude CLI not installed
        CommandTimeoutError: Installation exceeded its timeout
        CommandFailedError: Installation finished without success
    """
    mcp_type = resolve_mcp_type(request.mcp_type)
    result = await mcp.install(mcp_type, str(workspace.path))

    if not mcp.install_succeeded(result):
        raise CommandFailedError(
            f"Installation failed with exit code {result.exit_code}",
            result.output, result.error_output, result.exit_code,
        )

    return SuccessResponse(
        data=CommandResultOut(
            output=result.output,
            error_output=result.error_output,
            exit_code=result.exit_code,
            mcp_type=mcp_type.value,
        ),
        message=f"{mcp_type.value} MCP installation completed successfully",
    )


@router.post("/remove", response_model=SuccessResponse[CommandResultOut])
async def remove_mcp(request: McpRemoveRequest, mcp: McpDep, workspace: WorkspaceDep):
    """Remove an MCP server via `claude mcp remove`

    Raises:
        ClaudeNotFoundError: Claude CLI not installed
        CommandTimeoutError: Removal exceeded its timeout
        CommandFailedError: Removal finished without success
    """
    result = await mcp.remove(request.mcp_type, str(workspace.path))

    if not mcp.remove_succeeded(result):
        raise CommandFailedError(
            result.error_output.strip() or result.output.strip() or f"Failed to remove {request.mcp_type} MCP",
            result.output, result.error_output, result.exit_code,
        )

    return SuccessResponse(
        data=CommandResultOut(
            output=result.output,
            error_output=result.error_output,
            exit_code=result.exit_code,
            mcp_type=request.mcp_type,
        ),
        message=f"{request.mcp_type} MCP removed successfully",
    )


@router.get("/status", response_model=SuccessResponse[McpStatusOut])
async def mcp_status(mcp: McpDep, workspace: WorkspaceDep):
    """Installed MCP servers as reported by `claude mcp list`

    Raises:
        ClaudeNotFoundError: Claude CLI not installed
        CommandTimeoutError: `claude mcp list` did not answer in time
    """
    result, status = await mcp.status(str(workspace.path))
    return SuccessResponse(
        data=McpStatusOut(
            installed_mcps=status.servers,
            unauthenticated_mcps=status.unauthenticated_servers,
            output=result.output,
            error_output=result.error_output,
            exit_code=result.exit_code,
            working_directory=str(workspace.path),
        ),
        message=f"Detected {len(status.servers)} MCP servers",
    )


@router.post("/custom", response_model=SuccessResponse[CommandResultOut])
async def custom_command(request: CustomCommandRequest, mcp: McpDep, workspace: WorkspaceDep):
    """Run a custom command line in the working directory

    Raises:
        ValidationError: Command cannot be parsed
        ProcessSpawnError: Executable not found
        CommandTimeoutError: Command exceeded its timeout
        CommandFailedError: Non-zero exit code
    """
    result = await mcp.custom(request.command, str(workspace.path))

    if not result.succeeded:
        raise CommandFailedError(
            f"Command failed with exit code {result.exit_code}",
            result.output, result.error_output, result.exit_code,
        )

    return SuccessResponse(
        data=CommandResultOut(
            output=result.output,
            error_output=result.error_output,
            exit_code=result.exit_code,
            command=request.command,
        )
    )
