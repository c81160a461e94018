"""Working directory API endpoints"""

import asyncio
import logging
from typing import Annotated

from fastapi import APIRouter, Depends

from ..dep import get_workspace
from ..schema.response import SuccessResponse
from ..schema.workspace import (
    FileEntryOut,
    FileListOut,
    ListFilesRequest,
    SetWorkingDirectoryRequest,
    WorkingDirectoryOut,
)
from ..workspace import WorkspaceState, list_files

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Workspace"])

WorkspaceDep = Annotated[WorkspaceState, Depends(get_workspace)]


@router.get("/current-directory", response_model=SuccessResponse[WorkingDirectoryOut])
async def current_directory(workspace: WorkspaceDep):
    """Get the directory Claude turns run in"""
    return SuccessResponse(
        data=WorkingDirectoryOut(path=str(workspace.path)),
        message="Current working directory retrieved successfully",
    )


@router.post("/set-working-directory", response_model=SuccessResponse[WorkingDirectoryOut])
async def set_working_directory(request: SetWorkingDirectoryRequest, workspace: WorkspaceDep):
    """Change the working directory for subsequent turns

    Raises:
        ValidationError: Empty path or not a directory
        NotFoundError: Directory does not exist
    """
    path = workspace.set(request.path)
    return SuccessResponse(
        data=WorkingDirectoryOut(path=str(path)),
        message="Working directory changed successfully",
    )


@router.post("/list-files", response_model=SuccessResponse[FileListOut])
async def list_directory(request: ListFilesRequest):
    """List a directory, directories first

    Raises:
        ValidationError: Empty path or not a directory
        NotFoundError: Directory does not exist
    """
    entries = await asyncio.to_thread(list_files, request.path)
    files = [FileEntryOut(**entry) for entry in entries]
    return SuccessResponse(data=FileListOut(files=files, count=len(files)))
