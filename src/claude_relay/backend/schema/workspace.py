"""Working directory schemas"""

from datetime import datetime
from typing import List

from pydantic import BaseModel, Field


# ==================== Request Schemas ====================


class SetWorkingDirectoryRequest(BaseModel):
    """Request schema for changing the working directory"""
    path: str = Field(..., description="Existing directory to run Claude in")


class ListFilesRequest(BaseModel):
    """Request schema for listing a directory"""
    path: str = Field(..., description="Directory to list")


# ==================== Response Schemas ====================


class WorkingDirectoryOut(BaseModel):
    """Current working directory"""
    path: str


class FileEntryOut(BaseModel):
    """One directory entry"""
    name: str
    path: str
    is_directory: bool
    size: int
    modified: datetime


class FileListOut(BaseModel):
    """Directory listing, directories first"""
    files: List[FileEntryOut]
    count: int
