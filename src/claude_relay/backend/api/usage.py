"""Token usage API endpoints (batch mode of the usage deduplicator)"""

import asyncio
import logging
import math
from typing import Annotated

from fastapi import APIRouter, Depends

from ..config import RelaySettings
from ..dep import get_settings
from ..exception import NotFoundError
from ..history.token_scanner import TokenScanner, scan_usage_files
from ..schema.response import SuccessResponse
from ..schema.usage import (
    BatchUsageOut,
    DailyUsageOut,
    FileUsageOut,
    ProcessTokenFileRequest,
    ProcessTokenFilesRequest,
    ScanTokensOut,
)

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Token Usage"])

SettingsDep = Annotated[RelaySettings, Depends(get_settings)]


@router.get("/scan-tokens", response_model=SuccessResponse[ScanTokensOut])
async def scan_tokens(settings: SettingsDep):
    """List every conversation log and the per-day token totals

    Raises:
        NotFoundError: Projects directory does not exist
    """
    root = settings.history.projects_path
    if not root.is_dir():
        raise NotFoundError("Projects directory not found")

    files, daily = await asyncio.to_thread(scan_usage_files, root)
    return SuccessResponse(
        data=ScanTokensOut(
            files=[str(f) for f in files],
            daily_usage={day: DailyUsageOut(**totals) for day, totals in daily.items()},
        )
    )


@router.post("/process-token-files", response_model=SuccessResponse[BatchUsageOut])
async def process_token_files(request: ProcessTokenFilesRequest):
    """Per-file token totals with deduplication across all requested files"""
    scanner = TokenScanner()
    results = await scanner.process_files(request.file_paths, request.batch_size)

    return SuccessResponse(
        data=BatchUsageOut(
            results=[FileUsageOut.from_result(r) for r in results],
            total_files=len(results),
            batch_size=request.batch_size,
            batches_processed=math.ceil(len(request.file_paths) / request.batch_size),
            global_stats=scanner.global_stats(results),
        )
    )


@router.post("/process-token-file", response_model=SuccessResponse[FileUsageOut])
async def process_token_file(request: ProcessTokenFileRequest):
    """Token totals of a single file

    Raises:
        NotFoundError: File does not exist
    """
    result = await TokenScanner().process_file(request.file_path)
    if result.error == "File not found":
        raise NotFoundError("File not found")
    return SuccessResponse(data=FileUsageOut.from_result(result))
