"""Token usage schemas"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


# ==================== Request Schemas ====================


class ProcessTokenFileRequest(BaseModel):
    """Request schema for processing one log file"""
    model_config = ConfigDict(populate_by_name=True)

    file_path: str = Field(..., alias="filePath", description="Path of the .jsonl file")


class ProcessTokenFilesRequest(BaseModel):
    """Request schema for processing many log files with cross-file deduplication"""
    model_config = ConfigDict(populate_by_name=True)

    file_paths: List[str] = Field(..., alias="filePaths", min_length=1, description="Paths of .jsonl files")
    batch_size: int = Field(100, alias="batchSize", ge=1, description="Files read concurrently per batch")


# ==================== Response Schemas ====================


class FileUsageOut(BaseModel):
    """Token totals of one file"""
    success: bool
    file_name: str
    file_path: str
    file_size: int = 0
    input_tokens: int = 0
    output_tokens: int = 0
    cache_creation_tokens: int = 0
    cache_read_tokens: int = 0
    total_tokens: int = 0
    valid_lines: int = 0
    duplicates_skipped: int = 0
    total_lines_processed: int = 0
    duplicate_rate: float = 0.0
    unique_identities: int = 0
    error: Optional[str] = None

    @classmethod
    def from_result(cls, result) -> "FileUsageOut":
        """Build from a token_scanner.FileUsage"""
        return cls(
            success=result.success,
            file_name=result.file_name,
            file_path=result.file_path,
            file_size=result.file_size,
            input_tokens=result.usage.input_tokens,
            output_tokens=result.usage.output_tokens,
            cache_creation_tokens=result.usage.cache_creation_tokens,
            cache_read_tokens=result.usage.cache_read_tokens,
            total_tokens=result.usage.total_tokens,
            valid_lines=result.valid_lines,
            duplicates_skipped=result.duplicates_skipped,
            total_lines_processed=result.total_lines,
            duplicate_rate=result.duplicate_rate,
            unique_identities=result.unique_identities,
            error=result.error,
        )


class BatchUsageOut(BaseModel):
    """Result of a multi-file run"""
    results: List[FileUsageOut]
    total_files: int
    batch_size: int
    batches_processed: int
    global_stats: Dict[str, Any]


class DailyUsageOut(BaseModel):
    """Token totals of one local calendar day"""
    input: int = 0
    output: int = 0
    cache: int = 0
    total: int = 0


class ScanTokensOut(BaseModel):
    """All log files found and their per-day totals"""
    files: List[str]
    daily_usage: Dict[str, DailyUsageOut]
