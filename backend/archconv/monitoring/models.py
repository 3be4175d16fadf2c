"""
Response models for monitoring API.

All responses are read-only views of the running conversion.
"""

from datetime import datetime
from typing import Dict, List, Optional
from pydantic import BaseModel, ConfigDict


class HealthResponse(BaseModel):
    """Response for health check endpoint."""

    model_config = ConfigDict(extra="forbid")

    status: str = "ok"
    running: bool = False


class ConverterInfo(BaseModel):
    """One registered converter."""

    model_config = ConfigDict(extra="forbid")

    name: str
    version: str
    available: bool
    supported_os: List[str]
    source_formats: int
    blocking_formats: int


class ConverterListResponse(BaseModel):
    model_config = ConfigDict(extra="forbid")

    converters: List[ConverterInfo]
    total_count: int


class FileSummary(BaseModel):
    """
    Summary view of a file for list endpoints.

    Format progress and status flags without lineage or checksums.
    """

    model_config = ConfigDict(extra="forbid")

    # Identity
    id: str
    path: str

    # Formats
    original_format: str
    current_format: str
    target_format: Optional[str] = None

    # Progress
    route: List[str]
    failed: bool
    not_supported: bool
    output_not_set: bool
    is_converted: bool
    should_merge: bool
    is_merged: bool
    added_during_run: bool


class FileDetail(FileSummary):
    """Complete view of one file record."""

    original_path: str
    original_format_name: str
    original_mime: str
    new_format: Optional[str] = None
    new_mime: Optional[str] = None
    original_checksum: Optional[str] = None
    new_checksum: Optional[str] = None
    original_size: int
    new_size: int
    parent_id: Optional[str] = None
    children: List[str]
    is_part_of_split: bool
    is_deleted: bool
    conversion_tools: List[str]
    merged_to: Optional[str] = None
    identification_errors: List[str]


class FileListResponse(BaseModel):
    """
    Files of the run in registration order.

    counts holds the registry flag totals for the whole run.
    """

    model_config = ConfigDict(extra="forbid")

    files: List[FileSummary]
    total_count: int
    counts: Dict[str, int]


class ProgressResponse(BaseModel):
    """Scheduler progress."""

    model_config = ConfigDict(extra="forbid")

    running: bool
    paused: bool
    generation: int
    dispatched: int
    completed: int
    in_working_set: int
    percent: float
    started_at: Optional[datetime] = None
    errors_happened: bool


class LogEntryView(BaseModel):
    model_config = ConfigDict(extra="forbid")

    timestamp: str
    type: str
    message: str
    pronom: str
    mime: str
    filename: str


class LogResponse(BaseModel):
    """Most recent run-time log entries, oldest first."""

    model_config = ConfigDict(extra="forbid")

    entries: List[LogEntryView]
    error_happened: bool
