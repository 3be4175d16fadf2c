"""
Query layer for read-only run state access.

Wraps the runner's registries and run-time log. All operations are
strictly read-only.
"""

import logging
from typing import Optional

from ..execution.runner import ConversionRunner
from ..files.models import FileRecord
from .errors import FileNotFoundInRunError
from .models import (
    ConverterInfo,
    ConverterListResponse,
    FileDetail,
    FileListResponse,
    FileSummary,
    LogEntryView,
    LogResponse,
    ProgressResponse,
)

logger = logging.getLogger(__name__)


def get_converters(runner: ConversionRunner) -> ConverterListResponse:
    converters = [ConverterInfo(**info) for info in runner.converters.list_converters()]
    return ConverterListResponse(converters=converters, total_count=len(converters))


def _summary_fields(record: FileRecord) -> dict:
    return {
        "id": record.id,
        "path": record.path,
        "original_format": record.original_format,
        "current_format": record.current_format,
        "target_format": record.target_format,
        "route": list(record.route),
        "failed": record.failed,
        "not_supported": record.not_supported,
        "output_not_set": record.output_not_set,
        "is_converted": record.is_converted,
        "should_merge": record.should_merge,
        "is_merged": record.is_merged,
        "added_during_run": record.added_during_run,
    }


def get_file_summaries(
    runner: ConversionRunner,
    failed_only: bool = False,
    include_hidden: bool = False,
) -> FileListResponse:
    """
    List files in registration order.

    Hidden records (split sources) are left out unless include_hidden.
    """
    records = runner.registry.list_records()
    if not include_hidden:
        records = [r for r in records if r.display]
    if failed_only:
        records = [r for r in records if r.failed]
    files = [FileSummary(**_summary_fields(r)) for r in records]
    return FileListResponse(files=files, total_count=len(files), counts=runner.registry.counts())


def get_file_detail(runner: ConversionRunner, file_id: str) -> FileDetail:
    """
    Raises:
        FileNotFoundInRunError: If the id is not registered
    """
    record = runner.registry.get(file_id)
    if record is None:
        raise FileNotFoundInRunError(file_id)

    return FileDetail(
        **_summary_fields(record),
        original_path=record.original_path,
        original_format_name=record.original_format_name,
        original_mime=record.original_mime,
        new_format=record.new_format,
        new_mime=record.new_mime,
        original_checksum=record.original_checksum,
        new_checksum=record.new_checksum,
        original_size=record.original_size,
        new_size=record.new_size,
        parent_id=record.parent_id,
        children=[c.id for c in runner.registry.children_of(record.id)],
        is_part_of_split=record.is_part_of_split,
        is_deleted=record.is_deleted,
        conversion_tools=list(record.conversion_tools),
        merged_to=record.merged_to,
        identification_errors=list(record.identification_errors),
    )


def get_progress(runner: ConversionRunner) -> ProgressResponse:
    progress = runner.scheduler.progress()
    return ProgressResponse(
        running=progress.running,
        paused=progress.paused,
        generation=progress.generation,
        dispatched=progress.dispatched,
        completed=progress.completed,
        in_working_set=progress.in_working_set,
        percent=progress.percent,
        started_at=progress.started_at,
        errors_happened=runner.run_log.error_happened,
    )


def get_log(runner: ConversionRunner, limit: Optional[int] = 100, errors_only: bool = False) -> LogResponse:
    entries = [
        LogEntryView(
            timestamp=e.timestamp,
            type=e.entry_type,
            message=e.message,
            pronom=e.pronom,
            mime=e.mime,
            filename=e.filename,
        )
        for e in runner.run_log.recent(limit=limit, errors_only=errors_only)
    ]
    return LogResponse(entries=entries, error_happened=runner.run_log.error_happened)
