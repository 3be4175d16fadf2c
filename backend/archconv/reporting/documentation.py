"""
Documentation report builder and writer.

Every non-deleted record lands in exactly one section:
- MergedFiles: diverted to (or produced by) the merge pipeline
- NotSupported: had a target, but no converter chain could reach it
- OutputNotSet: no target configured for its format
- ConvertedFiles: everything else, converted first
"""

import json
import logging
from pathlib import Path
from typing import Iterable

from ..files.models import FileRecord
from ..settings.models import ConversionSettings
from .errors import ReportWriteError
from .models import (
    ConvertedFileEntry,
    DocumentationFiles,
    DocumentationMetadata,
    DocumentationReport,
    MergedFileEntry,
    NotSupportedEntry,
    OutputNotSetEntry,
)

logger = logging.getLogger(__name__)

DOCUMENTATION_FILENAME = "documentation.json"


def build_documentation(
    records: Iterable[FileRecord],
    settings: ConversionSettings,
) -> DocumentationReport:
    """Build the documentation report from final record state."""
    files = DocumentationFiles()

    for record in records:
        if record.is_deleted:
            continue

        if record.should_merge:
            entry = MergedFileEntry(
                filename=record.path,
                pronom=record.original_format,
                checksum=record.original_checksum,
                size=record.original_size,
                tool=list(record.conversion_tools),
                should_merge=record.should_merge,
                is_merged=record.is_merged,
                merged_to=record.merged_to or "",
            )
            folder = str(Path(record.path).parent)
            files.merged_files.setdefault(folder, {}).setdefault(entry.merged_to, []).append(entry)

        elif record.not_supported:
            files.not_supported.append(NotSupportedEntry(
                filename=record.path,
                original_pronom=record.original_format,
                original_checksum=record.original_checksum,
                original_size=record.original_size,
                target_pronom=record.target_format,
            ))

        elif record.output_not_set:
            files.output_not_set.append(OutputNotSetEntry(
                filename=record.path,
                original_pronom=record.original_format,
                original_checksum=record.original_checksum,
                original_size=record.original_size,
            ))

        else:
            files.converted_files.append(ConvertedFileEntry(
                filename=record.path,
                original_filename=record.original_path,
                original_pronom=record.original_format,
                original_checksum=record.original_checksum,
                original_size=record.original_size,
                target_pronom=record.target_format,
                new_pronom=record.new_format,
                new_checksum=record.new_checksum,
                new_size=record.new_size,
                converter=list(record.conversion_tools),
                is_converted=record.is_converted,
            ))

    # Stable sort: converted first, registry order within each half
    files.converted_files.sort(key=lambda e: not e.is_converted)

    return DocumentationReport(
        metadata=DocumentationMetadata(
            requester=settings.requester,
            converter=settings.converter,
            hashing=settings.checksum_hashing.value,
        ),
        files=files,
    )


def write_documentation(report: DocumentationReport, output_dir: str) -> Path:
    """
    Write documentation.json into output_dir.

    Returns path to the written file.
    Raises ReportWriteError if the write fails.
    """
    filepath = Path(output_dir) / DOCUMENTATION_FILENAME
    try:
        with open(filepath, "w", encoding="utf-8") as f:
            json.dump(report.model_dump(mode="json", by_alias=True), f, indent=2)
    except (OSError, TypeError, ValueError) as e:
        raise ReportWriteError(f"Failed to write documentation: {e}") from e

    logger.info(f"[Report] Documentation written to {filepath}")
    return filepath
