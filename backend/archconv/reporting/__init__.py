"""
Run reporting: the run-time log and the documentation report.
"""

from .documentation import DOCUMENTATION_FILENAME, build_documentation, write_documentation
from .errors import ReportingError, ReportWriteError
from .models import (
    ConvertedFileEntry,
    DocumentationMetadata,
    DocumentationReport,
    MergedFileEntry,
    NotSupportedEntry,
    OutputNotSetEntry,
)
from .runlog import RunLog, RunLogEntry

__all__ = [
    "RunLog",
    "RunLogEntry",
    "DOCUMENTATION_FILENAME",
    "build_documentation",
    "write_documentation",
    "DocumentationReport",
    "DocumentationMetadata",
    "ConvertedFileEntry",
    "NotSupportedEntry",
    "OutputNotSetEntry",
    "MergedFileEntry",
    "ReportingError",
    "ReportWriteError",
]
