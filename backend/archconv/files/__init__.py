"""
File bookkeeping: records, registry, targets, naming and staging.
"""

from .errors import (
    DuplicateFileError,
    FileNotRegisteredError,
    FileRegistryError,
    RenameError,
    StagingError,
)
from .models import FileRecord
from .naming import find_conflicts, resolve_naming_conflicts
from .registry import FileRegistry
from .staging import import_files, list_files, stage_input
from .targets import TargetResolver

__all__ = [
    "FileRecord",
    "FileRegistry",
    "TargetResolver",
    "find_conflicts",
    "resolve_naming_conflicts",
    "import_files",
    "list_files",
    "stage_input",
    "FileRegistryError",
    "FileNotRegisteredError",
    "DuplicateFileError",
    "StagingError",
    "RenameError",
]
