"""
Conversion settings models.

Settings define WHAT each file should become:
- Global run settings (threads, timeout, merge size, checksum algorithm)
- Per-format targets, grouped into file classes (Word, Excel, Images, ...)
- Folder overrides that replace the global target for matching files,
  optionally diverting them to the merge pipeline

Settings are read once before the run and never mutated by the engine.
"""

import os
from typing import Dict, List, Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..identification.models import HashAlgorithm


DEFAULT_TIMEOUT_MINUTES = 20
DEFAULT_MAX_MERGE_SIZE_MB = 1024


def default_max_threads() -> int:
    """Two workers per logical CPU."""
    return 2 * (os.cpu_count() or 1)


class FileTypeSetting(BaseModel):
    """
    Target for one concrete file type inside a class.

    `default` overrides the class default for these formats.
    `do_not_convert` keeps the formats as they are.
    """

    model_config = ConfigDict(extra="forbid")

    filename: str = ""
    pronoms: List[str] = Field(default_factory=list)
    default: Optional[str] = None
    do_not_convert: bool = False


class FileClass(BaseModel):
    """A family of formats sharing a default target (e.g. all Word formats)."""

    model_config = ConfigDict(extra="forbid")

    class_name: str
    default: Optional[str] = None
    file_types: List[FileTypeSetting] = Field(default_factory=list)


class FolderOverride(BaseModel):
    """
    Folder-scoped target override.

    folder_path is relative to the output folder and applies to its
    subfolders as well. With `merge` set, matching files are combined into
    one document per folder instead of being converted one by one.
    """

    model_config = ConfigDict(extra="forbid")

    folder_path: str
    pronoms: List[str] = Field(default_factory=list)
    convert_to: str
    merge: bool = False

    @field_validator("folder_path")
    @classmethod
    def _normalize_folder(cls, value: str) -> str:
        return value.replace("\\", "/").strip("/")


class ConversionSettings(BaseModel):
    """Complete settings for one conversion run."""

    model_config = ConfigDict(extra="forbid")

    # Documentation metadata
    requester: str = ""
    converter: str = ""

    # Folders
    input_folder: str = "input"
    output_folder: str = "output"

    # Execution bounds (0 threads means "use the default")
    max_threads: int = Field(default=0, ge=0)
    timeout_minutes: float = Field(default=DEFAULT_TIMEOUT_MINUTES, gt=0)
    max_merge_size_mb: float = Field(default=DEFAULT_MAX_MERGE_SIZE_MB, gt=0)
    checksum_hashing: HashAlgorithm = HashAlgorithm.SHA256

    # Targets
    file_classes: List[FileClass] = Field(default_factory=list)
    folder_overrides: List[FolderOverride] = Field(default_factory=list)

    @property
    def worker_count(self) -> int:
        return self.max_threads or default_max_threads()

    @property
    def timeout_seconds(self) -> float:
        return self.timeout_minutes * 60

    @property
    def max_merge_size_bytes(self) -> int:
        return int(self.max_merge_size_mb * 1024 * 1024)

    def format_targets(self) -> Dict[str, str]:
        """
        Flatten file classes into a source-format -> target-format map.

        Precedence: do_not_convert, then the file type default, then the
        class default. Formats with no resolvable target are left out.
        """
        targets: Dict[str, str] = {}
        for file_class in self.file_classes:
            for file_type in file_class.file_types:
                for pronom in file_type.pronoms:
                    if file_type.do_not_convert:
                        targets[pronom] = pronom
                    elif file_type.default:
                        targets[pronom] = file_type.default
                    elif file_class.default:
                        targets[pronom] = file_class.default
        return targets
