"""
Identification data models.

Two layers:
- Siegfried* models mirror the JSON emitted by `sf -json` (extra keys ignored,
  sf adds fields between releases).
- IdentifiedFile is the flattened, tool-neutral result the rest of the
  system consumes.
"""

from enum import Enum
from typing import List, Optional
from pydantic import BaseModel, ConfigDict, Field


# Siegfried's id for files it could not classify
UNKNOWN_FORMAT = "UNKNOWN"


class HashAlgorithm(str, Enum):
    """Checksum algorithms sf can compute."""

    MD5 = "md5"
    SHA256 = "sha256"


class SiegfriedMatch(BaseModel):
    """One identification match for a file."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    ns: str = ""
    id: str = UNKNOWN_FORMAT
    format: str = ""
    version: str = ""
    mime: str = ""
    format_class: str = Field(default="", alias="class")
    basis: str = ""
    warning: str = ""


class SiegfriedFile(BaseModel):
    """One file entry in sf output."""

    model_config = ConfigDict(extra="ignore")

    filename: str
    filesize: int = 0
    modified: str = ""
    errors: str = ""
    md5: Optional[str] = None
    sha256: Optional[str] = None
    matches: List[SiegfriedMatch] = Field(default_factory=list)

    @property
    def checksum(self) -> Optional[str]:
        return self.sha256 or self.md5


class SiegfriedOutput(BaseModel):
    """Top-level sf JSON document."""

    model_config = ConfigDict(extra="ignore")

    siegfried: str = ""
    scandate: str = ""
    signature: str = ""
    files: List[SiegfriedFile] = Field(default_factory=list)


class IdentifiedFile(BaseModel):
    """
    Result of identifying a single file.

    `format` is the first match's PRONOM id, or UNKNOWN_FORMAT when the
    identifier produced no usable match.
    """

    model_config = ConfigDict(extra="forbid")

    path: str
    format: str = UNKNOWN_FORMAT
    format_name: str = ""
    mime: str = ""
    size: int = 0
    modified: str = ""
    checksum: Optional[str] = None
    errors: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)

    @property
    def is_identified(self) -> bool:
        return bool(self.format) and self.format != UNKNOWN_FORMAT

    @classmethod
    def from_siegfried(cls, entry: SiegfriedFile) -> "IdentifiedFile":
        """Flatten an sf file entry, taking the first match as authoritative."""
        match = entry.matches[0] if entry.matches else None
        errors = [entry.errors] if entry.errors else []
        warnings = [m.warning for m in entry.matches if m.warning]
        return cls(
            path=entry.filename,
            format=match.id if match and match.id else UNKNOWN_FORMAT,
            format_name=match.format if match else "",
            mime=match.mime if match else "",
            size=entry.filesize,
            modified=entry.modified,
            checksum=entry.checksum,
            errors=errors,
            warnings=warnings,
        )
