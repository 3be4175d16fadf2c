"""
FileRecord data model.

A FileRecord represents one file under management for the whole run.
Records are never removed: failed, unsupported and merged files stay in the
registry, flagged, for the documentation report.

Derived files (e-mail attachments, split pages, merge outputs) point at the
record they came from by id only. Parent and child lifetimes are independent.
"""

import uuid
from typing import List, Optional
from pydantic import BaseModel, ConfigDict, Field

from ..identification.models import UNKNOWN_FORMAT, IdentifiedFile


class FileRecord(BaseModel):
    """
    One file under management.

    Format fields:
    - original_format: set at identification, never changed afterwards
    - current_format: advanced after every successful hop
    - target_format: resolved once from settings (None = no target configured)
    - new_format: set by the final re-identification
    """

    model_config = ConfigDict(extra="forbid")

    # Identity
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    path: str
    original_path: str = ""

    # Formats
    original_format: str = UNKNOWN_FORMAT
    original_format_name: str = ""
    original_mime: str = ""
    current_format: str = UNKNOWN_FORMAT
    target_format: Optional[str] = None
    new_format: Optional[str] = None
    new_mime: Optional[str] = None

    # Fingerprints (audit only)
    original_checksum: Optional[str] = None
    original_size: int = 0
    new_checksum: Optional[str] = None
    new_size: int = 0

    # Remaining hops towards target_format
    route: List[str] = Field(default_factory=list)

    # Status flags
    modified: bool = False
    failed: bool = False
    added_during_run: bool = False
    should_merge: bool = False
    is_merged: bool = False
    is_part_of_split: bool = False
    is_deleted: bool = False
    not_supported: bool = False
    output_not_set: bool = False
    is_converted: bool = False
    display: bool = True

    # Lineage (non-owning)
    parent_id: Optional[str] = None

    # Documentation
    conversion_tools: List[str] = Field(default_factory=list)
    merged_to: Optional[str] = None
    identification_errors: List[str] = Field(default_factory=list)

    @classmethod
    def from_identified(
        cls,
        identified: IdentifiedFile,
        parent_id: Optional[str] = None,
    ) -> "FileRecord":
        """Create a record from a first identification."""
        return cls(
            path=identified.path,
            original_path=identified.path,
            original_format=identified.format,
            original_format_name=identified.format_name,
            original_mime=identified.mime,
            current_format=identified.format,
            original_checksum=identified.checksum,
            original_size=identified.size,
            parent_id=parent_id,
            identification_errors=list(identified.errors),
        )

    @property
    def in_flight(self) -> bool:
        """True while hops remain and the file has not failed."""
        return bool(self.route) and not self.failed

    def add_conversion_tool(self, name_and_version: str) -> None:
        """Record a tool, skipping consecutive duplicates."""
        if not self.conversion_tools or self.conversion_tools[-1] != name_and_version:
            self.conversion_tools.append(name_and_version)

    def update_from_identified(self, identified: IdentifiedFile) -> None:
        """Apply a re-identification result to the 'new' fields."""
        self.path = identified.path
        self.new_format = identified.format
        self.new_mime = identified.mime
        self.new_checksum = identified.checksum
        self.new_size = identified.size
