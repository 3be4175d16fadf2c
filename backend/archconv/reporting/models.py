"""
Documentation report models.

The documentation file is a read-only view of the FileRegistry at the end of
a run. Keys are serialized in PascalCase (by_alias) to keep the published
documentation.json layout stable:

    {
      "Metadata": {"Requester": ..., "Converter": ..., "Hashing": ...},
      "Files": {
        "ConvertedFiles": [...],
        "NotSupported": [...],
        "OutputNotSet": [...],
        "MergedFiles": {"<folder>": {"<merged file>": [...]}}
      }
    }
"""

from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class _DocModel(BaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True)


class DocumentationMetadata(_DocModel):
    requester: str = Field(default="", alias="Requester")
    converter: str = Field(default="", alias="Converter")
    hashing: Optional[str] = Field(default=None, alias="Hashing")


class ConvertedFileEntry(_DocModel):
    """A file that had a target format and was routed for conversion (or was already there)."""

    filename: str = Field(alias="Filename")
    original_filename: str = Field(default="", alias="OriginalFilename")
    original_pronom: str = Field(alias="OriginalPronom")
    original_checksum: Optional[str] = Field(default=None, alias="OriginalChecksum")
    original_size: int = Field(default=0, alias="OriginalSize")
    target_pronom: Optional[str] = Field(default=None, alias="TargetPronom")
    new_pronom: Optional[str] = Field(default=None, alias="NewPronom")
    new_checksum: Optional[str] = Field(default=None, alias="NewChecksum")
    new_size: int = Field(default=0, alias="NewSize")
    converter: List[str] = Field(default_factory=list, alias="Converter")
    is_converted: bool = Field(default=False, alias="IsConverted")


class NotSupportedEntry(_DocModel):
    """A file with a target format that no converter chain could reach."""

    filename: str = Field(alias="Filename")
    original_pronom: str = Field(alias="OriginalPronom")
    original_checksum: Optional[str] = Field(default=None, alias="OriginalChecksum")
    original_size: int = Field(default=0, alias="OriginalSize")
    target_pronom: Optional[str] = Field(default=None, alias="TargetPronom")


class OutputNotSetEntry(_DocModel):
    """A file whose format has no configured target."""

    filename: str = Field(alias="Filename")
    original_pronom: str = Field(alias="OriginalPronom")
    original_checksum: Optional[str] = Field(default=None, alias="OriginalChecksum")
    original_size: int = Field(default=0, alias="OriginalSize")


class MergedFileEntry(_DocModel):
    """A file diverted to the merge pipeline, or a merge output."""

    filename: str = Field(alias="Filename")
    pronom: str = Field(alias="Pronom")
    checksum: Optional[str] = Field(default=None, alias="Checksum")
    size: int = Field(default=0, alias="Size")
    tool: List[str] = Field(default_factory=list, alias="Tool")
    should_merge: bool = Field(default=True, alias="ShouldMerge")
    is_merged: bool = Field(default=False, alias="IsMerged")
    merged_to: str = Field(default="", alias="MergedTo")


class DocumentationFiles(_DocModel):
    converted_files: List[ConvertedFileEntry] = Field(default_factory=list, alias="ConvertedFiles")
    not_supported: List[NotSupportedEntry] = Field(default_factory=list, alias="NotSupported")
    output_not_set: List[OutputNotSetEntry] = Field(default_factory=list, alias="OutputNotSet")
    merged_files: Dict[str, Dict[str, List[MergedFileEntry]]] = Field(
        default_factory=dict, alias="MergedFiles"
    )


class DocumentationReport(_DocModel):
    metadata: DocumentationMetadata = Field(default_factory=DocumentationMetadata, alias="Metadata")
    files: DocumentationFiles = Field(default_factory=DocumentationFiles, alias="Files")
