"""
Target format resolution.

Precedence, highest first:
1. Split pages inherit their parent's resolution
2. Folder override for the file's folder (or the nearest overridden ancestor)
   listing the file's original format
3. Global per-format setting (do-not-convert maps a format to itself)
4. Nothing: the file has no target and is reported as OutputNotSet
"""

import logging
from pathlib import Path, PurePosixPath
from typing import Dict, List, Optional

from ..settings.models import ConversionSettings, FolderOverride
from .models import FileRecord
from .registry import FileRegistry

logger = logging.getLogger(__name__)


class TargetResolver:
    """Resolves target formats and merge diversion for records."""

    def __init__(
        self,
        settings: ConversionSettings,
        registry: FileRegistry,
        output_root: str,
    ):
        self.settings = settings
        self.registry = registry
        self.output_root = Path(output_root)
        self._format_targets: Dict[str, str] = settings.format_targets()
        # Deepest folders first so the nearest override wins
        self._overrides: List[FolderOverride] = sorted(
            (o for o in settings.folder_overrides if o.folder_path),
            key=lambda o: len(PurePosixPath(o.folder_path).parts),
            reverse=True,
        )

    def relative_folder(self, path: str) -> str:
        """Folder of path relative to the output root, '/'-separated ('' for the root)."""
        parent = Path(path).parent
        try:
            relative = parent.relative_to(self.output_root)
        except ValueError:
            try:
                relative = parent.resolve().relative_to(self.output_root.resolve())
            except ValueError:
                return ""
        folder = relative.as_posix()
        return "" if folder == "." else folder

    def folder_override(self, record: FileRecord) -> Optional[FolderOverride]:
        """Nearest folder override that lists the record's original format."""
        folder = self.relative_folder(record.path)
        if not folder:
            return None
        for override in self._overrides:
            prefix = override.folder_path
            if folder != prefix and not folder.startswith(prefix + "/"):
                continue
            if record.original_format in override.pronoms:
                return override
        return None

    def merge_override(self, record: FileRecord) -> Optional[FolderOverride]:
        """Override diverting the record to the merge pipeline, if any."""
        override = self.folder_override(record)
        if override is not None and override.merge:
            return override
        return None

    def resolve(self, record: FileRecord) -> Optional[str]:
        """Target format for record, or None when nothing is configured."""
        if record.is_part_of_split and record.parent_id:
            parent = self.registry.get(record.parent_id)
            if parent is not None and parent.id != record.id:
                return self.resolve(parent)

        override = self.folder_override(record)
        if override is not None:
            return override.convert_to

        return self._format_targets.get(record.original_format)

    def apply(self, records: List[FileRecord]) -> None:
        """Set target_format and output_not_set on every record."""
        unset = 0
        for record in records:
            record.target_format = self.resolve(record)
            record.output_not_set = record.target_format is None
            if record.output_not_set:
                unset += 1
        if unset:
            logger.info(f"[Targets] {unset} of {len(records)} files have no target format")
