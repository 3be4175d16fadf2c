"""
Merge pipeline.

Files in folders whose override sets the merge flag are not converted one
by one: each folder's files are combined into as few PDF documents as the
size limit allows.

Output name: {folder}_{YYYY-MM-DD}_{n}.pdf, written into the folder itself,
n counting from 1.

Runs on its own thread concurrently with the scheduler's generations and is
joined before the consistency check.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from datetime import date
from pathlib import Path
from typing import Dict, List, Optional, Protocol

from ..files.models import FileRecord
from ..identification.errors import IdentificationError
from .base import delete_file
from .context import ConversionContext
from .errors import MergeError

logger = logging.getLogger(__name__)


class Combiner(Protocol):
    """Anything able to combine files into one PDF document."""

    name_and_version: str

    def combine_files(self, paths: List[str], target_format: str, output_path: str) -> None:
        ...


def plan_groups(records: List[FileRecord], max_size: int) -> List[List[FileRecord]]:
    """
    Split records into ordered groups of at most max_size combined bytes.

    A file larger than max_size on its own forms a group by itself.
    """
    groups: List[List[FileRecord]] = []
    current: List[FileRecord] = []
    current_size = 0

    for record in records:
        if current and current_size + record.original_size > max_size:
            groups.append(current)
            current = []
            current_size = 0
        current.append(record)
        current_size += record.original_size

    if current:
        groups.append(current)
    return groups


def merge_output_name(folder: Path, index: int, day: Optional[date] = None) -> str:
    base = folder.name or "combined"
    return f"{base}_{(day or date.today()).isoformat()}_{index}.pdf"


class MergePipeline:
    """Combines merge candidates per folder and registers the results."""

    def __init__(self, context: ConversionContext, combiner: Optional[Combiner]):
        self.context = context
        self.combiner = combiner
        self.outputs: List[FileRecord] = []

    def run(self, merge_groups: Dict[str, List[FileRecord]]) -> List[FileRecord]:
        """Merge every folder; returns the registered output records."""
        if not merge_groups:
            return []

        if self.combiner is None:
            for folder, records in merge_groups.items():
                self.context.run_log.error(
                    f"No PDF library available to merge {len(records)} file(s)",
                    filename=folder or ".",
                )
            return []

        workers = min(self.context.settings.worker_count, len(merge_groups))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="merge") as executor:
            results = list(executor.map(self._merge_folder, merge_groups.items()))

        self.outputs = [record for folder_outputs in results for record in folder_outputs]
        logger.info(f"[Merge] {len(self.outputs)} merged document(s) from {len(merge_groups)} folder(s)")
        return list(self.outputs)

    def _merge_folder(self, item) -> List[FileRecord]:
        folder, records = item
        records = sorted(records, key=lambda r: r.path)
        groups = plan_groups(records, self.context.settings.max_merge_size_bytes)

        outputs = []
        for index, group in enumerate(groups, start=1):
            try:
                output = self.merge_group(group, index)
            except MergeError as e:
                self.context.run_log.error(str(e), pronom=group[0].target_format, filename=folder or ".")
                continue
            if output is not None:
                outputs.append(output)
        return outputs

    def merge_group(self, group: List[FileRecord], index: int) -> Optional[FileRecord]:
        """
        Combine one group into one document.

        Raises:
            MergeError: If the combiner fails
        """
        directory = Path(group[0].path).parent
        target = group[0].target_format
        output_path = directory / merge_output_name(directory, index)
        paths = [r.path for r in group if Path(r.path).is_file()]
        missing = len(group) - len(paths)
        if missing:
            self.context.run_log.error(f"{missing} file(s) to merge not found", filename=str(directory))
        if not paths:
            return None

        try:
            self.combiner.combine_files(paths, target, str(output_path))
        except Exception as e:
            raise MergeError(str(directory), str(e)) from e

        tool = self.combiner.name_and_version
        for record in group:
            if record.path not in paths:
                continue
            delete_file(record.path, self.context)
            record.is_merged = True
            record.merged_to = output_path.name
            record.add_conversion_tool(tool)

        try:
            identified = self.context.identifier.identify_file(str(output_path), hash=False)
        except IdentificationError as e:
            self.context.run_log.error(f"Merged file could not be identified: {e}", filename=str(output_path))
            return None

        output = FileRecord.from_identified(identified)
        output.should_merge = True
        output.is_merged = identified.format == target
        output.target_format = target
        output.merged_to = output_path.name
        output.add_conversion_tool(tool)
        self.context.registry.add(output)

        logger.info(f"[Merge] {len(paths)} file(s) -> {output_path}")
        return output
