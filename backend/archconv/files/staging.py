"""
Input staging and import.

The input tree is copied into the output folder and every conversion
works on the copies; the input folder is never modified.
"""

import logging
import shutil
from pathlib import Path
from typing import List

from ..identification.models import UNKNOWN_FORMAT
from ..identification.siegfried import Identifier
from .errors import StagingError
from .models import FileRecord
from .registry import FileRegistry

logger = logging.getLogger(__name__)


def stage_input(input_dir: str, output_dir: str) -> Path:
    """
    Copy input_dir into output_dir (existing folders are merged).

    Raises:
        StagingError: If the input is missing or the copy fails
    """
    source = Path(input_dir)
    target = Path(output_dir)

    if not source.is_dir():
        raise StagingError(str(source), "input folder does not exist")

    try:
        target.mkdir(parents=True, exist_ok=True)
        shutil.copytree(source, target, dirs_exist_ok=True)
    except (OSError, shutil.Error) as e:
        raise StagingError(str(source), str(e)) from e

    logger.info(f"[Staging] Copied {source} -> {target}")
    return target


def list_files(root: str, exclude: tuple = ()) -> List[str]:
    """All regular files under root, sorted, minus excluded file names."""
    return sorted(
        str(p) for p in Path(root).rglob("*")
        if p.is_file() and p.name not in exclude
    )


def import_files(
    root: str,
    identifier: Identifier,
    registry: FileRegistry,
    exclude: tuple = (),
) -> List[FileRecord]:
    """
    Identify every file under root and register a FileRecord for each.

    Returns the new records in path order.
    """
    paths = list_files(root, exclude=exclude)
    if not paths:
        return []

    records = []
    for identified in identifier.identify_files(paths):
        record = FileRecord.from_identified(identified)
        registry.add(record)
        records.append(record)

    unknown = sum(1 for r in records if r.identification_errors or r.original_format == UNKNOWN_FORMAT)
    logger.info(f"[Staging] Registered {len(records)} files ({unknown} unidentified)")
    return records
