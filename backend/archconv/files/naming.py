"""
File name conflict resolution.

Two files in the same folder with the same stem (report.doc, report.docx)
would both become report.pdf. Conflicts are resolved before conversion:

1. Append the original extension:   report.doc  -> report_DOC.doc
2. Still clashing? Append an index: report_DOC.doc -> report_DOC_0.doc

A rename never lands on an existing file: the index is raised until the
name is free. A file that cannot be moved keeps its name and is reported.
"""

import logging
from collections import defaultdict
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from .errors import RenameError
from .models import FileRecord

logger = logging.getLogger(__name__)


def _group_by_folder(records: Iterable[FileRecord]) -> Dict[str, List[FileRecord]]:
    groups: Dict[str, List[FileRecord]] = defaultdict(list)
    for record in records:
        groups[str(Path(record.path).parent)].append(record)
    return groups


def find_conflicts(records: Iterable[FileRecord]) -> Dict[str, List[FileRecord]]:
    """Per folder, the records whose stem is shared with another record."""
    conflicts: Dict[str, List[FileRecord]] = {}
    for folder, group in _group_by_folder(records).items():
        stems: Dict[str, int] = defaultdict(int)
        for record in group:
            stems[Path(record.path).stem] += 1
        clashing = [r for r in group if stems[Path(r.path).stem] > 1]
        if clashing:
            conflicts[folder] = clashing
    return conflicts


def _indexed(path: Path, stem: str, index: int) -> Path:
    return path.with_name(f"{stem}_{index}{path.suffix}")


def free_name(path: Path, stem: str, index: int = 0) -> Tuple[Path, int]:
    """First of stem_<index>, stem_<index+1>, ... not present in path's folder, and its index."""
    candidate = _indexed(path, stem, index)
    while candidate.exists():
        index += 1
        candidate = _indexed(path, stem, index)
    return candidate, index


def _rename(record: FileRecord, new_path: Path) -> None:
    old_path = Path(record.path)
    if new_path.exists():
        raise RenameError(str(old_path), str(new_path), "target exists")
    try:
        old_path.rename(new_path)
    except OSError as e:
        raise RenameError(str(old_path), str(new_path), str(e)) from e
    logger.debug(f"[Naming] {old_path.name} -> {new_path.name}")
    record.path = str(new_path)


def resolve_naming_conflicts(
    records: List[FileRecord],
    on_error: Optional[Callable[[FileRecord, RenameError], None]] = None,
) -> int:
    """
    Rename files on disk so no two files in a folder share a stem.

    Failed renames are logged and passed to on_error; the file keeps its
    current name and the remaining files are still processed.

    Returns the number of renames performed.
    """
    renamed = 0
    live = [r for r in records if not r.is_deleted]

    def move(record: FileRecord, new_path: Path) -> None:
        nonlocal renamed
        try:
            _rename(record, new_path)
        except RenameError as e:
            logger.warning(f"[Naming] {e}")
            if on_error is not None:
                on_error(record, e)
            return
        renamed += 1

    conflicts = find_conflicts(live)
    if not conflicts:
        return 0

    for group in conflicts.values():
        for record in group:
            path = Path(record.path)
            if not path.suffix:
                logger.warning(f"[Naming] Cannot rename {path}: no extension")
                continue
            stem = f"{path.stem}_{path.suffix.lstrip('.').upper()}"
            target = path.with_name(f"{stem}{path.suffix}")
            if target.exists():
                target, _ = free_name(path, stem)
            move(record, target)

    for group in find_conflicts(live).values():
        index = 0
        for record in group:
            path = Path(record.path)
            target, index = free_name(path, path.stem, index)
            index += 1
            move(record, target)

    if renamed:
        logger.info(f"[Naming] Resolved name conflicts with {renamed} rename(s)")
    return renamed
