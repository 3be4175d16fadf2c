"""
In-memory file registry.

The authoritative table of every file under management for one run.

The registry provides:
- Record storage and retrieval by id
- Insertion-ordered listing
- Thread-safe registration of derived files while conversions run

Records are never removed.
"""

import threading
from typing import Dict, Iterable, Iterator, List, Optional

from .errors import DuplicateFileError, FileNotRegisteredError
from .models import FileRecord


class FileRegistry:
    """
    Thread-safe registry of FileRecords.

    Membership changes take the registry lock. Field updates on a record are
    made by whichever worker currently owns that file's hop.
    """

    def __init__(self, records: Optional[Iterable[FileRecord]] = None):
        # file_id -> FileRecord (insertion ordered)
        self._records: Dict[str, FileRecord] = {}
        self._lock = threading.Lock()
        if records:
            self.add_many(records)

    def add(self, record: FileRecord) -> FileRecord:
        """
        Register a record.

        Raises:
            DuplicateFileError: If a record with the same id exists
        """
        with self._lock:
            if record.id in self._records:
                raise DuplicateFileError(record.id, record.path)
            self._records[record.id] = record
        return record

    def add_many(self, records: Iterable[FileRecord]) -> None:
        for record in records:
            self.add(record)

    def get(self, file_id: str) -> Optional[FileRecord]:
        with self._lock:
            return self._records.get(file_id)

    def get_or_raise(self, file_id: str) -> FileRecord:
        """
        Retrieve a record by id.

        Raises:
            FileNotRegisteredError: If the id is unknown
        """
        record = self.get(file_id)
        if record is None:
            raise FileNotRegisteredError(file_id)
        return record

    def find_by_path(self, path: str) -> Optional[FileRecord]:
        """Return the first record currently located at path."""
        with self._lock:
            for record in self._records.values():
                if record.path == path:
                    return record
        return None

    def children_of(self, parent_id: str) -> List[FileRecord]:
        """Records derived from parent_id (attachments, split pages, merge inputs)."""
        with self._lock:
            return [r for r in self._records.values() if r.parent_id == parent_id]

    def list_records(self) -> List[FileRecord]:
        """Snapshot of all records in registration order."""
        with self._lock:
            return list(self._records.values())

    def __iter__(self) -> Iterator[FileRecord]:
        return iter(self.list_records())

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    def __contains__(self, file_id: object) -> bool:
        with self._lock:
            return file_id in self._records

    def counts(self) -> Dict[str, int]:
        """Flag totals, used for console summaries and the monitoring API."""
        records = self.list_records()
        return {
            "total": len(records),
            "converted": sum(1 for r in records if r.is_converted),
            "failed": sum(1 for r in records if r.failed),
            "not_supported": sum(1 for r in records if r.not_supported),
            "output_not_set": sum(1 for r in records if r.output_not_set),
            "should_merge": sum(1 for r in records if r.should_merge),
            "merged": sum(1 for r in records if r.is_merged),
            "derived": sum(1 for r in records if r.parent_id is not None),
        }
