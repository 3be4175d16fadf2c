"""
Working-set tasks.

A ConversionTask is the scheduler's in-flight snapshot of one file. The
FileRecord stays the durable record; the task carries what the generation
loop mutates (route, flags) and is mirrored back onto the record.
"""

import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional


class TaskState(str, Enum):
    """
    Per-file scheduling state.

    PENDING_DISPATCH -> DISPATCHED -> COMPLETED_HOP | FAILED_HOP
    COMPLETED_HOP loops back to PENDING_DISPATCH while the route is non-empty.
    """

    PENDING_DISPATCH = "pending_dispatch"
    DISPATCHED = "dispatched"
    COMPLETED_HOP = "completed_hop"
    FAILED_HOP = "failed_hop"
    DONE = "done"
    FAILED = "failed"
    UNSUPPORTED = "unsupported"


@dataclass
class ConversionTask:
    """One file's in-flight conversion state."""

    file_id: str
    path: str
    current_format: str
    target_format: str
    route: List[str] = field(default_factory=list)

    modified: bool = False
    failed: bool = False
    added_during_run: bool = False

    state: TaskState = TaskState.PENDING_DISPATCH
    attempts: int = 0
    last_error: Optional[str] = None

    @property
    def next_format(self) -> Optional[str]:
        return self.route[0] if self.route else None


class WorkingSet:
    """
    Lock-guarded map of file id -> ConversionTask.

    Insert, remove and snapshot are atomic. Tasks themselves are mutated by
    the single worker that owns the file's current hop, and by the
    scheduler thread between generations.
    """

    def __init__(self):
        self._tasks: Dict[str, ConversionTask] = {}
        self._lock = threading.Lock()

    def add(self, task: ConversionTask) -> bool:
        """Insert a task. Returns False if the file is already in flight."""
        with self._lock:
            if task.file_id in self._tasks:
                return False
            self._tasks[task.file_id] = task
            return True

    def remove(self, file_id: str) -> Optional[ConversionTask]:
        with self._lock:
            return self._tasks.pop(file_id, None)

    def get(self, file_id: str) -> Optional[ConversionTask]:
        with self._lock:
            return self._tasks.get(file_id)

    def snapshot(self) -> List[ConversionTask]:
        """Tasks in insertion order at this instant."""
        with self._lock:
            return list(self._tasks.values())

    def __len__(self) -> int:
        with self._lock:
            return len(self._tasks)

    def __contains__(self, file_id: object) -> bool:
        with self._lock:
            return file_id in self._tasks

    @property
    def is_empty(self) -> bool:
        return len(self) == 0
