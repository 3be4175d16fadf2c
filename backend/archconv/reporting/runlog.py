"""
Run-time log.

Append-only, line-oriented record of every notable event of a run:

    Error: | Could not identify files | N/A | N/A | N/A
    Message: | Starting generation 2 | N/A | N/A | N/A

Columns: type, message, format code, MIME type, file name.

Design principles:
- Lines are only ever appended
- Any error entry sets error_happened for the final console verdict
- Recent entries are kept in memory for the monitoring API
- Entries are also forwarded to the module logger
"""

import logging
import threading
from collections import deque
from datetime import datetime
from pathlib import Path
from typing import Deque, List, Optional

from pydantic import BaseModel, ConfigDict

logger = logging.getLogger(__name__)

# Maximum entries kept in memory
MAX_RECENT_ENTRIES = 500

NOT_AVAILABLE = "N/A"
LINE_FORMAT = "%(entry_type)s | %(message)s | %(pronom)s | %(mime)s | %(file_name)s"


class RunLogEntry(BaseModel):
    """One run-time log line."""

    model_config = ConfigDict(extra="forbid")

    timestamp: str
    error: bool
    message: str
    pronom: str = NOT_AVAILABLE
    mime: str = NOT_AVAILABLE
    filename: str = NOT_AVAILABLE

    @property
    def entry_type(self) -> str:
        return "Error:" if self.error else "Message:"


class RunLog:
    """
    Thread-safe run-time log.

    Writes through a dedicated logging.Logger with its own FileHandler so
    the line layout is independent of the application's logging setup.
    Without a path, entries are only kept in memory and forwarded.
    """

    def __init__(self, path: Optional[str] = None, max_entries: int = MAX_RECENT_ENTRIES):
        self.path = Path(path) if path else None
        self._entries: Deque[RunLogEntry] = deque(maxlen=max_entries)
        self._lock = threading.Lock()
        self._error_happened = False
        self._handler: Optional[logging.Handler] = None

        # One file logger per log file
        self._file_logger = logging.getLogger(f"{__name__}.file.{id(self)}")
        self._file_logger.setLevel(logging.INFO)
        self._file_logger.propagate = False

        if self.path is not None:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self._handler = logging.FileHandler(self.path, mode="a", encoding="utf-8")
            self._handler.setFormatter(logging.Formatter(LINE_FORMAT))
            self._file_logger.addHandler(self._handler)

    @property
    def error_happened(self) -> bool:
        with self._lock:
            return self._error_happened

    def log(
        self,
        message: str,
        error: bool = False,
        pronom: Optional[str] = None,
        mime: Optional[str] = None,
        filename: Optional[str] = None,
    ) -> RunLogEntry:
        """Append one entry."""
        entry = RunLogEntry(
            timestamp=datetime.now().isoformat(),
            error=error,
            message=message,
            pronom=pronom or NOT_AVAILABLE,
            mime=mime or NOT_AVAILABLE,
            filename=filename or NOT_AVAILABLE,
        )

        with self._lock:
            if error:
                self._error_happened = True
            self._entries.append(entry)

        level = logging.ERROR if error else logging.INFO
        self._file_logger.log(
            level,
            message,
            extra={
                "entry_type": entry.entry_type,
                "pronom": entry.pronom,
                "mime": entry.mime,
                "file_name": entry.filename,
            },
        )
        logger.log(
            logging.WARNING if error else logging.DEBUG,
            f"[RunLog] {message}" + (f" ({entry.filename})" if filename else ""),
        )
        return entry

    def error(self, message: str, **context) -> RunLogEntry:
        return self.log(message, error=True, **context)

    def info(self, message: str, **context) -> RunLogEntry:
        return self.log(message, error=False, **context)

    def recent(self, limit: Optional[int] = None, errors_only: bool = False) -> List[RunLogEntry]:
        """Most recent entries, oldest first."""
        with self._lock:
            entries = list(self._entries)
        if errors_only:
            entries = [e for e in entries if e.error]
        if limit is not None:
            entries = entries[-limit:] if limit > 0 else []
        return entries

    def close(self) -> None:
        if self._handler is not None:
            self._file_logger.removeHandler(self._handler)
            self._handler.close()
            self._handler = None
