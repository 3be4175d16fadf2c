"""
Final consistency check.

Independent re-identification of every surviving file after the run. The
scheduler's own view of a file is never trusted for the final verdict:
is_converted holds only when the file on disk identifies as its target.
"""

import logging
from typing import List

from ..files.models import FileRecord
from ..identification.errors import IdentificationError
from .context import ConversionContext

logger = logging.getLogger(__name__)


class ConsistencyChecker:
    """Re-identifies files and sets their final conversion verdict."""

    def __init__(self, context: ConversionContext):
        self.context = context

    def finalize(self, records: List[FileRecord]) -> int:
        """
        Batch re-identify records (merge candidates and deleted files skipped).

        Returns the number of records that reached their target.
        """
        candidates = [r for r in records if not r.should_merge and not r.is_deleted]
        if not candidates:
            return 0

        try:
            results = self.context.identifier.identify_files([r.path for r in candidates])
        except IdentificationError as e:
            self.context.run_log.error(f"Could not re-identify files: {e}")
            return 0

        converted = 0
        for record, identified in zip(candidates, results):
            record.update_from_identified(identified)
            record.is_converted = record.new_format == record.target_format
            if record.is_converted:
                converted += 1

        logger.info(f"[Consistency] {converted}/{len(candidates)} files in their target format")
        return converted
