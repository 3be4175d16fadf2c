"""
Run context.

Everything a converter, the scheduler, the merge pipeline and the
consistency checker share during one run, constructed once by the runner
and passed explicitly.
"""

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Iterable, Optional

from ..files.models import FileRecord
from ..files.registry import FileRegistry
from ..files.targets import TargetResolver
from ..identification.errors import IdentificationError
from ..identification.models import IdentifiedFile
from ..identification.siegfried import Identifier
from ..reporting.runlog import RunLog
from ..settings.models import ConversionSettings
from .resources import IccProfilePool
from .tasks import ConversionTask, WorkingSet

if TYPE_CHECKING:
    from .routes import RouteResolver

logger = logging.getLogger(__name__)


@dataclass
class ConversionContext:
    """Shared collaborators of one conversion run."""

    settings: ConversionSettings
    identifier: Identifier
    registry: FileRegistry
    targets: TargetResolver
    routes: "RouteResolver"
    run_log: RunLog
    icc_pool: IccProfilePool
    output_dir: str
    working_set: Optional[WorkingSet] = None

    def __post_init__(self):
        if self.working_set is None:
            self.working_set = WorkingSet()

    @property
    def timeout_seconds(self) -> float:
        return self.settings.timeout_seconds

    def record(self, task: ConversionTask) -> Optional[FileRecord]:
        return self.registry.get(task.file_id)

    def add_derived_task(
        self,
        path: str,
        parent_id: Optional[str],
        split: bool = False,
        tools: Optional[Iterable[str]] = None,
    ) -> FileRecord:
        """
        Register a file produced mid-run (attachment or split page).

        The new record is identified, given a target and a route, and, when
        the route is non-empty, enters the working set flagged
        added_during_run so it survives the current generation's update.
        """
        try:
            identified = self.identifier.identify_file(path)
        except IdentificationError as e:
            self.run_log.error(f"Could not identify derived file: {e}", filename=path)
            identified = IdentifiedFile(path=path, errors=[str(e)])

        record = FileRecord.from_identified(identified, parent_id=parent_id)
        record.added_during_run = True
        record.is_part_of_split = split
        for tool in tools or ():
            record.add_conversion_tool(tool)
        self.registry.add(record)

        record.target_format = self.targets.resolve(record)
        record.output_not_set = record.target_format is None
        if record.output_not_set:
            self.run_log.info(
                "No target format set for derived file",
                pronom=record.original_format,
                mime=record.original_mime,
                filename=path,
            )
            return record

        route = self.routes.route_for(record.current_format, record.target_format)
        record.route = list(route)
        if route:
            self.working_set.add(ConversionTask(
                file_id=record.id,
                path=record.path,
                current_format=record.current_format,
                target_format=record.target_format,
                route=route,
                added_during_run=True,
            ))
            logger.debug(f"[Context] Derived file {path} queued: {' -> '.join(route)}")
        return record
