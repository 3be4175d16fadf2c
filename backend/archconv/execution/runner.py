"""
Staged conversion run.

One run, start to finish:
1. Pre-flight: at least one converter must be available
2. Staging: copy the input tree into the output folder
3. Import: identify every staged file and register it
4. Naming: resolve file name conflicts
5. Targets: resolve each file's target format
6. Routes: build and validate the route table
7. Conversion: scheduler generations, merge pipeline concurrently
8. Consistency: re-identify everything that survived
9. Documentation: write documentation.json

Only stages 1-3 can abort a run. Everything after works per file.
"""

import logging
import threading
from datetime import datetime
from typing import Iterable, Optional

from ..files.naming import resolve_naming_conflicts
from ..files.registry import FileRegistry
from ..files.staging import import_files, stage_input
from ..files.targets import TargetResolver
from ..identification.siegfried import Identifier
from ..reporting.documentation import DOCUMENTATION_FILENAME, build_documentation, write_documentation
from ..reporting.errors import ReportWriteError
from ..reporting.runlog import RunLog
from ..settings.models import ConversionSettings
from .consistency import ConsistencyChecker
from .context import ConversionContext
from .converter_registry import ConverterRegistry, build_default_registry
from .errors import NoConvertersAvailableError, NoInputFilesError
from .merge import MergePipeline
from .resources import IccProfilePool
from .results import RunSummary
from .routes import DEFAULT_CHAINS, ChainRule, RouteResolver
from .scheduler import ConversionScheduler

logger = logging.getLogger(__name__)


class ConversionRunner:
    """
    Owns every collaborator of one run.

    Construction is cheap and touches nothing on disk, so the monitoring
    API can be attached (to context, converters, scheduler) before run().
    """

    def __init__(
        self,
        settings: ConversionSettings,
        identifier: Identifier,
        converters: Optional[ConverterRegistry] = None,
        run_log: Optional[RunLog] = None,
        icc_pool: Optional[IccProfilePool] = None,
        chains: Iterable[ChainRule] = DEFAULT_CHAINS,
        show_progress: bool = True,
    ):
        self.settings = settings
        self.icc_pool = icc_pool or IccProfilePool(size=settings.worker_count)
        self.converters = converters if converters is not None else build_default_registry(self.icc_pool)
        self.run_log = run_log or RunLog()
        self.registry = FileRegistry()

        self.context = ConversionContext(
            settings=settings,
            identifier=identifier,
            registry=self.registry,
            targets=TargetResolver(settings, self.registry, settings.output_folder),
            routes=RouteResolver(self.converters, chains),
            run_log=self.run_log,
            icc_pool=self.icc_pool,
            output_dir=settings.output_folder,
        )
        self.scheduler = ConversionScheduler(self.context, self.converters, show_progress=show_progress)
        self.merge_pipeline = MergePipeline(self.context, self._find_combiner())
        self.checker = ConsistencyChecker(self.context)
        self.summary = RunSummary(
            converters=[c.name_and_version for c in self.converters],
            run_log_path=str(self.run_log.path) if self.run_log.path else None,
        )

    def _find_combiner(self):
        for converter in self.converters:
            if callable(getattr(converter, "combine_files", None)):
                return converter
        return None

    def run(self) -> RunSummary:
        """
        Execute the whole run.

        Raises:
            NoConvertersAvailableError: If no converter can run on this host
            NoInputFilesError: If the staged input holds no files
            StagingError: If the input cannot be copied
        """
        summary = self.summary
        summary.started_at = datetime.now()
        settings = self.settings

        if not self.converters:
            raise NoConvertersAvailableError()

        self.run_log.info(f"Converters: {', '.join(summary.converters)}")
        stage_input(settings.input_folder, settings.output_folder)

        records = import_files(
            settings.output_folder,
            self.context.identifier,
            self.registry,
            exclude=(DOCUMENTATION_FILENAME,),
        )
        if not records:
            raise NoInputFilesError(settings.input_folder)
        self.run_log.info(f"Identified {len(records)} file(s)")

        resolve_naming_conflicts(
            records,
            on_error=lambda record, e: self.run_log.error(
                str(e), pronom=record.original_format, filename=record.path,
            ),
        )
        self.context.targets.apply(records)
        for record in records:
            if record.output_not_set:
                self.run_log.info(
                    "No target format set",
                    pronom=record.original_format,
                    mime=record.original_mime,
                    filename=record.path,
                )

        self.context.routes.build_routes(records)
        merge_groups = self.scheduler.setup_working_set()

        merge_thread = threading.Thread(
            target=self._run_merge,
            args=(merge_groups,),
            name="merge-pipeline",
            daemon=True,
        )
        merge_thread.start()
        summary.generations = self.scheduler.run()
        merge_thread.join()

        self.checker.finalize(self.registry.list_records())

        report = build_documentation(self.registry.list_records(), settings)
        try:
            summary.documentation_path = str(write_documentation(report, settings.output_folder))
        except ReportWriteError as e:
            self.run_log.error(str(e))

        summary.counts = self.registry.counts()
        summary.completed_at = datetime.now()
        summary.errors_happened = self.run_log.error_happened
        self.run_log.info(summary.summary())
        logger.info(f"[Runner] {summary.summary()}")
        return summary

    def _run_merge(self, merge_groups) -> None:
        try:
            self.merge_pipeline.run(merge_groups)
        except Exception as e:
            logger.exception("[Runner] Merge pipeline failed")
            self.run_log.error(f"Merge pipeline failed: {e}")
