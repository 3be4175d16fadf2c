"""
Generation-based conversion scheduler.

Files move towards their targets one hop per generation:

    snapshot working set -> dispatch one hop per file -> barrier -> update

Design rules:
- At most one dispatch per file per generation
- The first registered converter supporting a hop gets it
- Per-file failures never stop a generation; they become flags
- Retries belong to converters; the scheduler never re-queues a hop
- Files added mid-run (attachments, split pages) survive the update of
  the generation they were added in, with their route untouched
- Merge candidates never enter the working set
"""

import logging
import threading
import time
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from datetime import datetime
from typing import Dict, List, Optional, Tuple

from ..files.models import FileRecord
from .base import Converter
from .context import ConversionContext
from .converter_registry import ConverterRegistry
from .progress import ProgressReporter, SchedulerProgress
from .results import GenerationReport, HopOutcome, HopStatus
from .retry import MAX_RETRIES
from .tasks import ConversionTask, TaskState

logger = logging.getLogger(__name__)


# Extra seconds granted on top of timeout * MAX_RETRIES before a dispatch is abandoned
ABANDON_GRACE_SECONDS = 60.0

# Barrier poll interval (seconds)
POLL_INTERVAL = 1.0


class ConversionScheduler:
    """
    Drives the working set through generations until it drains.

    Thread-safety: run() is called from one thread; progress(), pause()
    and resume() may be called from any thread (monitoring API).
    """

    def __init__(
        self,
        context: ConversionContext,
        converters: ConverterRegistry,
        show_progress: bool = True,
        grace_seconds: float = ABANDON_GRACE_SECONDS,
        poll_interval: float = POLL_INTERVAL,
    ):
        self.context = context
        self.converters = converters
        self.working_set = context.working_set
        self.show_progress = show_progress
        self.grace_seconds = grace_seconds
        self.poll_interval = poll_interval

        self._lock = threading.Lock()
        self._resume = threading.Event()
        self._resume.set()
        self._running = False
        self._generation = 0
        self._dispatched = 0
        self._completed = 0
        self._started_at: Optional[datetime] = None

        # file_id -> monotonic time its dispatch began
        self._dispatch_started: Dict[str, float] = {}
        # file_id -> set once the scheduler stops waiting for that dispatch
        self._abandoned: Dict[str, threading.Event] = {}

        self.outcomes: List[HopOutcome] = []
        self.generations: List[GenerationReport] = []

    # -------------------------------------------------------------------------
    # Setup
    # -------------------------------------------------------------------------

    def setup_working_set(self) -> Dict[str, List[FileRecord]]:
        """
        Fill the working set from the registry.

        Returns merge candidates grouped by relative folder.
        """
        merge_groups: Dict[str, List[FileRecord]] = {}
        added = 0

        for record in self.context.registry.list_records():
            if record.output_not_set or record.is_deleted or record.target_format is None:
                continue

            if self.context.targets.merge_override(record) is not None:
                record.should_merge = True
                folder = self.context.targets.relative_folder(record.path)
                merge_groups.setdefault(folder, []).append(record)
                continue

            route = self.context.routes.route_for(record.current_format, record.target_format)
            if not route:
                continue

            record.route = list(route)
            if self.working_set.add(ConversionTask(
                file_id=record.id,
                path=record.path,
                current_format=record.current_format,
                target_format=record.target_format,
                route=route,
            )):
                added += 1

        merging = sum(len(g) for g in merge_groups.values())
        logger.info(
            f"[Scheduler] Working set: {added} file(s) to convert, "
            f"{merging} file(s) in {len(merge_groups)} merge folder(s)"
        )
        return merge_groups

    # -------------------------------------------------------------------------
    # Control
    # -------------------------------------------------------------------------

    def pause(self) -> None:
        """Finish the current generation, don't start the next one."""
        self._resume.clear()
        logger.info("[Scheduler] Paused")

    def resume(self) -> None:
        self._resume.set()
        logger.info("[Scheduler] Resumed")

    @property
    def is_paused(self) -> bool:
        return not self._resume.is_set()

    def progress(self) -> SchedulerProgress:
        with self._lock:
            return SchedulerProgress(
                running=self._running,
                paused=self.is_paused,
                generation=self._generation,
                dispatched=self._dispatched,
                completed=self._completed,
                in_working_set=len(self.working_set),
                started_at=self._started_at,
            )

    # -------------------------------------------------------------------------
    # Generation loop
    # -------------------------------------------------------------------------

    def run(self) -> List[GenerationReport]:
        """Run generations until the working set is empty."""
        with self._lock:
            self._running = True
            self._started_at = datetime.now()

        try:
            while not self.working_set.is_empty:
                self._resume.wait()
                report = self.run_generation()
                self.generations.append(report)
        finally:
            with self._lock:
                self._running = False

        logger.info(f"[Scheduler] Working set drained after {len(self.generations)} generation(s)")
        return list(self.generations)

    def run_generation(self) -> GenerationReport:
        """Dispatch one hop for every eligible task, wait, then update."""
        with self._lock:
            self._generation += 1
            self._dispatched = 0
            self._completed = 0
            number = self._generation

        started = time.monotonic()
        self.context.run_log.info(f"Starting generation {number} with {len(self.working_set)} file(s)")

        dispatches = self._plan_dispatches(self.working_set.snapshot())
        report = GenerationReport(number=number, dispatched=len(dispatches))

        with self._lock:
            self._dispatched = len(dispatches)

        if dispatches:
            for outcome in self._execute(number, dispatches):
                self.outcomes.append(outcome)
                if outcome.status == HopStatus.SUCCESS:
                    report.succeeded += 1
                else:
                    report.failed += 1

        report.removed = self.update_working_set()
        report.remaining = len(self.working_set)
        report.duration_seconds = time.monotonic() - started
        logger.info(
            f"[Scheduler] Generation {number}: {report.dispatched} dispatched, "
            f"{report.succeeded} succeeded, {report.failed} failed, "
            f"{report.remaining} remaining"
        )
        return report

    def _plan_dispatches(self, tasks: List[ConversionTask]) -> List[Tuple[Converter, ConversionTask]]:
        """Pick the converter for each task's next hop; record the tool before dispatch."""
        dispatches = []
        for task in tasks:
            if not task.route or task.failed:
                continue
            converter = self.converters.first_supporting(task.current_format, task.route[0])
            if converter is None:
                logger.debug(
                    f"[Scheduler] No converter for {task.current_format} -> {task.route[0]}: {task.path}"
                )
                continue
            record = self.context.record(task)
            if record is not None:
                record.add_conversion_tool(converter.name_and_version)
            dispatches.append((converter, task))
        return dispatches

    def _execute(
        self,
        number: int,
        dispatches: List[Tuple[Converter, ConversionTask]],
    ) -> List[HopOutcome]:
        """Run dispatches on a bounded pool and wait at the generation barrier."""
        deadline = self.context.timeout_seconds * MAX_RETRIES + self.grace_seconds
        outcomes: List[HopOutcome] = []
        executor = ThreadPoolExecutor(
            max_workers=self.context.settings.worker_count,
            thread_name_prefix=f"gen{number}",
        )
        pending: Dict[Future, ConversionTask] = {}
        abandoned_any = False

        try:
            for converter, task in dispatches:
                task.state = TaskState.DISPATCHED
                pending[executor.submit(self._dispatch, converter, task)] = task

            with ProgressReporter(number, len(pending), enabled=self.show_progress) as bar:
                while pending:
                    done, _ = wait(list(pending), timeout=self.poll_interval, return_when=FIRST_COMPLETED)
                    for future in done:
                        pending.pop(future)
                        outcomes.append(future.result())
                        self._mark_completed(bar)

                    now = time.monotonic()
                    for future, task in list(pending.items()):
                        started = self._dispatch_started.get(task.file_id)
                        if started is not None and now - started > deadline:
                            pending.pop(future)
                            outcomes.append(self._abandon(task, deadline))
                            abandoned_any = True
                            self._mark_completed(bar)
        finally:
            executor.shutdown(wait=not abandoned_any)

        return outcomes

    def _mark_completed(self, bar: ProgressReporter) -> None:
        bar.advance()
        with self._lock:
            self._completed += 1

    def _dispatch(self, converter: Converter, task: ConversionTask) -> HopOutcome:
        """Dispatch boundary: run one hop and turn any exception into a failed file."""
        self._dispatch_started[task.file_id] = time.monotonic()
        abandoned = self._abandoned.setdefault(task.file_id, threading.Event())
        hop = task.route[0]
        try:
            outcome = converter.convert_file(task, hop, self.context, abandoned=abandoned)
        except Exception as e:
            logger.exception(f"[Scheduler] Unexpected error converting {task.path}")
            self.context.run_log.error(
                f"Unexpected error in {converter.name}: {e}",
                pronom=task.current_format,
                filename=task.path,
            )
            task.failed = True
            task.last_error = str(e)
            outcome = HopOutcome(
                file_id=task.file_id,
                converter=converter.name_and_version,
                source_path=task.path,
                source_format=task.current_format,
                target_format=hop,
                status=HopStatus.FAILED,
                completed_at=datetime.now(),
                failure_reason=str(e),
            )

        if not abandoned.is_set():
            task.modified = True
        return outcome

    def _abandon(self, task: ConversionTask, deadline: float) -> HopOutcome:
        """Stop waiting for a dispatch; its file is failed and late results are ignored."""
        self._abandoned.setdefault(task.file_id, threading.Event()).set()
        task.failed = True
        task.last_error = f"no result after {deadline:g}s"
        self.context.run_log.error(
            f"Conversion abandoned after {deadline:g}s",
            pronom=task.current_format,
            filename=task.path,
        )
        return HopOutcome(
            file_id=task.file_id,
            converter="",
            source_path=task.path,
            source_format=task.current_format,
            target_format=task.route[0] if task.route else task.target_format,
            status=HopStatus.ABANDONED,
            completed_at=datetime.now(),
            failure_reason=task.last_error,
        )

    # -------------------------------------------------------------------------
    # Update
    # -------------------------------------------------------------------------

    def update_working_set(self) -> int:
        """
        Apply the end-of-generation rules. Returns the number of files removed.

        - Untouched or failed files leave the set, unless added this generation
        - Otherwise the completed hop is popped off the route (not for
          files added this generation) and finished files leave the set
        """
        removed = 0
        for task in self.working_set.snapshot():
            record = self.context.record(task)

            if (not task.modified or task.failed) and not task.added_during_run:
                self.working_set.remove(task.file_id)
                removed += 1
                if task.failed:
                    task.state = TaskState.FAILED
                    if record is not None:
                        record.failed = True
                else:
                    task.state = TaskState.UNSUPPORTED
                    if record is not None:
                        record.not_supported = True
                    self.context.run_log.info(
                        f"No converter for {task.current_format} -> {task.route[0] if task.route else '?'}",
                        pronom=task.current_format,
                        filename=task.path,
                    )
                self._mirror(task, record)
                continue

            task.modified = False
            if not task.added_during_run:
                task.current_format = task.route.pop(0)
            task.added_during_run = False

            if not task.route:
                self.working_set.remove(task.file_id)
                removed += 1
                task.state = TaskState.DONE
            else:
                task.state = TaskState.PENDING_DISPATCH
            self._mirror(task, record)

        return removed

    def _mirror(self, task: ConversionTask, record: Optional[FileRecord]) -> None:
        if record is None:
            return
        record.current_format = task.current_format
        record.route = list(task.route)
        record.added_during_run = task.added_during_run
        if task.target_format and record.target_format != task.target_format:
            record.target_format = task.target_format
