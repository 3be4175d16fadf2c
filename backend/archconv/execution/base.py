"""
Converter abstraction layer.

A Converter executes one hop of a route for one file. Every back-end
(PDF library, Ghostscript, LibreOffice, e-mail) implements the same
contract and declares what it can do up front.

Design rules:
- Capabilities are declarative and queried once at startup
- Blocking conversions are serialized per converter instance
- Attempts are counted here, through retry(), never by the scheduler
- Success requires re-identifying the output as the hop format;
  a zero exit code alone proves nothing
- On success the hop's input is deleted from the output tree and the
  file is repointed to the new path; on failure the input stays
"""

import logging
import os
import platform
import threading
from abc import ABC, abstractmethod
from contextlib import nullcontext
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING, Dict, Iterable, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from .errors import HopTimeoutError, OutputVerificationError
from .results import HopOutcome, HopStatus
from .retry import MAX_RETRIES, retry
from .tasks import ConversionTask, TaskState
from .timeouts import SETTLE_SECONDS, GuardedCall, call_with_timeout

if TYPE_CHECKING:
    from .context import ConversionContext

logger = logging.getLogger(__name__)


ALL_PLATFORMS = ["linux", "windows", "darwin"]


def current_platform() -> str:
    return platform.system().lower()


class ConverterCapability(BaseModel):
    """
    Declarative description of what one converter can do.

    `supported` maps a source format to reachable formats; `blocking` is the
    subset that must not run concurrently within the same converter.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    name: str
    version: str = ""
    supported: Dict[str, List[str]] = Field(default_factory=dict)
    blocking: Dict[str, List[str]] = Field(default_factory=dict)
    supported_os: List[str] = Field(default_factory=list)
    dependencies_satisfied: bool = False

    @property
    def name_and_version(self) -> str:
        return f"{self.name} {self.version}".strip()

    def supports(self, source: str, target: str) -> bool:
        return target in self.supported.get(source, ())

    def is_blocking(self, source: str, target: str) -> bool:
        return target in self.blocking.get(source, ())


@dataclass
class HopOutput:
    """
    What a converter produced in one attempt.

    `format` is the format the output should identify as. It normally equals
    the requested hop format; a converter may lower it (PDF/A A -> B) on a
    retry. Several paths mean the input was split (one file per page).
    Outputs are written beside the input and only committed after
    verification.
    """

    paths: List[str]
    format: str
    split: bool = False
    tools: List[str] = field(default_factory=list)
    # Where a verified single output replaces the input (in-place rewrites)
    final_path: Optional[str] = None

    @property
    def path(self) -> str:
        return self.paths[0]


class Converter(ABC):
    """
    Abstract base class for converters.

    Subclasses implement:
    - name / detect_version
    - supported_conversions / blocking_conversions
    - supported_os / dependencies_satisfied
    - _convert: produce the output for one attempt

    convert_file wraps _convert with locking, retries, the timeout guard and
    verification.
    """

    def __init__(self):
        self._blocking_lock = threading.Lock()
        self._capability: Optional[ConverterCapability] = None
        self._version: Optional[str] = None

    # -------------------------------------------------------------------------
    # Declarations
    # -------------------------------------------------------------------------

    @property
    @abstractmethod
    def name(self) -> str:
        """Tool name used in logs and documentation."""
        pass

    def detect_version(self) -> str:
        """Version of the underlying tool or library ('' if unknown)."""
        return ""

    @property
    def version(self) -> str:
        if self._version is None:
            try:
                self._version = self.detect_version() or ""
            except Exception as e:
                logger.debug(f"[{self.name}] Version detection failed: {e}")
                self._version = ""
        return self._version

    @property
    def name_and_version(self) -> str:
        return f"{self.name} {self.version}".strip()

    @abstractmethod
    def supported_conversions(self) -> Dict[str, List[str]]:
        """Map of source format -> reachable formats."""
        pass

    def blocking_conversions(self) -> Dict[str, List[str]]:
        """Subset of supported conversions needing mutual exclusion."""
        return {}

    def supported_os(self) -> List[str]:
        return list(ALL_PLATFORMS)

    @abstractmethod
    def dependencies_satisfied(self) -> bool:
        """Whether the external tools/libraries this converter needs are present."""
        pass

    @property
    def capability(self) -> ConverterCapability:
        """Capability snapshot, computed once."""
        if self._capability is None:
            self._capability = ConverterCapability(
                name=self.name,
                version=self.version,
                supported={k: list(v) for k, v in self.supported_conversions().items()},
                blocking={k: list(v) for k, v in self.blocking_conversions().items()},
                supported_os=self.supported_os(),
                dependencies_satisfied=self.dependencies_satisfied(),
            )
        return self._capability

    def supports_platform(self, system: Optional[str] = None) -> bool:
        return (system or current_platform()) in self.capability.supported_os

    def supports_conversion(self, source: str, target: str) -> bool:
        return self.capability.supports(source, target)

    def is_blocking(self, source: str, target: str) -> bool:
        return self.capability.is_blocking(source, target)

    # -------------------------------------------------------------------------
    # Execution
    # -------------------------------------------------------------------------

    @abstractmethod
    def _convert(
        self,
        task: ConversionTask,
        target_format: str,
        context: "ConversionContext",
        attempt: int,
        cancel: threading.Event,
    ) -> HopOutput:
        """
        Produce the output of one attempt.

        Must not delete or move the input. Raise a ConversionError (or any
        exception) on failure.
        """
        pass

    def convert_file(
        self,
        task: ConversionTask,
        target_format: str,
        context: "ConversionContext",
        abandoned: Optional[threading.Event] = None,
    ) -> HopOutcome:
        """
        Convert task's file by one hop to target_format.

        Never raises for conversion failures: the outcome says what happened
        and task.failed is set when all attempts are exhausted. Set
        `abandoned` once nobody waits for the result; a verified output
        is then discarded instead of committed.

        Raises:
            Exception: Whatever committing a verified output raised; the
                output is removed first
        """
        outcome = HopOutcome(
            file_id=task.file_id,
            converter=self.name_and_version,
            source_path=task.path,
            source_format=task.current_format,
            target_format=target_format,
            status=HopStatus.FAILED,
        )

        blocking = self.is_blocking(task.current_format, target_format)
        guard = self._blocking_lock if blocking else nullcontext()
        # Timed-out attempts whose helper thread has not exited yet
        late: List[GuardedCall] = []

        def settle_late(wait: bool, keep: Iterable[str] = ()) -> None:
            kept = {Path(p) for p in keep}
            for call in list(late):
                if wait:
                    call.join()
                if not call.finished:
                    continue
                late.remove(call)
                if isinstance(call.value, HopOutput):
                    self._discard(call.value, task, keep=kept)

        def attempt(n: int) -> HopOutput:
            # A blocking hop never overlaps an earlier attempt of itself
            settle_late(wait=blocking)
            try:
                produced = call_with_timeout(
                    lambda cancel: self._convert(task, target_format, context, n, cancel),
                    context.timeout_seconds,
                    converter=self.name,
                    path=task.path,
                    settle=SETTLE_SECONDS,
                )
            except HopTimeoutError as e:
                if e.call is not None:
                    late.append(e.call)
                raise
            try:
                self._verify(produced, context)
            except Exception:
                self._discard(produced, task)
                raise
            return produced

        def failed_attempt(n: int, error: Exception) -> None:
            context.run_log.error(
                f"{self.name}: attempt {n + 1}/{MAX_RETRIES} failed: {error}",
                pronom=task.current_format,
                filename=task.path,
            )

        with guard:
            result = retry(MAX_RETRIES, attempt, on_failure=failed_attempt)
            settle_late(wait=blocking, keep=result.value.paths if result.success else ())

        if late:
            logger.warning(
                f"[{self.name}] {len(late)} timed-out attempt(s) still running for {task.path}"
            )

        task.attempts = result.attempts
        outcome.attempts = result.attempts
        outcome.completed_at = datetime.now()

        if not result.success:
            task.failed = True
            task.state = TaskState.FAILED_HOP
            task.last_error = str(result.last_error)
            outcome.failure_reason = str(result.last_error)
            logger.warning(f"[{self.name}] {outcome.summary()}")
            return outcome

        produced = result.value
        if abandoned is not None and abandoned.is_set():
            self._discard(produced, task)
            outcome.status = HopStatus.ABANDONED
            outcome.failure_reason = "finished after the dispatch was abandoned"
            logger.warning(f"[{self.name}] {outcome.summary()}")
            return outcome

        try:
            self._accept_output(task, target_format, produced, context)
        except Exception:
            self._discard(produced, task)
            raise
        task.state = TaskState.COMPLETED_HOP

        outcome.status = HopStatus.SUCCESS
        outcome.output_paths = list(produced.paths)
        outcome.output_format = produced.format
        if result.attempts > 1:
            outcome.warnings.append(f"succeeded after {result.attempts} attempts")
        logger.debug(f"[{self.name}] {outcome.summary()}")
        return outcome

    def _verify(self, produced: HopOutput, context: "ConversionContext") -> None:
        """
        Re-identify every output path.

        Raises:
            OutputVerificationError: If any output is missing or mis-identified
        """
        if not produced.paths:
            raise OutputVerificationError("<no output>", produced.format, None)
        for path in produced.paths:
            if not Path(path).is_file():
                raise OutputVerificationError(path, produced.format, None)
            actual = context.identifier.identify_format(path)
            if actual != produced.format:
                raise OutputVerificationError(path, produced.format, actual)

    def _discard(self, produced: HopOutput, task: ConversionTask, keep: Iterable[Path] = ()) -> None:
        """Remove the outputs of a rejected attempt, never the input itself."""
        kept = {Path(task.path), *keep}
        for path in produced.paths:
            if Path(path) in kept:
                continue
            try:
                Path(path).unlink(missing_ok=True)
            except OSError as e:
                logger.debug(f"[{self.name}] Could not remove rejected output {path}: {e}")

    def _accept_output(
        self,
        task: ConversionTask,
        target_format: str,
        produced: HopOutput,
        context: "ConversionContext",
    ) -> None:
        """
        Commit a verified output.

        Deletes the hop's input, repoints task and record, and accounts for a
        lowered output format. Split outputs become derived records.
        """
        record = context.registry.get(task.file_id)
        for tool in produced.tools:
            if record is not None:
                record.add_conversion_tool(tool)

        if produced.format != target_format:
            self._apply_lowered_format(task, record, target_format, produced.format)

        if produced.split:
            self._accept_split(task, produced, context)
            return

        new_path = produced.path
        if produced.final_path:
            os.replace(new_path, produced.final_path)
            new_path = produced.final_path
        elif Path(new_path) != Path(task.path):
            delete_file(task.path, context)
        task.path = new_path
        if record is not None:
            record.path = new_path

    def _apply_lowered_format(self, task, record, requested: str, produced: str) -> None:
        """The hop reached a different (fallback) format than requested."""
        logger.info(f"[{self.name}] {task.path}: produced {produced} instead of {requested}")
        if task.route and task.route[0] == requested:
            task.route[0] = produced
        if task.target_format == requested:
            task.target_format = produced
            if record is not None:
                record.target_format = produced

    def _accept_split(
        self,
        task: ConversionTask,
        produced: HopOutput,
        context: "ConversionContext",
    ) -> None:
        """
        Register one derived record per output page.

        The source file is deleted and hidden; the parent task stops after
        this hop, pages continue on their own routes.
        """
        for path in produced.paths:
            context.add_derived_task(
                path,
                parent_id=task.file_id,
                split=True,
                tools=[self.name_and_version],
            )

        delete_file(task.path, context)
        record = context.registry.get(task.file_id)
        if record is not None:
            record.is_deleted = True
            record.display = False
        del task.route[1:]


def delete_file(path: str, context: "ConversionContext") -> None:
    """Remove a hop input from the output tree, logging (not raising) failures."""
    try:
        Path(path).unlink(missing_ok=True)
    except OSError as e:
        context.run_log.error(f"Could not delete {path}: {e}", filename=path)
