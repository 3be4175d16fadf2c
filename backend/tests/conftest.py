"""
Shared fixtures for archconv tests.

Tests never need siegfried or any conversion tool:
- FakeIdentifier reads a "FORMAT:<pronom>" marker from the first line of a
  file, falling back to an extension map
- FakeConverter writes such a marker for the format it was asked for, and
  can be told to fail, to write the wrong format, or to take its time
"""

import hashlib
import threading
import time
from pathlib import Path
from typing import Dict, Iterable, List, Optional

import pytest

from archconv.execution.base import Converter, HopOutput
from archconv.execution.context import ConversionContext
from archconv.execution.converter_registry import ConverterRegistry
from archconv.execution.errors import ConversionFailedError
from archconv.execution.resources import IccProfile, IccProfilePool
from archconv.execution.routes import DEFAULT_CHAINS, RouteResolver
from archconv.files.registry import FileRegistry
from archconv.files.targets import TargetResolver
from archconv.identification.errors import IdentificationFailedError
from archconv.identification.models import UNKNOWN_FORMAT, IdentifiedFile
from archconv.identification.siegfried import Identifier
from archconv.reporting.runlog import RunLog
from archconv.settings.models import ConversionSettings, FileClass, FileTypeSetting


MARKER = "FORMAT:"

EXTENSION_FORMATS = {
    ".doc": "fmt/40",
    ".docx": "fmt/412",
    ".pdf": "fmt/276",
    ".png": "fmt/12",
    ".jpg": "fmt/43",
    ".txt": "x-fmt/111",
}


def write_file(path: Path, pronom: str, body: str = "") -> Path:
    """Create a file the fake identifier will report as pronom."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(f"{MARKER}{pronom}\n{body}", encoding="utf-8")
    return path


class FakeIdentifier(Identifier):
    """Identifies files by their marker line or extension."""

    def __init__(self, fail_paths: Iterable[str] = ()):
        self.fail_paths = set(fail_paths)
        self.calls: List[str] = []
        self._lock = threading.Lock()

    def identify_file(self, path: str, hash: bool = True) -> IdentifiedFile:
        with self._lock:
            self.calls.append(str(path))
        if str(path) in self.fail_paths:
            raise IdentificationFailedError(str(path), "simulated sf failure")

        file_path = Path(path)
        if not file_path.is_file():
            return IdentifiedFile(path=str(path), errors=["file not found"])

        data = file_path.read_bytes()
        pronom = EXTENSION_FORMATS.get(file_path.suffix.lower(), UNKNOWN_FORMAT)
        first_line = data.split(b"\n", 1)[0].decode("utf-8", errors="ignore")
        if first_line.startswith(MARKER):
            pronom = first_line[len(MARKER):].strip()

        return IdentifiedFile(
            path=str(path),
            format=pronom,
            format_name=f"Format {pronom}",
            mime="application/octet-stream",
            size=len(data),
            checksum=hashlib.md5(data).hexdigest() if hash else None,
        )

    def identify_files(self, paths: Iterable[str]) -> List[IdentifiedFile]:
        return [self.identify_file(p) for p in paths]


class FakeConverter(Converter):
    """
    Configurable in-memory converter.

    conversions: source -> reachable targets
    fail_times: how many attempts raise before one succeeds (per file)
    wrong_format: format written instead of the requested one
    delay: seconds each attempt takes
    first_attempt_delay: seconds the first attempt takes instead of delay
    """

    def __init__(
        self,
        name: str = "Fake",
        conversions: Optional[Dict[str, List[str]]] = None,
        blocking: Optional[Dict[str, List[str]]] = None,
        fail_times: int = 0,
        wrong_format: Optional[str] = None,
        delay: float = 0.0,
        first_attempt_delay: Optional[float] = None,
        version: str = "1.0",
        available: bool = True,
        platforms: Optional[List[str]] = None,
    ):
        super().__init__()
        self._name = name
        self._conversions = conversions or {}
        self._blocking = blocking or {}
        self.fail_times = fail_times
        self.wrong_format = wrong_format
        self.delay = delay
        self.first_attempt_delay = first_attempt_delay
        self._fake_version = version
        self._available = available
        self._platforms = platforms

        self.calls: List[tuple] = []
        self.active = 0
        self.max_active = 0
        self._failures: Dict[str, int] = {}
        self._lock = threading.Lock()

    @property
    def name(self) -> str:
        return self._name

    def detect_version(self) -> str:
        return self._fake_version

    def supported_conversions(self) -> Dict[str, List[str]]:
        return self._conversions

    def blocking_conversions(self) -> Dict[str, List[str]]:
        return self._blocking

    def supported_os(self) -> List[str]:
        return self._platforms if self._platforms is not None else super().supported_os()

    def dependencies_satisfied(self) -> bool:
        return self._available

    def _convert(self, task, target_format, context, attempt, cancel) -> HopOutput:
        with self._lock:
            self.calls.append((task.path, task.current_format, target_format, attempt))
            self.active += 1
            self.max_active = max(self.max_active, self.active)
        try:
            delay = self.delay
            if attempt == 0 and self.first_attempt_delay is not None:
                delay = self.first_attempt_delay
            if delay:
                time.sleep(delay)
            with self._lock:
                failures = self._failures.get(task.file_id, 0)
                if failures < self.fail_times:
                    self._failures[task.file_id] = failures + 1
                    raise ConversionFailedError(self.name, task.path, "simulated failure", exit_code=1)

            source = Path(task.path)
            output = source.with_name(f"{source.stem}.{target_format.replace('/', '-')}")
            write_file(output, self.wrong_format or target_format, body=source.name)
            return HopOutput(paths=[str(output)], format=target_format)
        finally:
            with self._lock:
                self.active -= 1


class StaticIccPool(IccProfilePool):
    """ICC pool handing out a dummy profile (no LittleCMS needed)."""

    def __init__(self, size: int = 1):
        super().__init__(size=size, factory=lambda: IccProfile(description="test", data=b"icc"))


def make_settings(
    input_folder: str,
    output_folder: str,
    targets: Optional[Dict[str, str]] = None,
    **overrides,
) -> ConversionSettings:
    """Settings with one file class holding a type per source -> target pair."""
    file_types = [
        FileTypeSetting(filename=source, pronoms=[source], default=target)
        for source, target in (targets or {}).items()
    ]
    values = dict(
        input_folder=input_folder,
        output_folder=output_folder,
        max_threads=4,
        timeout_minutes=1,
        file_classes=[FileClass(class_name="Test", file_types=file_types)],
    )
    values.update(overrides)
    return ConversionSettings(**values)


@pytest.fixture
def identifier():
    return FakeIdentifier()


@pytest.fixture
def make_context(tmp_path, identifier):
    """Factory building a ConversionContext over tmp_path/output."""

    def _make(
        converters: List[Converter],
        targets: Optional[Dict[str, str]] = None,
        settings: Optional[ConversionSettings] = None,
        chains=DEFAULT_CHAINS,
    ) -> ConversionContext:
        output = tmp_path / "output"
        output.mkdir(exist_ok=True)
        settings = settings or make_settings(str(tmp_path / "input"), str(output), targets)
        registry = FileRegistry()
        converter_registry = ConverterRegistry(converters, system="linux")
        return ConversionContext(
            settings=settings,
            identifier=identifier,
            registry=registry,
            targets=TargetResolver(settings, registry, settings.output_folder),
            routes=RouteResolver(converter_registry, chains),
            run_log=RunLog(),
            icc_pool=StaticIccPool(),
            output_dir=settings.output_folder,
        )

    return _make
