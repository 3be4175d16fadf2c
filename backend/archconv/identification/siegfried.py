"""
Format identification using siegfried (sf).

sf is treated as a synchronous black box: paths in, PRONOM matches out.
Identification is read-only and non-destructive.

Two invocation modes:
- identify_file: one path per sf process (used for per-hop verification)
- identify_files: many paths per sf process, grouped so the command line
  stays within OS argument limits

Unclassifiable files come back as UNKNOWN_FORMAT, not as errors.
"""

import json
import logging
import shutil
import subprocess
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, Iterable, List, Optional

from pydantic import ValidationError

from .errors import IdentificationFailedError, SiegfriedNotFoundError
from .models import HashAlgorithm, IdentifiedFile, SiegfriedOutput

logger = logging.getLogger(__name__)


# Batch limits for one sf invocation
MAX_GROUP_PATH_CHARS = 13600
MAX_GROUP_FILES = 256

# Parallel sf workers inside one batch invocation
SF_MULTI = 64

# Per-invocation wall clock limit (seconds)
SF_TIMEOUT = 600


class Identifier(ABC):
    """
    Abstract identification service.

    Implementations must be safe to call from several worker threads.
    """

    @abstractmethod
    def identify_file(self, path: str, hash: bool = True) -> IdentifiedFile:
        """Identify a single file."""
        ...

    @abstractmethod
    def identify_files(self, paths: Iterable[str]) -> List[IdentifiedFile]:
        """Identify many files, with checksums, in as few invocations as possible."""
        ...

    def identify_format(self, path: str) -> str:
        """Return only the PRONOM id of a file (no checksum)."""
        return self.identify_file(path, hash=False).format


def group_paths(
    paths: Iterable[str],
    max_chars: int = MAX_GROUP_PATH_CHARS,
    max_files: int = MAX_GROUP_FILES,
) -> List[List[str]]:
    """
    Split paths into batches for separate sf invocations.

    A new group starts when adding the next path would take the combined
    path length over max_chars, or when the current group holds max_files.
    """
    groups: List[List[str]] = []
    current: List[str] = []
    current_chars = 0

    for path in paths:
        too_long = current_chars + len(path) > max_chars
        too_many = len(current) >= max_files
        if current and (too_long or too_many):
            groups.append(current)
            current = []
            current_chars = 0
        current.append(path)
        current_chars += len(path)

    if current:
        groups.append(current)
    return groups


class SiegfriedIdentifier(Identifier):
    """
    Identifier backed by the siegfried command line tool.

    The binary is located once at construction:
    1. explicit sf_path
    2. PATH lookup
    3. common install locations
    """

    def __init__(
        self,
        hashing: HashAlgorithm = HashAlgorithm.SHA256,
        sf_path: Optional[str] = None,
        timeout: float = SF_TIMEOUT,
    ):
        self.hashing = HashAlgorithm(hashing)
        self.timeout = timeout
        self._sf_path = sf_path or self._find_sf()

    @property
    def available(self) -> bool:
        return self._sf_path is not None

    @property
    def sf_path(self) -> str:
        if self._sf_path is None:
            raise SiegfriedNotFoundError()
        return self._sf_path

    def _find_sf(self) -> Optional[str]:
        """Locate sf on this host."""
        sf = shutil.which("sf")
        if sf:
            return sf

        for path in [
            "/usr/local/bin/sf",
            "/usr/bin/sf",
            "/opt/homebrew/bin/sf",
            str(Path.home() / "go" / "bin" / "sf"),
        ]:
            if Path(path).exists():
                return path

        return None

    def version(self) -> Optional[str]:
        """Return the sf version string, or None if it cannot be read."""
        try:
            result = subprocess.run(
                [self.sf_path, "-version"],
                capture_output=True,
                text=True,
                timeout=10,
            )
        except (OSError, subprocess.TimeoutExpired, SiegfriedNotFoundError):
            return None
        first_line = result.stdout.strip().splitlines()[:1]
        return first_line[0] if first_line else None

    # -------------------------------------------------------------------------
    # Single file
    # -------------------------------------------------------------------------

    def identify_file(self, path: str, hash: bool = True) -> IdentifiedFile:
        """
        Identify one file.

        Raises:
            SiegfriedNotFoundError: If sf is not installed
            IdentificationFailedError: If sf fails or output cannot be parsed
        """
        args = [self.sf_path, "-coe", "-json"]
        if hash:
            args += ["-hash", self.hashing.value]
        args.append(str(path))

        output = self._run(args, target=str(path))
        if not output.files:
            raise IdentificationFailedError(str(path), "sf returned no file entries")
        return IdentifiedFile.from_siegfried(output.files[0])

    # -------------------------------------------------------------------------
    # Batches
    # -------------------------------------------------------------------------

    def identify_files(self, paths: Iterable[str]) -> List[IdentifiedFile]:
        """
        Identify files in grouped sf invocations.

        Results are returned in input order. A path sf did not report on is
        returned as UNKNOWN_FORMAT with an error entry.
        """
        paths = [str(p) for p in paths]
        by_path: Dict[str, IdentifiedFile] = {}

        groups = group_paths(paths)
        logger.debug(f"[Identifier] {len(paths)} files in {len(groups)} sf invocation(s)")

        for group in groups:
            args = [
                self.sf_path,
                "-json",
                "-hash", self.hashing.value,
                "-multi", str(SF_MULTI),
                *group,
            ]
            output = self._run(args, target=f"batch of {len(group)} files")
            for entry in output.files:
                identified = IdentifiedFile.from_siegfried(entry)
                by_path[_normalize(identified.path)] = identified

        results = []
        for path in paths:
            identified = by_path.get(_normalize(path))
            if identified is None:
                identified = IdentifiedFile(path=path, errors=["not reported by sf"])
            results.append(identified)
        return results

    def _run(self, args: List[str], target: str) -> SiegfriedOutput:
        try:
            result = subprocess.run(
                args,
                capture_output=True,
                text=True,
                timeout=self.timeout,
            )
        except subprocess.TimeoutExpired:
            raise IdentificationFailedError(target, f"sf timed out after {self.timeout}s")
        except OSError as e:
            raise IdentificationFailedError(target, f"could not start sf: {e}")

        if not result.stdout.strip():
            stderr = result.stderr.strip()[:500]
            raise IdentificationFailedError(
                target, f"sf exited with code {result.returncode}: {stderr}"
            )

        try:
            return SiegfriedOutput.model_validate(json.loads(result.stdout))
        except json.JSONDecodeError as e:
            raise IdentificationFailedError(target, f"invalid sf JSON: {e}")
        except ValidationError as e:
            raise IdentificationFailedError(target, f"unexpected sf JSON layout: {e}")


def _normalize(path: str) -> str:
    return str(Path(path).resolve()) if path else path
