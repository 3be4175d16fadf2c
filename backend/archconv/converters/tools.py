"""
External tool helpers.

Locating binaries and running them for one conversion attempt. Every
process gets a wall-clock limit and is terminated (SIGTERM, then SIGKILL)
when the attempt is cancelled by the timeout guard.
"""

import logging
import os
import re
import shutil
import subprocess
import threading
import time
from typing import Iterable, List, Optional

from ..execution.errors import ConversionFailedError, HopTimeoutError, ToolNotFoundError

logger = logging.getLogger(__name__)

# Seconds between cancellation checks while a tool runs
POLL_SECONDS = 0.5

# Seconds a terminated process gets before it is killed
TERMINATE_GRACE = 5

VERSION_PATTERN = re.compile(r"\d+\.\d+(?:\.\d+)*")


def find_tool(name: str, common_paths: Iterable[str] = ()) -> Optional[str]:
    """Find a binary on PATH, then in common install locations."""
    found = shutil.which(name)
    if found:
        return found
    for path in common_paths:
        if os.path.isfile(path) and os.access(path, os.X_OK):
            return path
    return None


def tool_version(args: List[str], timeout: float = 10) -> str:
    """First version-looking token a tool prints, or ''."""
    try:
        result = subprocess.run(args, capture_output=True, text=True, timeout=timeout)
    except (OSError, subprocess.TimeoutExpired):
        return ""
    match = VERSION_PATTERN.search(result.stdout or result.stderr or "")
    return match.group(0) if match else ""


def run_tool(
    args: List[str],
    converter: str,
    path: str,
    timeout: Optional[float] = None,
    cancel: Optional[threading.Event] = None,
    cwd: Optional[str] = None,
) -> str:
    """
    Run one external tool invocation and return its stdout.

    Raises:
        ToolNotFoundError: If the executable cannot be started
        HopTimeoutError: If it runs past timeout or is cancelled
        ConversionFailedError: If it exits non-zero
    """
    logger.debug(f"[{converter}] Executing: {' '.join(args)}")
    try:
        process = subprocess.Popen(
            args,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
            cwd=cwd,
        )
    except FileNotFoundError:
        raise ToolNotFoundError(converter, args[0])
    except OSError as e:
        raise ConversionFailedError(converter, path, f"could not start {args[0]}: {e}")

    started = time.monotonic()
    while True:
        try:
            stdout, stderr = process.communicate(timeout=POLL_SECONDS)
            break
        except subprocess.TimeoutExpired:
            overdue = timeout is not None and time.monotonic() - started > timeout
            if overdue or (cancel is not None and cancel.is_set()):
                _stop(process, converter)
                raise HopTimeoutError(converter, path, timeout or time.monotonic() - started)

    if process.returncode != 0:
        reason = (stderr or "").strip()[:500] or f"{args[0]} failed"
        raise ConversionFailedError(converter, path, reason, exit_code=process.returncode)
    return stdout or ""


def _stop(process: subprocess.Popen, converter: str) -> None:
    logger.info(f"[{converter}] Sending SIGTERM to PID {process.pid}")
    try:
        process.terminate()
        try:
            process.wait(timeout=TERMINATE_GRACE)
        except subprocess.TimeoutExpired:
            logger.warning(f"[{converter}] PID {process.pid} did not terminate, sending SIGKILL")
            process.kill()
            process.wait()
    except ProcessLookupError:
        pass
