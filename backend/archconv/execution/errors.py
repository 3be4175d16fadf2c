"""
Conversion-specific errors.

Per-file errors are non-fatal: they are caught at the dispatch boundary and
turned into flags and run-log entries. Only NoConvertersAvailableError and
NoInputFilesError abort a run.
"""

from typing import Optional


class ConversionError(Exception):
    """
    Base exception for conversion failures.

    All conversion errors inherit from this.
    """

    pass


class NoConvertersAvailableError(ConversionError):
    """Raised when no converter passed the platform and dependency checks."""

    def __init__(self):
        super().__init__(
            "No converters available on this host. "
            "Install at least one of: LibreOffice, Ghostscript, java + wkhtmltopdf, or the PDF libraries."
        )


class NoInputFilesError(ConversionError):
    """Raised when the staged input contains no identifiable files."""

    def __init__(self, folder: str):
        self.folder = folder
        super().__init__(f"No files found to convert in {folder}")


class ToolNotFoundError(ConversionError):
    """Raised when a converter's external tool cannot be located."""

    def __init__(self, converter: str, tool: str):
        self.converter = converter
        self.tool = tool
        super().__init__(f"[{converter}] Required tool not found: {tool}")


class HopTimeoutError(ConversionError):
    """Raised when one conversion attempt exceeds its wall-clock limit."""

    def __init__(self, converter: str, path: str, timeout: float, call=None):
        self.converter = converter
        self.path = path
        self.timeout = timeout
        # The timed-out GuardedCall, when raised by call_with_timeout
        self.call = call
        super().__init__(f"[{converter}] Conversion of {path} timed out after {timeout:g}s")


class ConversionFailedError(ConversionError):
    """Raised when a converter's tool or library call fails."""

    def __init__(
        self,
        converter: str,
        path: str,
        reason: str,
        exit_code: Optional[int] = None,
    ):
        self.converter = converter
        self.path = path
        self.reason = reason
        self.exit_code = exit_code

        message = f"[{converter}] Converting {path} failed: {reason}"
        if exit_code is not None:
            message += f" (exit code: {exit_code})"
        super().__init__(message)


class OutputVerificationError(ConversionError):
    """
    Output verification failed.

    Raised when a tool appears to succeed but re-identification of the
    output does not match the intended hop format (or the output is missing).
    """

    def __init__(self, path: str, expected: str, actual: Optional[str]):
        self.path = path
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Output {path} identified as {actual or 'nothing'}, expected {expected}"
        )


class MergeError(ConversionError):
    """Raised when a merge group cannot be combined."""

    def __init__(self, folder: str, reason: str):
        self.folder = folder
        self.reason = reason
        super().__init__(f"Merging files in {folder} failed: {reason}")


class ResourceUnavailableError(ConversionError):
    """Raised when a pooled resource cannot be checked out in time."""

    def __init__(self, pool: str, timeout: float):
        self.pool = pool
        self.timeout = timeout
        super().__init__(f"No {pool} resource became available within {timeout:.0f}s")
