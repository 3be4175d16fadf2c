"""
Identification-specific error types.

All errors inherit from IdentificationError for easy catching.
"""


class IdentificationError(Exception):
    """Base exception for all identification failures."""
    pass


class SiegfriedNotFoundError(IdentificationError):
    """Raised when the sf binary is not available on the system."""

    def __init__(self):
        super().__init__(
            "siegfried (sf) not found. Install siegfried to enable format identification."
        )


class IdentificationFailedError(IdentificationError):
    """Raised when sf exits with an error or returns unreadable output."""

    def __init__(self, target: str, reason: str):
        self.target = target
        self.reason = reason
        super().__init__(f"Failed to identify {target}: {reason}")
