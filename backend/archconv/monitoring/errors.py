"""
Monitoring-specific errors.

Read-only monitoring should never fail silently.
Explicit error responses for missing data or unavailable state.
"""


class MonitoringError(Exception):
    """Base exception for monitoring operations."""
    pass


class FileNotFoundInRunError(MonitoringError):
    """Raised when a requested file id is not part of the run."""

    def __init__(self, file_id: str):
        self.file_id = file_id
        super().__init__(f"File not found: {file_id}")


class RunNotAttachedError(MonitoringError):
    """Raised when the API is served without a run to observe."""

    def __init__(self):
        super().__init__("No conversion run is attached to the monitoring API")
