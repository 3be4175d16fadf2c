"""
Settings error types.
"""


class SettingsError(Exception):
    """Base exception for configuration failures."""
    pass


class SettingsFileNotFoundError(SettingsError):
    """Raised when the settings file does not exist."""

    def __init__(self, path: str):
        self.path = path
        super().__init__(f"Settings file not found: {path}")


class InvalidSettingsError(SettingsError):
    """Raised when the settings file cannot be parsed or fails validation."""

    def __init__(self, path: str, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"Invalid settings in {path}: {reason}")
