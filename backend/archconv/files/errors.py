"""
File registry error types.

All errors inherit from FileRegistryError for easy catching.
"""


class FileRegistryError(Exception):
    """Base exception for file bookkeeping failures."""
    pass


class FileNotRegisteredError(FileRegistryError):
    """Raised when a file id cannot be found in the registry."""

    def __init__(self, file_id: str):
        self.file_id = file_id
        super().__init__(f"File not registered: {file_id}")


class DuplicateFileError(FileRegistryError):
    """Raised when a record with the same id is registered twice."""

    def __init__(self, file_id: str, path: str):
        self.file_id = file_id
        self.path = path
        super().__init__(f"File '{file_id}' already registered ({path})")


class StagingError(FileRegistryError):
    """Raised when the input tree cannot be staged into the output folder."""

    def __init__(self, source: str, reason: str):
        self.source = source
        self.reason = reason
        super().__init__(f"Cannot stage {source}: {reason}")


class RenameError(FileRegistryError):
    """Raised when a conflicting file cannot be moved to its new name."""

    def __init__(self, source: str, target: str, reason: str):
        self.source = source
        self.target = target
        self.reason = reason
        super().__init__(f"Cannot rename {source} -> {target}: {reason}")
