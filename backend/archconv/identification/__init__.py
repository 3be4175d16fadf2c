"""
Format identification.

Wraps siegfried (sf) behind the Identifier interface so the scheduler,
converters and consistency checker never invoke the tool directly.
"""

from .errors import (
    IdentificationError,
    IdentificationFailedError,
    SiegfriedNotFoundError,
)
from .models import (
    UNKNOWN_FORMAT,
    HashAlgorithm,
    IdentifiedFile,
    SiegfriedFile,
    SiegfriedMatch,
    SiegfriedOutput,
)
from .siegfried import Identifier, SiegfriedIdentifier, group_paths

__all__ = [
    # Service
    "Identifier",
    "SiegfriedIdentifier",
    "group_paths",
    # Models
    "UNKNOWN_FORMAT",
    "HashAlgorithm",
    "IdentifiedFile",
    "SiegfriedFile",
    "SiegfriedMatch",
    "SiegfriedOutput",
    # Errors
    "IdentificationError",
    "IdentificationFailedError",
    "SiegfriedNotFoundError",
]
