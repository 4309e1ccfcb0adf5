"""Error and warning types raised by the merge engine."""

from pathlib import Path
from typing import Optional


class UpkeepError(Exception):
    """Base error for document upkeep operations."""
    pass


class FileAccessError(UpkeepError):
    """A document path could not be read or written."""

    def __init__(self, message: str, path: Optional[Path] = None, operation: str = "write"):
        super().__init__(message)
        self.path = path
        self.operation = operation


class InvalidPathError(UpkeepError):
    """Target path is malformed or escapes the project root."""

    def __init__(self, message: str, path: Optional[str] = None):
        super().__init__(message)
        self.path = path


class RegistryCorruption(UpkeepError):
    """The registry store exists but cannot be parsed."""

    def __init__(self, message: str, registry_path: Optional[Path] = None):
        super().__init__(message)
        self.registry_path = registry_path


class MarkerImbalanceWarning(UserWarning):
    """A written document has unequal start/end marker counts."""


class UnresolvedHighSeverityConflict(UserWarning):
    """Conflict markers were embedded and need a human decision."""


class PublishError(UpkeepError):
    """Publishing an update result to the documentation API failed."""


class InvalidOptionsError(UpkeepError):
    """Update options name an unknown strategy or conflict policy."""
