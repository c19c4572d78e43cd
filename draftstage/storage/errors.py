"""Storage error taxonomy."""

from typing import Optional


class StorageError(Exception):
    """Base class for all local storage failures."""


class CapacityExceededError(StorageError):
    """The store refused a write because its quota or the disk is full."""


class EngineUnavailableError(StorageError):
    """The storage engine could not be opened or could not run a statement."""


class NotFoundError(StorageError):
    """A lookup did not resolve to a stored record."""


class FileNotFoundInStoreError(NotFoundError):
    """No staged file exists for the given identifier (never staged or evicted)."""
    
    def __init__(self, file_id: str, message: Optional[str] = None):
        self.file_id = file_id
        super().__init__(message or f"Staged file not found: {file_id}")
