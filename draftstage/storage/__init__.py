"""Storage layer for draftstage."""

from .database import Database, DRAFTS_SCHEMA, FILES_SCHEMA
from .errors import (
    StorageError,
    CapacityExceededError,
    EngineUnavailableError,
    NotFoundError,
    FileNotFoundInStoreError,
)
from .record_store import RecordStore
from .blob_store import BlobStore

__all__ = [
    "Database",
    "DRAFTS_SCHEMA",
    "FILES_SCHEMA",
    "StorageError",
    "CapacityExceededError",
    "EngineUnavailableError",
    "NotFoundError",
    "FileNotFoundInStoreError",
    "RecordStore",
    "BlobStore",
]
