"""Core data models for draftstage."""

from .enums import BindingState, SaveOutcome
from .timestamps import utc_now, parse_timestamp, format_timestamp
from .draft import DraftRecord, DraftIndex
from .file_record import FileBlob, FileRecord, generate_file_id

__all__ = [
    "BindingState",
    "SaveOutcome",
    "utc_now",
    "parse_timestamp",
    "format_timestamp",
    "DraftRecord",
    "DraftIndex",
    "FileBlob",
    "FileRecord",
    "generate_file_id",
]
