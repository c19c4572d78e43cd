"""Draft models - locally persisted snapshots of job-form state."""

from datetime import datetime
from typing import Any
from pydantic import BaseModel, ConfigDict, Field, field_serializer

from .timestamps import utc_now, format_timestamp


class DraftRecord(BaseModel):
    """
    A saved snapshot of in-progress job-form state.
    
    There is at most one draft per job; saving again replaces it.
    """
    
    job_id: str
    """The job this draft belongs to."""
    
    data: Any = None
    """Opaque, JSON-serializable form state."""
    
    timestamp: datetime = Field(default_factory=utc_now)
    """When this draft was last written. Drives retention."""
    
    model_config = ConfigDict(extra="ignore")
    
    @field_serializer("timestamp")
    def _serialize_timestamp(self, value: datetime) -> str:
        return format_timestamp(value)
    
    def is_older_than(self, cutoff: datetime) -> bool:
        """Check if this draft was written strictly before the cutoff."""
        return self.timestamp < cutoff


class DraftIndex(BaseModel):
    """
    Ordered set of job ids that have a draft.
    
    The index is only eventually consistent with the stored drafts: it may
    list a job whose draft is gone. Sweeps and reads repair it.
    """
    
    keys: list[str] = Field(default_factory=list)
    
    def __contains__(self, job_id: str) -> bool:
        return job_id in self.keys
    
    def __len__(self) -> int:
        return len(self.keys)
    
    def add(self, job_id: str) -> bool:
        """Append a job id if absent. Returns True if the index changed."""
        if job_id in self.keys:
            return False
        self.keys.append(job_id)
        return True
    
    def remove(self, job_id: str) -> bool:
        """Drop a job id if present. Returns True if the index changed."""
        if job_id not in self.keys:
            return False
        self.keys = [key for key in self.keys if key != job_id]
        return True
    
    @classmethod
    def from_keys(cls, keys: list[Any]) -> "DraftIndex":
        """Build an index from raw stored keys, dropping duplicates and non-strings."""
        index = cls()
        for key in keys:
            if isinstance(key, str):
                index.add(key)
        return index
