"""File models - binary attachments staged locally before upload."""

from datetime import datetime
from typing import Optional
from pydantic import BaseModel, Field
from uuid import uuid4

from .timestamps import utc_now


DEFAULT_MIME_TYPE = "application/octet-stream"


def generate_file_id(job_id: str, attribute_id: str, created_at: Optional[datetime] = None) -> str:
    """
    Build a staged file identifier.
    
    Format: ``<job_id>_<attribute_id>_<epoch millis>_<random suffix>``. The
    random suffix keeps ids unique when several files are staged for the
    same attribute within one millisecond.
    """
    created_at = created_at or utc_now()
    millis = int(created_at.timestamp() * 1000)
    return f"{job_id}_{attribute_id}_{millis}_{uuid4().hex[:8]}"


class FileBlob(BaseModel):
    """An attachment payload as handed over by the file-attachment UI."""
    
    name: str
    """Original file name."""
    
    mime_type: str = DEFAULT_MIME_TYPE
    """MIME type reported by the caller."""
    
    data: bytes = b""
    """Raw file contents."""
    
    @property
    def size_bytes(self) -> int:
        return len(self.data)


class FileRecord(FileBlob):
    """
    A staged attachment as stored in the blob store.
    
    Several records can share a ``(job_id, attribute_id)`` pair; the pair is
    not checked against any owning entity.
    """
    
    id: str
    """Generated identifier, unique within the blob store."""
    
    job_id: str
    """Owning job."""
    
    attribute_id: str
    """Attribute (checklist item, category) the file is attached to."""
    
    timestamp: datetime = Field(default_factory=utc_now)
    """When the file was staged. Used only for retention."""

    def to_blob(self) -> FileBlob:
        """Strip the store metadata, leaving the attachment payload."""
        return FileBlob(name=self.name, mime_type=self.mime_type, data=self.data)
