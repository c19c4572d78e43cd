"""Staged file storage layer."""

from typing import Callable, Optional
from datetime import datetime, timedelta
from pathlib import Path
import mimetypes
import logging

import aiofiles

from .database import Database
from .errors import FileNotFoundInStoreError
from ..models import (
    FileBlob,
    FileRecord,
    generate_file_id,
    utc_now,
    format_timestamp,
    parse_timestamp,
)
from ..models.file_record import DEFAULT_MIME_TYPE

logger = logging.getLogger(__name__)


class BlobStore:
    """
    Persistent storage for file attachments staged before upload.

    Files are indexed by owning job and by staging time. There is no compound
    index on ``(job_id, attribute_id)``: attribute lookups scan the job's
    files and filter in memory, which assumes a job has a modest number of
    attachments.
    """

    sweep_batch_size: int = 100
    """Rows fetched per cursor page during a sweep."""

    def __init__(
        self,
        database: Database,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.db = database
        self.clock = clock

    async def initialize(self) -> Database:
        """Open the underlying database. Safe to call concurrently."""
        await self.db.connect()
        return self.db

    async def put(self, job_id: str, attribute_id: str, file_blob: FileBlob) -> str:
        """Stage a file and return its generated identifier."""
        now = self.clock()
        record = FileRecord(
            id=generate_file_id(job_id, attribute_id, now),
            job_id=job_id,
            attribute_id=attribute_id,
            name=file_blob.name,
            mime_type=file_blob.mime_type,
            data=file_blob.data,
            timestamp=now,
        )

        await self.db.execute(
            """
            INSERT INTO files (
                id, job_id, attribute_id, name, mime_type, size_bytes, blob, timestamp
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                record.id,
                record.job_id,
                record.attribute_id,
                record.name,
                record.mime_type,
                record.size_bytes,
                record.data,
                format_timestamp(record.timestamp),
            )
        )

        logger.debug(f"Staged file {record.name} ({record.size_bytes} bytes) as {record.id}")
        return record.id

    async def put_path(
        self,
        job_id: str,
        attribute_id: str,
        path: Path | str,
        mime_type: Optional[str] = None,
    ) -> str:
        """Read a file from disk and stage it."""
        path = Path(path)
        async with aiofiles.open(path, "rb") as f:
            data = await f.read()

        if mime_type is None:
            mime_type = mimetypes.guess_type(path.name)[0] or DEFAULT_MIME_TYPE

        return await self.put(
            job_id,
            attribute_id,
            FileBlob(name=path.name, mime_type=mime_type, data=data),
        )

    async def get(self, file_id: str) -> FileRecord:
        """Get a staged file. Raises FileNotFoundInStoreError if unknown."""
        row = await self.db.fetch_one(
            "SELECT * FROM files WHERE id = ?",
            (file_id,)
        )
        if row is None:
            raise FileNotFoundInStoreError(file_id)
        return self._row_to_record(row)

    async def export(self, file_id: str, dest: Path | str) -> Path:
        """Write a staged file's contents to disk."""
        record = await self.get(file_id)
        dest = Path(dest)
        if dest.is_dir():
            dest = dest / record.name
        dest.parent.mkdir(parents=True, exist_ok=True)

        async with aiofiles.open(dest, "wb") as f:
            await f.write(record.data)

        logger.info(f"Exported staged file {file_id} to {dest}")
        return dest

    async def delete(self, file_id: str) -> bool:
        """Delete a staged file. Returns True if deleted."""
        cursor = await self.db.execute(
            "DELETE FROM files WHERE id = ?",
            (file_id,)
        )
        return cursor.rowcount > 0

    async def delete_by_job(self, job_id: str) -> int:
        """Delete all staged files for a job. Returns count deleted."""
        cursor = await self.db.execute(
            "DELETE FROM files WHERE job_id = ?",
            (job_id,)
        )
        return cursor.rowcount

    async def list_for_job(self, job_id: str) -> list[FileRecord]:
        """Get all staged files for a job, oldest first."""
        rows = await self.db.fetch_all(
            "SELECT * FROM files WHERE job_id = ? ORDER BY timestamp ASC, id ASC",
            (job_id,)
        )
        return [self._row_to_record(row) for row in rows]

    async def list_for_job_and_attribute(self, job_id: str, attribute_id: str) -> list[FileRecord]:
        """Get the staged files attached to one attribute of a job."""
        return [
            record for record in await self.list_for_job(job_id)
            if record.attribute_id == attribute_id
        ]

    async def count_by_job(self, job_id: str) -> dict[str, int]:
        """Get staged file counts by attribute for a job."""
        rows = await self.db.fetch_all(
            """
            SELECT attribute_id, COUNT(*) as count FROM files
            WHERE job_id = ? GROUP BY attribute_id
            """,
            (job_id,)
        )
        return {row["attribute_id"]: row["count"] for row in rows}

    async def total_size(self) -> dict[str, int]:
        """Get the number of staged files and their combined size."""
        row = await self.db.fetch_one(
            "SELECT COUNT(*) AS files, COALESCE(SUM(size_bytes), 0) AS bytes FROM files"
        )
        return {"files": row["files"], "bytes": row["bytes"]}

    async def sweep_older_than(self, retention_window: timedelta) -> int:
        """
        Delete every staged file older than ``now - retention_window``.

        Walks the timestamp index with a ``(timestamp, id)`` keyset cursor.
        Each page is fetched only after the previous page's deletions have
        completed, and the cursor position is a key rather than an offset,
        so deleting rows never shifts what the next page returns.

        Returns the number of files removed.
        """
        cutoff = self.clock() - retention_window
        last_timestamp, last_id = "", ""
        removed = 0

        while True:
            rows = await self.db.fetch_all(
                """
                SELECT id, timestamp FROM files
                WHERE timestamp > ? OR (timestamp = ? AND id > ?)
                ORDER BY timestamp ASC, id ASC
                LIMIT ?
                """,
                (last_timestamp, last_timestamp, last_id, self.sweep_batch_size)
            )
            if not rows:
                break

            for row in rows:
                staged_at = parse_timestamp(row["timestamp"])
                if staged_at is None or staged_at < cutoff:
                    if await self.delete(row["id"]):
                        removed += 1

            last_timestamp, last_id = rows[-1]["timestamp"], rows[-1]["id"]

        logger.info(f"File sweep removed {removed} staged files older than {cutoff.isoformat()}")
        return removed

    def _row_to_record(self, row: dict) -> FileRecord:
        """Convert a database row to a FileRecord object."""
        return FileRecord(
            id=row["id"],
            job_id=row["job_id"],
            attribute_id=row["attribute_id"],
            name=row["name"],
            mime_type=row["mime_type"],
            data=bytes(row["blob"]),
            timestamp=parse_timestamp(row["timestamp"]) or self.clock(),
        )
