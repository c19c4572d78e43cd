"""Draft storage layer."""

from typing import Any, Callable, Optional
from datetime import datetime
import logging

from pydantic import ValidationError

from .database import Database, serialize_json, deserialize_json
from .errors import CapacityExceededError, StorageError
from ..maintenance.retention import RetentionSweeper
from ..models import DraftRecord, DraftIndex, utc_now, format_timestamp

logger = logging.getLogger(__name__)


DRAFT_PREFIX = "draft:"
INDEX_KEY = "drafts"


def draft_key(job_id: str) -> str:
    """Storage key of the draft for a job."""
    return f"{DRAFT_PREFIX}{job_id}"


class RecordStore:
    """
    Persistent storage for job-form drafts.

    Drafts live in a key/value table under ``draft:<job_id>``. A separate
    index record lists the job ids that have a draft. The two are written
    separately, so the index can point at a draft that no longer exists;
    reads and sweeps drop such entries instead of failing.

    When a write hits the store's capacity limit, the retention sweeper runs
    once and the write is retried once. A second failure is raised.
    """

    def __init__(
        self,
        database: Database,
        sweeper: Optional[RetentionSweeper] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.db = database
        self.clock = clock
        self.sweeper = sweeper or RetentionSweeper(clock=clock)

    async def initialize(self) -> Database:
        """Open the underlying database. Safe to call more than once."""
        await self.db.connect()
        return self.db

    # -------------------------------------------------------------------------
    # Draft operations
    # -------------------------------------------------------------------------

    async def put(self, job_id: str, data: Any) -> DraftRecord:
        """Save the draft for a job, replacing any existing one."""
        record = DraftRecord(job_id=job_id, data=data, timestamp=self.clock())
        try:
            await self._write(record)
        except CapacityExceededError as e:
            logger.warning(f"Draft store full while saving {job_id}, sweeping old drafts: {e}")
            try:
                report = await self.sweeper.sweep_records(self)
                logger.info(f"Capacity sweep removed {len(report.removed)} drafts")
            except StorageError as sweep_error:
                logger.warning(f"Capacity sweep failed: {sweep_error}")

            try:
                await self._write(record)
            except CapacityExceededError as retry_error:
                logger.error(f"Failed to save draft {job_id} after cleanup: {retry_error}")
                raise

        logger.debug(f"Saved draft for job {job_id}")
        return record

    async def get(self, job_id: str) -> Optional[Any]:
        """Get the saved form data for a job, or None if there is no usable draft."""
        raw = await self._read_raw(draft_key(job_id))
        if raw is None:
            await self._repair_index(job_id)
            return None

        record = self._parse(job_id, raw)
        if record is None:
            return None
        return record.data

    async def get_record(self, job_id: str) -> Optional[DraftRecord]:
        """Get the full draft record (data and timestamp)."""
        raw = await self._read_raw(draft_key(job_id))
        if raw is None:
            return None
        return self._parse(job_id, raw)

    async def delete(self, job_id: str) -> None:
        """Delete the draft for a job. Does nothing if there is none."""
        await self.remove_record(job_id)

        index = await self._read_index()
        if index.remove(job_id):
            await self._write_index(index)

        logger.debug(f"Deleted draft for job {job_id}")

    async def list_known_keys(self) -> list[str]:
        """
        List the job ids recorded in the draft index.

        Entries are not checked against stored drafts; use ``get`` for an
        authoritative answer.
        """
        index = await self._read_index()
        return list(index.keys)

    async def count(self) -> int:
        """Count stored drafts."""
        row = await self.db.fetch_one(
            "SELECT COUNT(*) AS count FROM records WHERE key LIKE ?",
            (f"{DRAFT_PREFIX}%",)
        )
        return row["count"] if row else 0

    # -------------------------------------------------------------------------
    # Sweep primitives
    # -------------------------------------------------------------------------

    async def remove_record(self, job_id: str) -> bool:
        """Delete a stored draft without touching the index."""
        cursor = await self.db.execute(
            "DELETE FROM records WHERE key = ?",
            (draft_key(job_id),)
        )
        return cursor.rowcount > 0

    async def replace_index(self, job_ids: list[str]) -> None:
        """Overwrite the draft index with exactly the given job ids."""
        await self._write_index(DraftIndex.from_keys(job_ids))

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    async def _write(self, record: DraftRecord) -> None:
        # Index goes first: a torn write leaves a dangling index entry,
        # never an unindexed draft.
        index = await self._read_index()
        if index.add(record.job_id):
            await self._write_index(index)

        await self._set(draft_key(record.job_id), record.model_dump_json())

    async def _set(self, key: str, value: str) -> None:
        await self.db.execute(
            """
            INSERT INTO records (key, value, updated_at) VALUES (?, ?, ?)
            ON CONFLICT(key) DO UPDATE SET
                value = excluded.value,
                updated_at = excluded.updated_at
            """,
            (key, value, format_timestamp(self.clock()))
        )

    async def _read_raw(self, key: str) -> Optional[str]:
        row = await self.db.fetch_one(
            "SELECT value FROM records WHERE key = ?",
            (key,)
        )
        if row:
            return row["value"]
        return None

    async def _read_index(self) -> DraftIndex:
        keys = deserialize_json(await self._read_raw(INDEX_KEY), [])
        if not isinstance(keys, list):
            return DraftIndex()
        return DraftIndex.from_keys(keys)

    async def _write_index(self, index: DraftIndex) -> None:
        await self._set(INDEX_KEY, serialize_json(index.keys))

    async def _repair_index(self, job_id: str) -> None:
        """Drop an index entry whose draft is missing."""
        index = await self._read_index()
        if not index.remove(job_id):
            return
        try:
            await self._write_index(index)
            logger.warning(f"Dropped dangling draft index entry: {job_id}")
        except StorageError as e:
            logger.warning(f"Could not repair draft index for {job_id}: {e}")

    def _parse(self, job_id: str, raw: str) -> Optional[DraftRecord]:
        try:
            return DraftRecord.model_validate_json(raw)
        except ValidationError:
            logger.warning(f"Ignoring corrupt draft for job {job_id}")
            return None
