"""Tests for the staged file store."""

import asyncio
import pytest
from datetime import timedelta

from draftstage.models import FileBlob
from draftstage.storage import (
    BlobStore,
    Database,
    EngineUnavailableError,
    FileNotFoundInStoreError,
    NotFoundError,
    FILES_SCHEMA,
)


def _blob(name: str, data: bytes = b"data") -> FileBlob:
    return FileBlob(name=name, mime_type="image/jpeg", data=data)


class TestBlobStore:
    """Tests for staging and reading files."""
    
    @pytest.mark.asyncio
    async def test_put_and_get(self, blob_store, clock):
        """Test staging a file and reading it back."""
        file_id = await blob_store.put("J2", "A1", _blob("front.jpg", b"\x00\x01\x02"))
        
        record = await blob_store.get(file_id)
        
        assert record.id == file_id
        assert record.job_id == "J2"
        assert record.attribute_id == "A1"
        assert record.name == "front.jpg"
        assert record.mime_type == "image/jpeg"
        assert record.data == b"\x00\x01\x02"
        assert record.size_bytes == 3
        assert record.timestamp == clock.now
    
    @pytest.mark.asyncio
    async def test_get_unknown_raises(self, blob_store):
        """Test that an unknown id is an explicit failure."""
        with pytest.raises(FileNotFoundInStoreError) as exc_info:
            await blob_store.get("missing")
        
        assert exc_info.value.file_id == "missing"
        assert isinstance(exc_info.value, NotFoundError)
    
    @pytest.mark.asyncio
    async def test_empty_attachment_is_not_missing(self, blob_store):
        file_id = await blob_store.put("J2", "A1", FileBlob(name="empty.txt"))
        
        record = await blob_store.get(file_id)
        
        assert record.data == b""
        assert record.size_bytes == 0
    
    @pytest.mark.asyncio
    async def test_rapid_puts_get_distinct_ids(self, blob_store):
        """Test that files staged at the same instant don't collide."""
        ids = [await blob_store.put("J2", "A1", _blob(f"{i}.jpg")) for i in range(10)]
        
        assert len(set(ids)) == 10
    
    @pytest.mark.asyncio
    async def test_delete_is_idempotent(self, blob_store):
        file_id = await blob_store.put("J2", "A1", _blob("a.jpg"))
        
        assert await blob_store.delete(file_id) is True
        assert await blob_store.delete(file_id) is False
        
        with pytest.raises(FileNotFoundInStoreError):
            await blob_store.get(file_id)
    
    @pytest.mark.asyncio
    async def test_list_for_job_and_attribute(self, blob_store):
        """Test that attribute listing returns exactly that attribute's files."""
        a1 = [await blob_store.put("J2", "A1", _blob(f"a1-{i}.jpg")) for i in range(3)]
        a2 = await blob_store.put("J2", "A2", _blob("a2.jpg"))
        await blob_store.put("J3", "A1", _blob("other-job.jpg"))
        
        listed_a1 = await blob_store.list_for_job_and_attribute("J2", "A1")
        listed_a2 = await blob_store.list_for_job_and_attribute("J2", "A2")
        
        assert sorted(r.id for r in listed_a1) == sorted(a1)
        assert [r.id for r in listed_a2] == [a2]
        assert await blob_store.list_for_job_and_attribute("J2", "A9") == []
    
    @pytest.mark.asyncio
    async def test_counts_and_delete_by_job(self, blob_store):
        for i in range(3):
            await blob_store.put("J2", "A1", _blob(f"{i}.jpg", b"12345"))
        await blob_store.put("J2", "A2", _blob("x.jpg", b"1"))
        await blob_store.put("J3", "A1", _blob("y.jpg", b"12"))
        
        assert await blob_store.count_by_job("J2") == {"A1": 3, "A2": 1}
        assert await blob_store.total_size() == {"files": 5, "bytes": 18}
        
        assert await blob_store.delete_by_job("J2") == 4
        assert await blob_store.list_for_job("J2") == []
        assert await blob_store.total_size() == {"files": 1, "bytes": 2}
    
    @pytest.mark.asyncio
    async def test_put_path_and_export(self, blob_store, tmp_dir):
        """Test staging a file from disk and writing it back out."""
        source = tmp_dir / "meter.png"
        source.write_bytes(b"\x89PNG fake")
        
        file_id = await blob_store.put_path("J2", "A1", source)
        record = await blob_store.get(file_id)
        assert record.name == "meter.png"
        assert record.mime_type == "image/png"
        
        out_dir = tmp_dir / "out"
        out_dir.mkdir()
        written = await blob_store.export(file_id, out_dir)
        
        assert written == out_dir / "meter.png"
        assert written.read_bytes() == b"\x89PNG fake"
    
    @pytest.mark.asyncio
    async def test_export_unknown_raises(self, blob_store, tmp_dir):
        with pytest.raises(FileNotFoundInStoreError):
            await blob_store.export("missing", tmp_dir / "x.bin")


class TestBlobStoreLifecycle:
    """Tests for opening the staged file store."""
    
    @pytest.mark.asyncio
    async def test_concurrent_initialize(self, tmp_dir):
        """Test that concurrent initialize calls open the store once."""
        db = Database(tmp_dir / "files.db", FILES_SCHEMA)
        store = BlobStore(db)
        try:
            handles = await asyncio.gather(*(store.initialize() for _ in range(5)))
            
            assert all(handle is db for handle in handles)
            assert db.is_connected
            await store.put("J1", "A1", _blob("a.jpg"))
        finally:
            await db.close()
    
    @pytest.mark.asyncio
    async def test_unopened_store_is_unavailable(self, tmp_dir):
        store = BlobStore(Database(tmp_dir / "files.db", FILES_SCHEMA))
        
        with pytest.raises(EngineUnavailableError):
            await store.get("anything")
    
    @pytest.mark.asyncio
    async def test_survives_reopen(self, tmp_dir):
        """Test that staged files persist across connections."""
        db = Database(tmp_dir / "files.db", FILES_SCHEMA)
        await BlobStore(db).initialize()
        file_id = await BlobStore(db).put("J1", "A1", _blob("a.jpg", b"kept"))
        await db.close()
        
        reopened = Database(tmp_dir / "files.db", FILES_SCHEMA)
        store = BlobStore(reopened)
        await store.initialize()
        try:
            assert (await store.get(file_id)).data == b"kept"
        finally:
            await reopened.close()


class TestSweepOlderThan:
    """Tests for age-based eviction of staged files."""
    
    @pytest.mark.asyncio
    async def test_removes_exactly_the_expired(self, blob_store, clock):
        """Test that only files strictly older than the cutoff are removed."""
        start = clock.now
        ages_in_hours = [0, 1, 1, 5, 23, 24, 25, 30, 30, 47, 48]
        ids_by_hour = {}
        for hour in ages_in_hours:
            clock.now = start + timedelta(hours=hour)
            ids_by_hour.setdefault(hour, []).append(
                await blob_store.put("J1", f"A{hour % 3}", _blob(f"{hour}.jpg"))
            )
        
        # Cutoff lands exactly on the hour-24 files, which are kept
        clock.now = start + timedelta(hours=48)
        blob_store.sweep_batch_size = 2
        removed = await blob_store.sweep_older_than(timedelta(hours=24))
        
        expected_removed = sum(len(v) for h, v in ids_by_hour.items() if h < 24)
        expected_kept = sorted(i for h, v in ids_by_hour.items() if h >= 24 for i in v)
        assert removed == expected_removed
        assert sorted(r.id for r in await blob_store.list_for_job("J1")) == expected_kept
    
    @pytest.mark.asyncio
    async def test_sweep_everything(self, blob_store, clock):
        for i in range(7):
            await blob_store.put(f"J{i % 2}", "A1", _blob(f"{i}.jpg"))
            clock.advance(minutes=1)
        clock.advance(days=30)
        blob_store.sweep_batch_size = 3
        
        assert await blob_store.sweep_older_than(timedelta(days=7)) == 7
        assert await blob_store.total_size() == {"files": 0, "bytes": 0}
    
    @pytest.mark.asyncio
    async def test_unparseable_timestamp_counts_as_expired(self, blob_store, files_db):
        file_id = await blob_store.put("J1", "A1", _blob("a.jpg"))
        await files_db.execute("UPDATE files SET timestamp = ? WHERE id = ?", ("garbage", file_id))
        
        assert await blob_store.sweep_older_than(timedelta(days=7)) == 1
