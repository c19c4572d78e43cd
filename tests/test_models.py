"""Tests for data models."""

import pytest
from datetime import datetime, timedelta, timezone

from draftstage.models import (
    DraftRecord,
    DraftIndex,
    FileBlob,
    FileRecord,
    generate_file_id,
    format_timestamp,
    parse_timestamp,
)


class TestDraftRecord:
    """Tests for the DraftRecord model."""
    
    def test_create_record(self):
        """Test creating a draft with a default timestamp."""
        record = DraftRecord(job_id="J1", data={"notes": "a"})
        
        assert record.job_id == "J1"
        assert record.data == {"notes": "a"}
        assert record.timestamp.tzinfo is not None
    
    def test_json_round_trip(self):
        """Test that a stored draft parses back to the same record."""
        record = DraftRecord(
            job_id="J1",
            data={"rooms": [{"name": "Kitchen", "ok": True}]},
            timestamp=datetime(2026, 3, 1, 8, 30, tzinfo=timezone.utc),
        )
        
        parsed = DraftRecord.model_validate_json(record.model_dump_json())
        
        assert parsed == record
    
    def test_is_older_than(self):
        """Test the strict age comparison."""
        stamp = datetime(2026, 3, 1, tzinfo=timezone.utc)
        record = DraftRecord(job_id="J1", timestamp=stamp)
        
        assert record.is_older_than(stamp + timedelta(seconds=1))
        assert not record.is_older_than(stamp)


class TestDraftIndex:
    """Tests for the DraftIndex model."""
    
    def test_add_keeps_order_and_uniqueness(self):
        index = DraftIndex()
        
        assert index.add("b")
        assert index.add("a")
        assert not index.add("b")
        
        assert index.keys == ["b", "a"]
        assert "a" in index
        assert len(index) == 2
    
    def test_remove(self):
        index = DraftIndex(keys=["a", "b"])
        
        assert index.remove("a")
        assert not index.remove("a")
        assert index.keys == ["b"]
    
    def test_from_keys_drops_garbage(self):
        """Test that non-string and duplicate keys are discarded."""
        index = DraftIndex.from_keys(["a", 3, None, "a", "b"])
        
        assert index.keys == ["a", "b"]


class TestFileModels:
    """Tests for staged file models."""
    
    def test_file_id_format(self):
        created = datetime(2026, 3, 1, tzinfo=timezone.utc)
        file_id = generate_file_id("J2", "A1", created)
        
        job_id, attribute_id, millis, suffix = file_id.split("_")
        assert (job_id, attribute_id) == ("J2", "A1")
        assert int(millis) == int(created.timestamp() * 1000)
        assert suffix
    
    def test_file_ids_unique_within_same_millisecond(self):
        created = datetime(2026, 3, 1, tzinfo=timezone.utc)
        
        ids = {generate_file_id("J2", "A1", created) for _ in range(50)}
        
        assert len(ids) == 50
    
    def test_blob_size(self):
        blob = FileBlob(name="photo.jpg", mime_type="image/jpeg", data=b"\xff\xd8\xff")
        
        assert blob.size_bytes == 3
        assert FileBlob(name="empty.txt").size_bytes == 0
    
    def test_record_to_blob(self):
        record = FileRecord(
            id="x", job_id="J2", attribute_id="A1", name="a.txt", data=b"hi",
        )
        
        blob = record.to_blob()
        
        assert blob == FileBlob(name="a.txt", data=b"hi")


class TestTimestamps:
    """Tests for timestamp helpers."""
    
    def test_format_is_sortable(self):
        """Test that formatted timestamps sort in time order."""
        base = datetime(2026, 3, 1, 8, 0, 0, tzinfo=timezone.utc)
        stamps = [base, base + timedelta(microseconds=1), base + timedelta(seconds=1)]
        
        formatted = [format_timestamp(s) for s in stamps]
        
        assert formatted == sorted(formatted)
    
    def test_naive_treated_as_utc(self):
        naive = datetime(2026, 3, 1, 8, 0)
        
        assert parse_timestamp(format_timestamp(naive)) == naive.replace(tzinfo=timezone.utc)
        assert parse_timestamp("2026-03-01T08:00:00").tzinfo is not None
    
    @pytest.mark.parametrize("value", [None, "", "not a date"])
    def test_unparseable(self, value):
        assert parse_timestamp(value) is None
