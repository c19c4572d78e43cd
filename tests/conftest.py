"""Shared fixtures for the storage tests."""

import tempfile
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from draftstage.storage import Database, RecordStore, BlobStore, DRAFTS_SCHEMA, FILES_SCHEMA


class FakeClock:
    """A settable clock for retention tests."""
    
    def __init__(self, start: datetime = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)):
        self.now = start
    
    def __call__(self) -> datetime:
        return self.now
    
    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture
def tmp_dir():
    """A temporary directory for database files."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
async def drafts_db(tmp_dir):
    """Create a temporary draft database for testing."""
    db = Database(tmp_dir / "drafts.db", DRAFTS_SCHEMA)
    await db.connect()
    yield db
    await db.close()


@pytest.fixture
async def files_db(tmp_dir):
    """Create a temporary staged file database for testing."""
    db = Database(tmp_dir / "files.db", FILES_SCHEMA)
    await db.connect()
    yield db
    await db.close()


@pytest.fixture
async def record_store(drafts_db, clock):
    return RecordStore(drafts_db, clock=clock)


@pytest.fixture
async def blob_store(files_db, clock):
    return BlobStore(files_db, clock=clock)
