"""SQLite database connection and schema management."""

import aiosqlite
import asyncio
import sqlite3
from pathlib import Path
from typing import Optional
import json
import logging

from .errors import CapacityExceededError, EngineUnavailableError, StorageError

logger = logging.getLogger(__name__)


# SQL schema for the draft key/value store
DRAFTS_SCHEMA = """
CREATE TABLE IF NOT EXISTS records (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL,
    updated_at TEXT NOT NULL
);
"""

# SQL schema for staged files
FILES_SCHEMA = """
CREATE TABLE IF NOT EXISTS files (
    id TEXT PRIMARY KEY,
    job_id TEXT NOT NULL,
    attribute_id TEXT NOT NULL,
    name TEXT NOT NULL,
    mime_type TEXT NOT NULL DEFAULT 'application/octet-stream',
    size_bytes INTEGER NOT NULL DEFAULT 0,
    blob BLOB NOT NULL,
    timestamp TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_files_job_id ON files(job_id);
CREATE INDEX IF NOT EXISTS idx_files_timestamp ON files(timestamp, id);
"""

SQLITE_FULL = 13


def translate_error(error: sqlite3.Error) -> StorageError:
    """Map a sqlite3 error onto the storage error taxonomy."""
    code = getattr(error, "sqlite_errorcode", None)
    message = str(error)
    if code is not None:
        # Extended result codes carry the primary code in the low byte.
        if code & 0xFF == SQLITE_FULL:
            return CapacityExceededError(message)
    elif "database or disk is full" in message.lower():
        return CapacityExceededError(message)
    if isinstance(error, (sqlite3.OperationalError, sqlite3.ProgrammingError)):
        return EngineUnavailableError(message)
    return StorageError(message)


class Database:
    """
    Async SQLite database connection manager.
    
    Each store owns one Database. ``connect()`` is idempotent and may be
    awaited from several coroutines at once; only the first one opens the
    file and applies the schema.
    """
    
    def __init__(
        self,
        db_path: Path | str,
        schema: str,
        max_bytes: Optional[int] = None,
    ):
        self.db_path = Path(db_path)
        self.schema = schema
        self.max_bytes = max_bytes
        self._connection: Optional[aiosqlite.Connection] = None
        self._connect_lock = asyncio.Lock()
    
    async def connect(self) -> None:
        """Establish database connection and initialize schema."""
        if self._connection is not None:
            return
        
        async with self._connect_lock:
            if self._connection is not None:
                return
            
            logger.info(f"Connecting to database: {self.db_path}")
            try:
                self.db_path.parent.mkdir(parents=True, exist_ok=True)
                connection = await aiosqlite.connect(
                    self.db_path,
                    isolation_level=None,  # Autocommit mode
                )
            except (OSError, sqlite3.Error) as e:
                raise EngineUnavailableError(f"Cannot open {self.db_path}: {e}") from e
            
            try:
                await connection.execute("PRAGMA journal_mode = WAL")
                if self.max_bytes:
                    await self._apply_quota(connection)
                async with connection.executescript(self.schema):
                    pass
            except sqlite3.Error as e:
                await connection.close()
                raise translate_error(e) from e
            
            self._connection = connection
            logger.info("Database connected and schema initialized")
    
    async def _apply_quota(self, connection: aiosqlite.Connection) -> None:
        """Bound the database file size with max_page_count."""
        async with connection.execute("PRAGMA page_size") as cursor:
            row = await cursor.fetchone()
        page_size = row[0] if row else 4096
        max_pages = max(1, self.max_bytes // page_size)
        await connection.execute(f"PRAGMA max_page_count = {int(max_pages)}")
        logger.debug(f"Limited {self.db_path.name} to {max_pages} pages of {page_size} bytes")
    
    async def close(self) -> None:
        """Close database connection."""
        if self._connection is not None:
            await self._connection.close()
            self._connection = None
            logger.info(f"Database connection closed: {self.db_path}")
    
    @property
    def is_connected(self) -> bool:
        return self._connection is not None
    
    @property
    def connection(self) -> aiosqlite.Connection:
        """Get the current connection (raises if not connected)."""
        if self._connection is None:
            raise EngineUnavailableError(
                f"Database {self.db_path} not connected. Call connect() first."
            )
        return self._connection
    
    async def execute(self, sql: str, params: tuple = ()) -> aiosqlite.Cursor:
        """Execute a SQL statement."""
        try:
            return await self.connection.execute(sql, params)
        except sqlite3.Error as e:
            raise translate_error(e) from e
    
    async def fetch_one(self, sql: str, params: tuple = ()) -> Optional[dict]:
        """Fetch a single row as a dictionary."""
        self.connection.row_factory = aiosqlite.Row
        try:
            async with self.connection.execute(sql, params) as cursor:
                row = await cursor.fetchone()
                if row:
                    return dict(row)
                return None
        except sqlite3.Error as e:
            raise translate_error(e) from e
    
    async def fetch_all(self, sql: str, params: tuple = ()) -> list[dict]:
        """Fetch all rows as dictionaries."""
        self.connection.row_factory = aiosqlite.Row
        try:
            async with self.connection.execute(sql, params) as cursor:
                rows = await cursor.fetchall()
                return [dict(row) for row in rows]
        except sqlite3.Error as e:
            raise translate_error(e) from e


# Utility functions for JSON serialization in SQLite

def serialize_json(data, sort_keys: bool = False) -> str:
    """Serialize data to JSON string for storage."""
    return json.dumps(data, default=str, sort_keys=sort_keys)


def deserialize_json(data: Optional[str], default=None):
    """Deserialize JSON string from storage."""
    if data is None:
        return default
    try:
        return json.loads(data)
    except json.JSONDecodeError:
        return default
