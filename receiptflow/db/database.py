"""
SQLite persistence for receiptflow.

One shared aiosqlite connection backs the whole process.

Statements:
    - values are always bound as parameters
    - table names must be one of the receiptflow tables
    - column names must be plain identifiers

Units of work:
    - ``transaction()`` issues BEGIN IMMEDIATE and commits on exit, rolling
      back if the block raises; nested calls and the write helpers join
      the open transaction
    - a single lock orders every statement on the connection
    - WAL journaling and foreign key enforcement are switched on at connect

Tables:
    - documents: inbox files and their OCR lifecycle, one row per content hash
    - bills / receipts: ledger records, converted or entered by hand
    - ocr_attempts: append-only provider call log addressed by
      (entity_type, entity_id)
"""

import asyncio
import json
import logging
import re
from contextlib import asynccontextmanager
from contextvars import ContextVar
from pathlib import Path
from typing import Any, AsyncIterator

import aiosqlite

from receiptflow.core.config import get_settings

logger = logging.getLogger(__name__)

_IDENTIFIER = re.compile(r'^[A-Za-z_][A-Za-z0-9_]{0,63}$')

_TABLES = frozenset({'documents', 'bills', 'receipts', 'ocr_attempts'})


def _check_identifier(name: str, kind: str = "identifier") -> str:
    """Reject anything that is not a plain SQL identifier of at most 64 chars.

    Raises:
        ValueError: If ``name`` cannot be interpolated into SQL safely
    """
    if not name or not _IDENTIFIER.match(name):
        raise ValueError(f"Not a valid {kind}: {name!r}")
    return name


def _check_table(table: str) -> str:
    if _check_identifier(table, "table") not in _TABLES:
        raise ValueError(f"Table {table!r} is not one of {sorted(_TABLES)}")
    return table


def _prepare_values(data: dict[str, Any]) -> dict[str, Any]:
    """Validate column names and serialise dict/list values to JSON text."""
    return {
        _check_identifier(column, "column"): json.dumps(value) if isinstance(value, (dict, list)) else value
        for column, value in data.items()
    }

# SQL schema for tables
SCHEMA = """
-- Documents picked up from the inbox
CREATE TABLE IF NOT EXISTS documents (
    id TEXT PRIMARY KEY,
    filename TEXT NOT NULL,
    stored_path TEXT NOT NULL,
    content_type TEXT NOT NULL,
    file_size INTEGER NOT NULL DEFAULT 0,
    content_hash TEXT NOT NULL,
    upload_timestamp TEXT NOT NULL,
    status TEXT NOT NULL DEFAULT 'created',
    provider TEXT,
    amount TEXT,
    document_date TEXT,
    currency TEXT,
    failure_reason TEXT,
    linked_entity_id TEXT,
    linked_entity_type TEXT,
    ocr_processed_at TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

-- Bills
CREATE TABLE IF NOT EXISTS bills (
    id TEXT PRIMARY KEY,
    filename TEXT,
    stored_path TEXT,
    content_type TEXT,
    file_size INTEGER,
    content_hash TEXT,
    upload_timestamp TEXT,
    provider TEXT,
    amount TEXT,
    document_date TEXT,
    currency TEXT,
    description TEXT,
    ocr_processed_at TEXT,
    original_document_id TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

-- Receipts, optionally attached to a bill
CREATE TABLE IF NOT EXISTS receipts (
    id TEXT PRIMARY KEY,
    bill_id TEXT,
    filename TEXT,
    stored_path TEXT,
    content_type TEXT,
    file_size INTEGER,
    content_hash TEXT,
    upload_timestamp TEXT,
    provider TEXT,
    amount TEXT,
    document_date TEXT,
    currency TEXT,
    description TEXT,
    ocr_processed_at TEXT,
    original_document_id TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    FOREIGN KEY (bill_id) REFERENCES bills(id)
);

-- OCR attempt audit trail (polymorphic entity reference)
CREATE TABLE IF NOT EXISTS ocr_attempts (
    id TEXT PRIMARY KEY,
    entity_type TEXT NOT NULL,
    entity_id TEXT NOT NULL,
    timestamp TEXT NOT NULL,
    engine_used TEXT NOT NULL,
    status TEXT NOT NULL,
    extracted_data_json TEXT,
    error_message TEXT,
    raw_response TEXT,
    processing_duration_ms INTEGER NOT NULL DEFAULT 0
);

-- Indexes for common queries
CREATE UNIQUE INDEX IF NOT EXISTS idx_documents_content_hash ON documents(content_hash);
CREATE INDEX IF NOT EXISTS idx_documents_status ON documents(status);
CREATE INDEX IF NOT EXISTS idx_bills_content_hash ON bills(content_hash);
CREATE INDEX IF NOT EXISTS idx_bills_original_document_id ON bills(original_document_id);
CREATE INDEX IF NOT EXISTS idx_receipts_content_hash ON receipts(content_hash);
CREATE INDEX IF NOT EXISTS idx_receipts_bill_id ON receipts(bill_id);
CREATE INDEX IF NOT EXISTS idx_ocr_attempts_entity ON ocr_attempts(entity_type, entity_id, timestamp);
"""


class Database:
    """Shared aiosqlite connection with serialised access and transactions."""

    def __init__(self, db_path: str | Path, wal_mode: bool = True):
        self.db_path = Path(db_path)
        self.wal_mode = wal_mode
        self._connection: aiosqlite.Connection | None = None
        self._lock = asyncio.Lock()
        self._in_transaction: ContextVar[bool] = ContextVar(
            f"receiptflow_db_tx_{id(self)}", default=False
        )

    async def connect(self) -> None:
        """Open the connection, creating the parent directory if needed."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        self._connection = await aiosqlite.connect(
            self.db_path,
            isolation_level=None  # Explicit BEGIN/COMMIT only
        )

        if self.wal_mode:
            await self._connection.execute("PRAGMA journal_mode=WAL")

        await self._connection.execute("PRAGMA foreign_keys=ON")

        # Rows convert to dicts by column name
        self._connection.row_factory = aiosqlite.Row

        logger.info(f"Opened SQLite database at {self.db_path}")

    async def disconnect(self) -> None:
        """Close the connection if open."""
        if self._connection:
            await self._connection.close()
            self._connection = None
            logger.info("SQLite database closed")

    async def init_schema(self) -> None:
        """Create tables and indexes that do not exist yet."""
        if not self._connection:
            raise RuntimeError("Database is not connected")

        async with self._lock:
            await self._connection.executescript(SCHEMA)
        logger.info("Schema ready")

    @property
    def connection(self) -> aiosqlite.Connection:
        """The open connection; raises if ``connect`` has not run."""
        if not self._connection:
            raise RuntimeError("Database is not connected")
        return self._connection

    @property
    def in_transaction(self) -> bool:
        return self._in_transaction.get()

    @asynccontextmanager
    async def _serialized(self) -> AsyncIterator[None]:
        if self._in_transaction.get():
            yield
        else:
            async with self._lock:
                yield

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator["Database"]:
        """Run a unit of work atomically.

        Nested calls join the outer transaction. Any exception rolls the
        whole unit back and is re-raised.
        """
        if self._in_transaction.get():
            yield self
            return

        async with self._lock:
            token = self._in_transaction.set(True)
            try:
                await self.connection.execute("BEGIN IMMEDIATE")
                try:
                    yield self
                except BaseException:
                    await self.connection.execute("ROLLBACK")
                    raise
                await self.connection.execute("COMMIT")
            finally:
                self._in_transaction.reset(token)

    async def execute(
        self,
        query: str,
        parameters: tuple | dict | None = None
    ) -> aiosqlite.Cursor:
        """Run one statement outside of the write helpers."""
        async with self._serialized():
            if parameters:
                return await self.connection.execute(query, parameters)
            return await self.connection.execute(query)

    async def fetch_one(
        self,
        query: str,
        parameters: tuple | dict | None = None
    ) -> dict[str, Any] | None:
        """Return the first row as a dict, or None."""
        async with self._serialized():
            cursor = await self.connection.execute(query, parameters or ())
            row = await cursor.fetchone()
        if row:
            return dict(row)
        return None

    async def fetch_all(
        self,
        query: str,
        parameters: tuple | dict | None = None
    ) -> list[dict[str, Any]]:
        """Return every row as a dict."""
        async with self._serialized():
            cursor = await self.connection.execute(query, parameters or ())
            rows = await cursor.fetchall()
        return [dict(row) for row in rows]

    async def insert(self, table: str, data: dict[str, Any]) -> str:
        """Insert one row and return its ``id`` value.

        Raises:
            ValueError: If the table or a column name is rejected
            aiosqlite.IntegrityError: On constraint violations
        """
        values = _prepare_values(data)
        query = (
            f"INSERT INTO {_check_table(table)} ({', '.join(values)}) "
            f"VALUES ({', '.join('?' * len(values))})"
        )

        async with self.transaction():
            await self.execute(query, tuple(values.values()))
        return data.get("id", "")

    async def update(
        self,
        table: str,
        data: dict[str, Any],
        where: str,
        where_params: tuple
    ) -> int:
        """Set ``data`` on every row matching ``where``; returns the row count.

        ``where`` is trusted SQL with ``?`` placeholders bound from
        ``where_params``.
        """
        values = _prepare_values(data)
        assignments = ", ".join(f"{column} = ?" for column in values)
        query = f"UPDATE {_check_table(table)} SET {assignments} WHERE {where}"

        async with self.transaction():
            cursor = await self.execute(query, tuple(values.values()) + where_params)
            return cursor.rowcount

    async def delete(self, table: str, where: str, where_params: tuple) -> int:
        """Delete rows matching ``where``; returns the row count."""
        query = f"DELETE FROM {_check_table(table)} WHERE {where}"
        async with self.transaction():
            cursor = await self.execute(query, where_params)
            return cursor.rowcount


# Global database instance
_database: Database | None = None


async def get_database() -> Database:
    """Return the process-wide database, connecting on first use."""
    global _database
    if _database is None:
        settings = get_settings()
        _database = Database(settings.database.path, wal_mode=settings.database.wal_mode)
        await _database.connect()
        await _database.init_schema()
    return _database


async def init_database() -> Database:
    """Connect and create the schema at startup."""
    return await get_database()


async def close_database() -> None:
    """Close and forget the process-wide database."""
    global _database
    if _database:
        await _database.disconnect()
        _database = None
