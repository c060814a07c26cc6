"""
Manages the SQLite database that stores crawl records.
"""

from __future__ import annotations

import asyncio
import json
import sqlite3
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, AsyncIterator, Dict, List, Optional, Sequence

import aiosqlite
import structlog
from sqlalchemy import create_engine

from wanderer.config.config import StorageConfig
from wanderer.exceptions import PersistenceError
from wanderer.protocols import ExtractedDocument

from .schema import TIMESTAMP_FORMAT
from .schema import metadata as db_metadata

logger = structlog.get_logger(__name__)

# The current version of the database schema.
# This should be incremented whenever the schema in schema.py changes.
CURRENT_SCHEMA_VERSION = 1

_JSON_COLUMNS = ("headings", "products", "error_messages", "metadata")
_INSERT_COLUMNS = (
    "url",
    "title",
    "description",
    "text",
    "word_count",
    "link_count",
    "image_count",
    "headings",
    "products",
    "mode",
    "depth",
    "parent_url",
    "status",
    "status_code",
    "error_messages",
    "retry_count",
    "category",
    "collection_hint",
    "timestamp",
    "metadata",
)
_INSERT_SQL = (
    f"INSERT INTO scraped_data ({', '.join(_INSERT_COLUMNS)}) " f"VALUES ({', '.join('?' for _ in _INSERT_COLUMNS)})"
)


def format_timestamp(value: datetime) -> str:
    """UTC text form used for the ``timestamp`` column."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime(TIMESTAMP_FORMAT)


def parse_timestamp(value: str) -> datetime:
    return datetime.strptime(value, TIMESTAMP_FORMAT).replace(tzinfo=timezone.utc)


def _row_values(document: ExtractedDocument) -> tuple:
    record = document.to_record()
    record["category"] = document.category or "general"
    record["timestamp"] = format_timestamp(document.timestamp)
    for column in _JSON_COLUMNS:
        record[column] = json.dumps(record[column], ensure_ascii=False, default=str)
    return tuple(record[column] for column in _INSERT_COLUMNS)


def _row_to_document(row: aiosqlite.Row) -> ExtractedDocument:
    record: Dict[str, Any] = dict(row)
    for column in _JSON_COLUMNS:
        raw = record.get(column)
        try:
            record[column] = json.loads(raw) if raw else None
        except (json.JSONDecodeError, TypeError):
            record[column] = None
    record["timestamp"] = parse_timestamp(record["timestamp"])
    return ExtractedDocument.from_record(record)


class SQLiteManager:
    """Handles all interactions with the SQLite database."""

    def __init__(self, config: StorageConfig):
        self.config = config
        self.db_path = Path(config.db_path)
        self._pool: asyncio.Queue[aiosqlite.Connection] = asyncio.Queue(maxsize=config.pool_size)
        self._engine = create_engine(f"sqlite:///{self.db_path}")
        self._initialized = False

    async def initialize(self) -> None:
        """Initializes the database, connection pool, and runs migrations."""
        if self._initialized:
            return
        for _ in range(self.config.pool_size):
            conn = await self._create_connection()
            await self._pool.put(conn)

        async with self.get_connection() as conn:
            await self._run_migrations(conn)
        self._initialized = True
        logger.info("SQLite datastore ready", db_path=str(self.db_path), pool_size=self.config.pool_size)

    async def _create_connection(self) -> aiosqlite.Connection:
        """Creates and configures a new database connection."""
        conn = await aiosqlite.connect(self.db_path)
        if self.config.wal_mode:
            await conn.execute("PRAGMA journal_mode=WAL;")
        await conn.execute("PRAGMA busy_timeout = 5000;")
        conn.row_factory = aiosqlite.Row
        return conn

    @asynccontextmanager
    async def get_connection(self) -> AsyncIterator[aiosqlite.Connection]:
        """Gets a connection from the pool."""
        conn = await self._pool.get()
        try:
            yield conn
        finally:
            await self._pool.put(conn)

    async def _run_migrations(self, conn: aiosqlite.Connection) -> None:
        """Checks schema version and applies migrations if necessary."""
        cursor = await conn.execute("PRAGMA user_version;")
        version_row = await cursor.fetchone()
        current_version = version_row[0] if version_row is not None else 0

        if current_version < CURRENT_SCHEMA_VERSION:
            logger.info(
                f"Database schema is out of date (v{current_version}). Migrating to v{CURRENT_SCHEMA_VERSION}..."
            )
            await asyncio.to_thread(db_metadata.create_all, self._engine)
            await conn.execute(f"PRAGMA user_version = {CURRENT_SCHEMA_VERSION};")
            await conn.commit()
            logger.info("Database migration complete.")

    async def bulk_insert(self, documents: Sequence[ExtractedDocument]) -> List[bool]:
        """
        Inserts documents one by one inside a single transaction.

        Rows that violate a constraint are skipped and reported as False;
        the rest of the batch is still written.

        Raises:
            PersistenceError: if the database itself fails. Nothing from the
                batch is committed in that case.
        """
        if not documents:
            return []

        results: List[bool] = []
        async with self.get_connection() as conn:
            try:
                for document in documents:
                    try:
                        await conn.execute(_INSERT_SQL, _row_values(document))
                        results.append(True)
                    except (sqlite3.IntegrityError, sqlite3.InterfaceError) as e:
                        logger.warning("Document rejected by datastore", url=document.url, error=str(e))
                        results.append(False)
                await conn.commit()
            except sqlite3.Error as e:
                await conn.rollback()
                raise PersistenceError(f"Batch write of {len(documents)} documents failed: {e}") from e
        return results

    async def find_recent_success(self, url: str, since: datetime) -> bool:
        sql = "SELECT 1 FROM scraped_data WHERE url = ? AND status = 'success' AND timestamp >= ? LIMIT 1"
        async with self.get_connection() as conn:
            cursor = await conn.execute(sql, (url, format_timestamp(since)))
            row = await cursor.fetchone()
            return row is not None

    async def count_by_category_and_mode(self, category: str, mode: str) -> int:
        sql = "SELECT COUNT(*) FROM scraped_data WHERE category = ? AND mode = ?"
        async with self.get_connection() as conn:
            cursor = await conn.execute(sql, (category, mode))
            row = await cursor.fetchone()
            return int(row[0]) if row is not None else 0

    async def find_by_url(self, url: str) -> Optional[ExtractedDocument]:
        """Most recent record for ``url``, if any."""
        sql = "SELECT * FROM scraped_data WHERE url = ? ORDER BY timestamp DESC, id DESC LIMIT 1"
        async with self.get_connection() as conn:
            cursor = await conn.execute(sql, (url,))
            row = await cursor.fetchone()
            return _row_to_document(row) if row is not None else None

    async def crawl_summary(self, mode: Optional[str] = None) -> Dict[str, Any]:
        """
        Aggregate counts over stored records, optionally for one mode.

        Wander summaries add link totals and average depth; strict summaries
        add product and heading totals.
        """
        where = "WHERE mode = ?" if mode else ""
        params: tuple = (mode,) if mode else ()
        sql = f"""
            SELECT
                COUNT(*) AS total,
                COALESCE(SUM(CASE WHEN status = 'success' THEN 1 ELSE 0 END), 0) AS succeeded,
                COALESCE(SUM(CASE WHEN status = 'failed' THEN 1 ELSE 0 END), 0) AS failed,
                COALESCE(SUM(link_count), 0) AS total_links,
                COALESCE(AVG(depth), 0) AS avg_depth,
                COALESCE(SUM(json_array_length(COALESCE(products, '[]'))), 0) AS total_products,
                COALESCE(SUM(
                    json_array_length(COALESCE(json_extract(headings, '$.h1'), '[]'))
                    + json_array_length(COALESCE(json_extract(headings, '$.h2'), '[]'))
                ), 0) AS total_headings
            FROM scraped_data {where}
        """
        async with self.get_connection() as conn:
            cursor = await conn.execute(sql, params)
            row = await cursor.fetchone()
            cursor = await conn.execute(
                f"SELECT category, COUNT(*) FROM scraped_data {where} GROUP BY category ORDER BY category", params
            )
            categories = {category: count for category, count in await cursor.fetchall()}

        total = int(row["total"])
        summary: Dict[str, Any] = {
            "mode": mode,
            "total": total,
            "succeeded": int(row["succeeded"]),
            "failed": int(row["failed"]),
            "success_rate": round(int(row["succeeded"]) / total * 100, 1) if total else 0.0,
            "categories": categories,
        }
        if mode in (None, "wander"):
            summary["total_links"] = int(row["total_links"])
            summary["avg_depth"] = round(float(row["avg_depth"]), 2)
        if mode in (None, "strict"):
            summary["total_products"] = int(row["total_products"])
            summary["total_headings"] = int(row["total_headings"])
        return summary

    async def close(self) -> None:
        """Closes all connections in the pool."""
        while not self._pool.empty():
            conn = await self._pool.get()
            await conn.close()
        self._engine.dispose()
        self._initialized = False
