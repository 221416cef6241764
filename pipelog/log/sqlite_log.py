import asyncio
import os
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, AsyncIterator, List, Optional, Sequence, Tuple

import aiosqlite
from pydantic import ValidationError

from pipelog.errors import StorageError, StorageTimeoutError
from pipelog.log.interfaces import LogStore
from pipelog.models import EventType, LogRecord
from pipelog.utils.logging import get_logger

logger = get_logger("SQLiteLogStore")

_COLUMNS = "msg_offset, msg_key, type, event_type, data, event_size, created_at"


def _parse_timestamp(value: str) -> datetime:
    # Rows written by other producers may carry a trailing 'Z'
    ts = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts


class SQLiteLogStore(LogStore):
    """
    Durable log store backed by a single SQLite table.

    One writer connection (serialized by an asyncio.Lock) commits whole batches;
    every read opens its own connection inside a read transaction, so with WAL
    journaling a poll sees a consistent snapshot and never a half-written batch.
    """

    def __init__(self, path: str, table_name: str = "event", read_timeout: float = 5.0, page_size: int = 256):
        self.path = path
        self.table_name = table_name
        self.read_timeout = read_timeout
        self.page_size = page_size
        self._db: Optional[aiosqlite.Connection] = None
        self._write_lock = asyncio.Lock()
        # An in-memory database is private to its connection, so reads must share it
        self._shared = path == ":memory:"

    async def start(self) -> None:
        if self._db is not None:
            return

        dirname = os.path.dirname(self.path)
        if dirname and not os.path.exists(dirname):
            os.makedirs(dirname)

        try:
            self._db = await aiosqlite.connect(self.path, timeout=self.read_timeout)
            if not self._shared:
                await self._db.execute("PRAGMA journal_mode=WAL")
            await self._db.execute(
                f"""
                CREATE TABLE IF NOT EXISTS {self.table_name} (
                    msg_offset INTEGER PRIMARY KEY NOT NULL,
                    msg_key    TEXT NOT NULL,
                    type       TEXT NOT NULL,
                    event_type TEXT NOT NULL DEFAULT 'M',
                    data       TEXT,
                    event_size INTEGER NOT NULL,
                    created_at TEXT NOT NULL
                )
                """
            )
            await self._migrate_legacy_schema()
            await self._db.execute(
                f"CREATE INDEX IF NOT EXISTS idx_{self.table_name}_type_offset "
                f"ON {self.table_name}(type, msg_offset)"
            )
            await self._db.execute(
                f"CREATE INDEX IF NOT EXISTS idx_{self.table_name}_size "
                f"ON {self.table_name}(event_size)"
            )
            await self._db.commit()
        except aiosqlite.Error as e:
            raise StorageError(f"Failed to open SQLite log at {self.path}: {e}") from e

        logger.info(f"Opened SQLite log store at {self.path}")

    async def _migrate_legacy_schema(self) -> None:
        """Tables created by older producers have no event_type column."""
        async with self._db.execute(f"PRAGMA table_info({self.table_name})") as cursor:
            columns = {row[1] async for row in cursor}
        if "event_type" not in columns:
            logger.info(f"Adding event_type column to legacy table {self.table_name}")
            await self._db.execute(
                f"ALTER TABLE {self.table_name} ADD COLUMN event_type TEXT NOT NULL DEFAULT 'M'"
            )

    async def stop(self) -> None:
        if self._db:
            await self._db.close()
            self._db = None

    def _require_started(self) -> aiosqlite.Connection:
        if not self._db:
            raise RuntimeError("Store not started")
        return self._db

    async def append_batch(self, records: List[LogRecord]) -> None:
        db = self._require_started()
        if not records:
            return

        rows = [
            (
                r.offset,
                r.key,
                r.topic,
                r.event_type.code,
                r.data,
                r.size_bytes,
                r.created_at.isoformat(),
            )
            for r in records
        ]

        async with self._write_lock:
            try:
                await db.executemany(
                    f"INSERT INTO {self.table_name} ({_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?)",
                    rows,
                )
                await db.commit()
            except aiosqlite.Error as e:
                await db.rollback()
                logger.error(
                    f"Rolled back batch of {len(rows)} records "
                    f"(offsets {rows[0][0]}..{rows[-1][0]}): {e}"
                )
                raise StorageError(f"Batch insert failed: {e}") from e

    @asynccontextmanager
    async def _reader(self) -> AsyncIterator[aiosqlite.Connection]:
        db = self._require_started()
        if self._shared:
            yield db
            return
        try:
            conn = await aiosqlite.connect(self.path, timeout=self.read_timeout)
        except aiosqlite.Error as e:
            raise StorageError(f"Failed to open read connection: {e}") from e
        try:
            yield conn
        finally:
            await conn.close()

    async def _bounded(self, conn: aiosqlite.Connection, coro) -> Any:
        try:
            return await asyncio.wait_for(coro, timeout=self.read_timeout)
        except asyncio.TimeoutError as e:
            if not self._shared:
                # The statement keeps running on the connection thread until interrupted
                await conn.interrupt()
            logger.error(f"Read on {self.path} exceeded {self.read_timeout}s")
            raise StorageTimeoutError(f"Read exceeded {self.read_timeout}s") from e
        except aiosqlite.Error as e:
            logger.error(f"Read failed on {self.path}: {e}")
            raise StorageError(f"Read failed: {e}") from e

    async def _begin(self, conn: aiosqlite.Connection) -> None:
        await conn.execute("BEGIN")

    async def _fetch_all(self, conn: aiosqlite.Connection, sql: str, params: Sequence[Any]) -> List[Tuple]:
        async with conn.execute(sql, params) as cursor:
            return list(await cursor.fetchall())

    def _row_to_record(self, row: Tuple) -> Optional[LogRecord]:
        offset, key, topic, type_code, data, size, created_at = row
        try:
            return LogRecord(
                offset=offset,
                key=key,
                topic=topic,
                event_type=EventType.from_code(type_code),
                data=data,
                size_bytes=size,
                created_at=_parse_timestamp(created_at),
            )
        except (ValidationError, ValueError, TypeError, AttributeError) as e:
            logger.warning(f"Skipping unreadable row at offset {offset}: {e}")
            return None

    async def read_after(self, after_offset: int, max_size_bytes: Optional[int] = None) -> AsyncIterator[LogRecord]:
        sql = f"SELECT {_COLUMNS} FROM {self.table_name} WHERE msg_offset > ?"
        if max_size_bytes is not None:
            sql += " AND event_size <= ?"
        sql += " ORDER BY msg_offset ASC LIMIT ?"

        async with self._reader() as conn:
            if not self._shared:
                # Pin one snapshot across all pages
                await self._bounded(conn, self._begin(conn))
            try:
                cursor_offset = after_offset
                while True:
                    params: List[Any] = [cursor_offset]
                    if max_size_bytes is not None:
                        params.append(max_size_bytes)
                    params.append(self.page_size)

                    rows = await self._bounded(conn, self._fetch_all(conn, sql, params))
                    for row in rows:
                        record = self._row_to_record(row)
                        if record is not None:
                            yield record
                    if len(rows) < self.page_size:
                        break
                    cursor_offset = rows[-1][0]
            finally:
                if not self._shared:
                    await conn.rollback()

    async def _scalar(self, sql: str, params: Sequence[Any] = ()) -> Any:
        async with self._reader() as conn:
            rows = await self._bounded(conn, self._fetch_all(conn, sql, params))
        return rows[0][0] if rows else None

    async def max_offset(self) -> Optional[int]:
        return await self._scalar(f"SELECT MAX(msg_offset) FROM {self.table_name}")

    async def count(self) -> int:
        return await self._scalar(f"SELECT COUNT(*) FROM {self.table_name}") or 0

    async def count_by_size(self, min_bytes: int, max_bytes: Optional[int] = None) -> int:
        if max_bytes is None:
            return await self._scalar(
                f"SELECT COUNT(*) FROM {self.table_name} WHERE event_size >= ?", (min_bytes,)
            ) or 0
        return await self._scalar(
            f"SELECT COUNT(*) FROM {self.table_name} WHERE event_size >= ? AND event_size < ?",
            (min_bytes, max_bytes),
        ) or 0

    async def tail(self, limit: int) -> List[LogRecord]:
        async with self._reader() as conn:
            rows = await self._bounded(
                conn,
                self._fetch_all(
                    conn,
                    f"SELECT {_COLUMNS} FROM {self.table_name} ORDER BY msg_offset DESC LIMIT ?",
                    (limit,),
                )
            )
        records = [self._row_to_record(row) for row in reversed(rows)]
        return [r for r in records if r is not None]
