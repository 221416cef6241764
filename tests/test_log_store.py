import os
import shutil
import sqlite3
import tempfile
import time
import unittest
from contextlib import aclosing
from datetime import datetime, timezone

from pipelog.errors import StorageError, StorageTimeoutError
from pipelog.log.memory_log import MemoryLogStore
from pipelog.log.sqlite_log import SQLiteLogStore
from pipelog.models import EventType, LogRecord


def make_record(offset: int, size: int, topic: str = "prices-v1", event_type: EventType = EventType.MESSAGE) -> LogRecord:
    # '{"v":"' + filler + '"}' is exactly `size` bytes
    data = '{"v":"' + "a" * (size - 8) + '"}'
    return LogRecord(
        offset=offset,
        topic=topic,
        key=f"key-{offset}",
        event_type=event_type,
        data=data,
        size_bytes=size,
        created_at=datetime(2024, 1, 1, tzinfo=timezone.utc),
    )


async def collect(store, after_offset, max_size_bytes=None):
    async with aclosing(store.read_after(after_offset, max_size_bytes)) as scan:
        return [r async for r in scan]


class LogStoreContract:
    """Behaviour every LogStore must share. Mixed into concrete test cases."""

    async def make_store(self):
        raise NotImplementedError

    async def asyncSetUp(self):
        self.store = await self.make_store()
        await self.store.start()

    async def asyncTearDown(self):
        await self.store.stop()

    async def test_empty_store(self):
        self.assertIsNone(await self.store.max_offset())
        self.assertEqual(await self.store.count(), 0)
        self.assertEqual(await collect(self.store, 0), [])
        self.assertEqual(await self.store.tail(5), [])

    async def test_append_and_read_in_offset_order(self):
        await self.store.append_batch([make_record(10, 100), make_record(11, 200)])
        await self.store.append_batch([make_record(15, 300)])

        records = await collect(self.store, 0)
        self.assertEqual([r.offset for r in records], [10, 11, 15])
        self.assertEqual(records[1].size_bytes, 200)
        self.assertEqual(records[1].key, "key-11")
        self.assertEqual(await self.store.max_offset(), 15)
        self.assertEqual(await self.store.count(), 3)

    async def test_read_after_is_strictly_greater(self):
        await self.store.append_batch([make_record(o, 50) for o in range(1, 6)])
        records = await collect(self.store, 3)
        self.assertEqual([r.offset for r in records], [4, 5])
        self.assertEqual(await collect(self.store, 5), [])
        self.assertEqual(await collect(self.store, 1000), [])

    async def test_read_after_filters_large_records(self):
        await self.store.append_batch([make_record(1, 100), make_record(2, 5000), make_record(3, 100)])
        records = await collect(self.store, 0, max_size_bytes=1000)
        self.assertEqual([r.offset for r in records], [1, 3])

    async def test_count_by_size(self):
        await self.store.append_batch([
            make_record(1, 100), make_record(2, 500), make_record(3, 900), make_record(4, 1500),
        ])
        self.assertEqual(await self.store.count_by_size(900), 2)
        self.assertEqual(await self.store.count_by_size(500, 900), 1)
        self.assertEqual(await self.store.count_by_size(0), 4)

    async def test_failed_batch_is_invisible(self):
        await self.store.append_batch([make_record(1, 100)])
        # Second record collides with an existing offset, so nothing may land
        with self.assertRaises(StorageError):
            await self.store.append_batch([make_record(2, 100), make_record(1, 100)])

        self.assertEqual(await self.store.count(), 1)
        self.assertEqual(await self.store.max_offset(), 1)

    async def test_tombstone_round_trip(self):
        tombstone = LogRecord(
            offset=7, topic="deposit", key="k", event_type=EventType.DELETE,
            data=None, size_bytes=0, created_at=datetime.now(timezone.utc),
        )
        await self.store.append_batch([tombstone])
        [record] = await collect(self.store, 0)
        self.assertEqual(record.event_type, EventType.DELETE)
        self.assertIsNone(record.data)

    async def test_tail_returns_newest_oldest_first(self):
        await self.store.append_batch([make_record(o, 50) for o in range(1, 11)])
        tail = await self.store.tail(3)
        self.assertEqual([r.offset for r in tail], [8, 9, 10])


class TestMemoryLogStore(LogStoreContract, unittest.IsolatedAsyncioTestCase):
    async def make_store(self):
        return MemoryLogStore()

    async def test_snapshot_ignores_concurrent_appends(self):
        await self.store.append_batch([make_record(1, 50)])
        scan = self.store.read_after(0)
        first = await scan.__anext__()
        await self.store.append_batch([make_record(2, 50)])
        remaining = [r async for r in scan]
        self.assertEqual(first.offset, 1)
        self.assertEqual(remaining, [])


class TestSQLiteLogStore(LogStoreContract, unittest.IsolatedAsyncioTestCase):
    async def make_store(self):
        self.test_dir = tempfile.mkdtemp(prefix="pipelog-test-")
        self.db_path = os.path.join(self.test_dir, "events.db")
        return SQLiteLogStore(path=self.db_path, page_size=4)

    async def asyncTearDown(self):
        await super().asyncTearDown()
        shutil.rmtree(self.test_dir, ignore_errors=True)

    async def test_paged_scan_crosses_pages(self):
        await self.store.append_batch([make_record(o, 50) for o in range(1, 12)])
        records = await collect(self.store, 2)
        self.assertEqual([r.offset for r in records], list(range(3, 12)))

    async def test_persists_across_reopen(self):
        await self.store.append_batch([make_record(1, 50), make_record(2, 60)])
        await self.store.stop()

        reopened = SQLiteLogStore(path=self.db_path)
        await reopened.start()
        try:
            self.assertEqual(await reopened.count(), 2)
            self.assertEqual(await reopened.max_offset(), 2)
        finally:
            await reopened.stop()

    async def test_reads_rows_from_legacy_schema(self):
        legacy_path = os.path.join(self.test_dir, "legacy.db")
        conn = sqlite3.connect(legacy_path)
        conn.execute(
            "CREATE TABLE event (msg_offset INTEGER PRIMARY KEY NOT NULL, msg_key TEXT NOT NULL, "
            "type TEXT NOT NULL, data TEXT NOT NULL, event_size INTEGER NOT NULL, created_at TEXT NOT NULL)"
        )
        conn.execute(
            "INSERT INTO event VALUES (?, ?, ?, ?, ?, ?)",
            (1000000, "abc", "prices-v1", '{"a":1}', 7, "2024-05-01T10:00:00.123Z"),
        )
        conn.commit()
        conn.close()

        store = SQLiteLogStore(path=legacy_path)
        await store.start()
        try:
            [record] = await collect(store, 0)
        finally:
            await store.stop()

        self.assertEqual(record.offset, 1000000)
        self.assertEqual(record.topic, "prices-v1")
        self.assertEqual(record.event_type, EventType.MESSAGE)
        self.assertEqual(record.created_at.tzinfo, timezone.utc)

    async def test_slow_read_is_interrupted_at_timeout(self):
        await self.store.append_batch([make_record(1, 50)])
        # Counts to 30 million: runs for many seconds unless cut short
        slow_sql = (
            "WITH RECURSIVE c(x) AS (SELECT 1 UNION ALL SELECT x + 1 FROM c WHERE x < 30000000) "
            "SELECT COUNT(*) FROM c"
        )
        self.store.read_timeout = 0.1

        started = time.monotonic()
        with self.assertRaises(StorageTimeoutError):
            await self.store._scalar(slow_sql)
        elapsed = time.monotonic() - started

        self.assertLess(elapsed, 2.0)
        self.store.read_timeout = 5.0
        self.assertEqual(await self.store.count(), 1)

    async def test_in_memory_database(self):
        store = SQLiteLogStore(path=":memory:")
        await store.start()
        try:
            await store.append_batch([make_record(5, 50)])
            self.assertEqual([r.offset for r in await collect(store, 0)], [5])
        finally:
            await store.stop()


if __name__ == '__main__':
    unittest.main()
