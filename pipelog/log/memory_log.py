import asyncio
import bisect
from typing import AsyncIterator, List, Optional
from pipelog.errors import StorageError
from pipelog.log.interfaces import LogStore
from pipelog.models import LogRecord
from pipelog.utils.logging import get_logger

logger = get_logger("MemoryLogStore")

class MemoryLogStore(LogStore):
    """
    In-memory log store for TEST mode and local verification.
    Not persistent across restarts.
    """
    def __init__(self):
        self._records: List[LogRecord] = []
        self._offsets: List[int] = []
        self._lock = asyncio.Lock()

    async def start(self) -> None:
        logger.info("Opened in-memory log store")

    async def stop(self) -> None:
        pass

    async def append_batch(self, records: List[LogRecord]) -> None:
        if not records:
            return
        async with self._lock:
            # Validate the whole batch before anything becomes visible
            last = self._offsets[-1] if self._offsets else None
            for record in records:
                if last is not None and record.offset <= last:
                    raise StorageError(
                        f"Offset {record.offset} is not greater than the current tail {last}"
                    )
                last = record.offset

            self._records.extend(records)
            self._offsets.extend(r.offset for r in records)

    async def read_after(self, after_offset: int, max_size_bytes: Optional[int] = None) -> AsyncIterator[LogRecord]:
        # Snapshot the list so concurrent appends don't affect this scan
        async with self._lock:
            start = bisect.bisect_right(self._offsets, after_offset)
            snapshot = self._records[start:]

        for record in snapshot:
            if max_size_bytes is not None and record.size_bytes > max_size_bytes:
                continue
            yield record

    async def max_offset(self) -> Optional[int]:
        return self._offsets[-1] if self._offsets else None

    async def count(self) -> int:
        return len(self._records)

    async def count_by_size(self, min_bytes: int, max_bytes: Optional[int] = None) -> int:
        return sum(
            1 for r in self._records
            if r.size_bytes >= min_bytes and (max_bytes is None or r.size_bytes < max_bytes)
        )

    async def tail(self, limit: int) -> List[LogRecord]:
        if limit <= 0:
            return []
        return list(self._records[-limit:])
