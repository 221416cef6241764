from contextlib import aclosing
from dataclasses import dataclass, field
from typing import List, Optional
from pipelog.errors import IntegrityError, InvalidOffsetError
from pipelog.log.interfaces import LogStore
from pipelog.models import MAX_OFFSET, LogRecord, serialized_size
from pipelog.utils.logging import get_logger
from pipelog.utils.metrics import MetricsManager
from pipelog.utils.tracing import get_tracer

logger = get_logger("BatchReader")

@dataclass
class Batch:
    """Ordered records returned by one read, with their summed size."""
    records: List[LogRecord] = field(default_factory=list)
    total_bytes: int = 0

    @property
    def last_offset(self) -> Optional[int]:
        return self.records[-1].offset if self.records else None

    def __len__(self) -> int:
        return len(self.records)


class BatchReader:
    """
    Reads the longest ordered run of records after a cursor that fits a byte budget.

    Records above `oversize_threshold` are excluded from the scan entirely, so a
    single pathological record can neither break the budget nor block progress.
    The first eligible record is always returned, even if it alone exceeds the
    budget; otherwise a record that never fits would stall the cursor forever.
    """

    def __init__(self, store: LogStore, byte_budget: int, oversize_threshold: int, verify_sizes: bool = True):
        if byte_budget <= 0:
            raise ValueError("byte_budget must be positive")
        if oversize_threshold <= 0:
            raise ValueError("oversize_threshold must be positive")
        self.store = store
        self.byte_budget = byte_budget
        self.oversize_threshold = oversize_threshold
        self.verify_sizes = verify_sizes
        self.metrics = MetricsManager()
        self.tracer = get_tracer("pipelog.reader")

    def _check_integrity(self, record: LogRecord) -> None:
        actual = serialized_size(record.data)
        if actual != record.size_bytes:
            raise IntegrityError(record.offset, record.size_bytes, actual)

    async def read_batch(self, after_offset: int) -> Batch:
        if (isinstance(after_offset, bool) or not isinstance(after_offset, int)
                or not 0 <= after_offset <= MAX_OFFSET):
            raise InvalidOffsetError(after_offset)

        batch = Batch()
        with self.tracer.start_as_current_span("batch_read") as span:
            span.set_attribute("pipelog.after_offset", after_offset)

            scan = self.store.read_after(after_offset, max_size_bytes=self.oversize_threshold)
            async with aclosing(scan) as records:
                async for record in records:
                    if record.size_bytes > self.oversize_threshold:
                        continue

                    if self.verify_sizes:
                        try:
                            self._check_integrity(record)
                        except IntegrityError as e:
                            logger.error(f"Data integrity fault, skipping record: {e}")
                            self.metrics.record_integrity_error()
                            continue

                    if batch.records and batch.total_bytes + record.size_bytes > self.byte_budget:
                        # Left for the next poll
                        break

                    batch.records.append(record)
                    batch.total_bytes += record.size_bytes

            span.set_attribute("pipelog.records", len(batch))
            span.set_attribute("pipelog.bytes", batch.total_bytes)

        logger.debug(
            f"Read {len(batch)} records ({batch.total_bytes} bytes) after offset {after_offset}"
        )
        return batch
