from abc import ABC, abstractmethod
from typing import AsyncIterator, List, Optional
from pipelog.models import LogRecord

class LogStore(ABC):
    """
    Abstract interface for the append-only, offset-ordered record log.
    Records are never mutated or deleted once appended.
    """

    @abstractmethod
    async def start(self) -> None:
        """Open resources and ensure the schema exists."""
        pass

    @abstractmethod
    async def stop(self) -> None:
        """Release resources."""
        pass

    @abstractmethod
    async def append_batch(self, records: List[LogRecord]) -> None:
        """
        Atomically append a batch of records.
        Either every record becomes visible or none does (StorageError).
        """
        pass

    @abstractmethod
    def read_after(self, after_offset: int, max_size_bytes: Optional[int] = None) -> AsyncIterator[LogRecord]:
        """
        Yield records with offset > after_offset in ascending offset order.
        Records larger than max_size_bytes are filtered out by the store.
        """
        pass

    @abstractmethod
    async def max_offset(self) -> Optional[int]:
        """Highest stored offset, or None when the log is empty."""
        pass

    @abstractmethod
    async def count(self) -> int:
        """Total number of stored records."""
        pass

    @abstractmethod
    async def count_by_size(self, min_bytes: int, max_bytes: Optional[int] = None) -> int:
        """Number of records with min_bytes <= size_bytes < max_bytes (unbounded if None)."""
        pass

    @abstractmethod
    async def tail(self, limit: int) -> List[LogRecord]:
        """The most recent `limit` records, oldest first."""
        pass

    async def __aenter__(self) -> "LogStore":
        await self.start()
        return self

    async def __aexit__(self, *exc) -> None:
        await self.stop()
