import random
from abc import ABC, abstractmethod
from typing import Optional
from pipelog.log.interfaces import LogStore
from pipelog.utils.logging import get_logger
from pipelog.utils.metrics import MetricsManager

class RecordGenerator(ABC):
    """
    Base class for background populators of a LogStore.

    Subclasses build one batch of records per call to generate_batch();
    the scheduler calls it on a fixed interval until is_complete().
    """

    def __init__(self, store: LogStore, start_offset: int, rng: Optional[random.Random] = None, name: Optional[str] = None):
        self.store = store
        self.start_offset = start_offset
        self.rng = rng or random.Random()
        self.name = name or self.__class__.__name__
        self.logger = get_logger(self.name)
        self.metrics = MetricsManager()

    async def next_offset(self) -> int:
        """Offsets continue from the current tail, or start_offset on an empty log."""
        tail = await self.store.max_offset()
        if tail is None:
            return self.start_offset
        return tail + 1

    @abstractmethod
    async def generate_batch(self) -> int:
        """Append one batch atomically. Returns the number of records written (0 = no-op)."""
        pass

    @abstractmethod
    async def is_complete(self) -> bool:
        """True once the generator has nothing left to write."""
        pass

    async def run_to_completion(self) -> int:
        """Generate batches back to back until complete. Returns records written."""
        written = 0
        while not await self.is_complete():
            inserted = await self.generate_batch()
            if inserted == 0:
                break
            written += inserted
        return written
