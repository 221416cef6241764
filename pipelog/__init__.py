from pipelog.models import LogRecord, PolledMessage, EventType
from pipelog.log import LogStore, SQLiteLogStore, MemoryLogStore
from pipelog.reader import BatchReader, Batch
from pipelog.generator import SizeTieredGenerator, RandomMessageFeed
from pipelog.settings import settings

__version__ = "0.1.0"

__all__ = [
    "LogRecord",
    "PolledMessage",
    "EventType",
    "LogStore",
    "SQLiteLogStore",
    "MemoryLogStore",
    "BatchReader",
    "Batch",
    "SizeTieredGenerator",
    "RandomMessageFeed",
    "settings",
]
