# pipelog/log/__init__.py
from pipelog.log.interfaces import LogStore
from pipelog.log.memory_log import MemoryLogStore
from pipelog.log.sqlite_log import SQLiteLogStore

__all__ = ["LogStore", "MemoryLogStore", "SQLiteLogStore"]
