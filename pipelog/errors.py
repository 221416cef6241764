class PipelogError(Exception):
    """Base class for all pipelog errors."""


class StorageError(PipelogError):
    """
    Raised when the backing store fails a read or write.
    Writes roll back the whole batch before this is raised.
    """


class StorageTimeoutError(StorageError):
    """Raised when a bounded storage read exceeds its timeout."""


class InvalidOffsetError(PipelogError, ValueError):
    """Raised for a malformed or negative client offset."""

    def __init__(self, offset: object):
        super().__init__(f"Offset must be a non-negative integer, got {offset!r}")
        self.offset = offset


class IntegrityError(PipelogError):
    """A stored record's size_bytes disagrees with its actual payload size."""

    def __init__(self, offset: int, stored: int, actual: int):
        super().__init__(
            f"Record {offset} stores size_bytes={stored} but its payload is {actual} bytes"
        )
        self.offset = offset
        self.stored = stored
        self.actual = actual
