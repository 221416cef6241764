from datetime import datetime
from enum import Enum
from typing import List, Optional
from pydantic import BaseModel, ConfigDict, Field

TOPICS: List[str] = [
    "prices-v1", "reference-data-v5", "non-promotable-products", "prices-v4",
    "minimum-price", "deposit", "product-base-document", "search-product",
    "location", "location-clusters", "selling-restrictions",
    "colleague-facts-jobs", "colleague-facts-legacy",
    "loss-prevention-configuration", "loss-prevention-store-configuration",
    "loss-prevention-product", "loss-prevention-rule-config",
    "stored-value-services-banned-promotion",
    "stored-value-services-active-promotion",
    "colleague-card-pin", "colleague-card-pin-v2",
    "dcxp-content", "restriction-rules", "dcxp-ugc",
]

# Offsets are stored as SQLite INTEGER (signed 64-bit)
MAX_OFFSET = 2**63 - 1


class EventType(str, Enum):
    """
    Kind of a log entry.
    MESSAGE carries a payload, DELETE is a tombstone for its key.
    """
    MESSAGE = "MESSAGE"
    DELETE = "DELETE"

    @property
    def code(self) -> str:
        return self.value[0]

    @classmethod
    def from_code(cls, code: str) -> "EventType":
        for event_type in cls:
            if event_type.code == code:
                return event_type
        raise ValueError(f"Unknown event type code: {code!r}")


def serialized_size(data: Optional[str]) -> int:
    """Number of UTF-8 bytes the payload occupies on the wire."""
    if data is None:
        return 0
    return len(data.encode("utf-8"))


class LogRecord(BaseModel):
    """
    Internal representation of an entry in the append-only log.
    """
    offset: int
    topic: str
    key: str
    event_type: EventType = EventType.MESSAGE
    data: Optional[str] = None
    size_bytes: int = Field(ge=0)
    created_at: datetime

    def has_consistent_size(self) -> bool:
        return self.size_bytes == serialized_size(self.data)

    def to_message(self) -> "PolledMessage":
        return PolledMessage(
            offset=self.offset,
            msg_key=self.key,
            event_type=self.event_type,
            topic=self.topic,
            data=self.data,
            created_at=self.created_at,
        )


class PolledMessage(BaseModel):
    """
    Wire form of a record as returned by the poll endpoint.
    """
    model_config = ConfigDict(populate_by_name=True)

    offset: int
    msg_key: str = Field(alias="msgKey")
    event_type: EventType = Field(alias="eventType")
    topic: str
    data: Optional[str] = None
    created_at: datetime = Field(alias="createdAt")
