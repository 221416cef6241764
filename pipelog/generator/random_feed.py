import random
from datetime import datetime, timezone
from typing import Optional
from pydantic import BaseModel, Field, model_validator
from pipelog.generator.base import RecordGenerator
from pipelog.log.interfaces import LogStore
from pipelog.models import TOPICS, EventType, LogRecord, serialized_size

class RandomFeedConfig(BaseModel):
    total_messages: int = Field(default=10_000, ge=0)  # 0 = unbounded
    batch_size: int = Field(default=500, gt=0)
    min_bytes: int = Field(default=5_000, ge=0)
    max_bytes: int = Field(default=30 * 1024, ge=0)
    start_offset: int = Field(default=0, ge=0)

    @model_validator(mode="after")
    def _check_band(self) -> "RandomFeedConfig":
        if self.min_bytes > self.max_bytes:
            raise ValueError("min_bytes exceeds max_bytes")
        return self


class RandomMessageFeed(RecordGenerator):
    """
    TEST mode feed: fills the log with uniformly sized random messages.
    The degenerate single-tier case of the size-tiered generator.
    """

    def __init__(self, store: LogStore, config: Optional[RandomFeedConfig] = None, rng: Optional[random.Random] = None):
        self.config = config or RandomFeedConfig()
        super().__init__(store, start_offset=self.config.start_offset, rng=rng)

    def build_record(self, offset: int, now: Optional[datetime] = None) -> LogRecord:
        topic = self.rng.choice(TOPICS)
        size = self.rng.randint(self.config.min_bytes, self.config.max_bytes)

        header = f'{{"topic":"{topic}","offset":{offset},"data":"'
        footer = '"}'
        body = "X" * max(0, size - len(header) - len(footer))
        data = header + body + footer

        return LogRecord(
            offset=offset,
            topic=topic,
            key=f"{topic}-{offset}",
            event_type=EventType.MESSAGE,
            data=data,
            size_bytes=serialized_size(data),
            created_at=now or datetime.now(timezone.utc),
        )

    async def is_complete(self) -> bool:
        if self.config.total_messages == 0:
            return False
        return await self.store.count() >= self.config.total_messages

    async def generate_batch(self) -> int:
        batch_len = self.config.batch_size
        if self.config.total_messages:
            batch_len = min(batch_len, self.config.total_messages - await self.store.count())
            if batch_len <= 0:
                return 0

        offset = await self.next_offset()
        now = datetime.now(timezone.utc)
        records = [self.build_record(offset + i, now) for i in range(batch_len)]
        await self.store.append_batch(records)

        self.metrics.record_generated(batch_len, records[-1].offset)
        self.logger.debug(f"Appended {batch_len} random messages (offsets {offset}..{records[-1].offset})")
        return batch_len
