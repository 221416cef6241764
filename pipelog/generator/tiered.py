"""
Size-tiered synthetic log generator.

Populates a LogStore until a target record count is reached, while planting a
small, exact number of "large" and "medium" outliers among a majority of
"small" records. The mix approximates the skew of production traffic (many
small records, a few very large ones) without a parametric distribution:
each record draws a uniform value and lands in a reserved probability slice
for an outlier tier only while that tier's target is still unmet.
"""
import json
import random
import string
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field, model_validator

from pipelog.errors import StorageError
from pipelog.generator.base import RecordGenerator
from pipelog.log.interfaces import LogStore
from pipelog.models import TOPICS, EventType, LogRecord, serialized_size

FILLER_ALPHABET = string.ascii_letters + string.digits


class SizeTier(str, Enum):
    LARGE = "BIG"
    MEDIUM = "MEDIUM"
    SMALL = "SMALL"


class TierConfig(BaseModel):
    target_count: int = Field(ge=0)
    min_bytes: int = Field(ge=0)
    max_bytes: int = Field(ge=0)

    @model_validator(mode="after")
    def _check_band(self) -> "TierConfig":
        if self.min_bytes > self.max_bytes:
            raise ValueError(f"min_bytes ({self.min_bytes}) exceeds max_bytes ({self.max_bytes})")
        return self


class GeneratorConfig(BaseModel):
    target_total_count: int = Field(default=250_000, ge=0)
    large: TierConfig = TierConfig(target_count=250, min_bytes=900_000, max_bytes=980_000)
    medium: TierConfig = TierConfig(target_count=250, min_bytes=450_000, max_bytes=512_000)
    small: TierConfig = TierConfig(target_count=249_500, min_bytes=1_000, max_bytes=20_000)
    max_record_bytes: int = Field(default=1_000_000, gt=0)
    batch_size: int = Field(default=500, gt=0)
    start_offset: int = Field(default=1_000_000, ge=0)
    large_probability: float = Field(default=0.001, ge=0, lt=1)
    medium_probability: float = Field(default=0.001, ge=0, lt=1)

    @model_validator(mode="after")
    def _check_tiers(self) -> "GeneratorConfig":
        if self.large_probability + self.medium_probability >= 1:
            raise ValueError("large and medium probability slices must leave room for small records")
        if self.small.max_bytes >= self.medium.min_bytes or self.medium.max_bytes >= self.large.min_bytes:
            # Tier membership is counted back from the store by size band
            raise ValueError("tier bands must not overlap: small < medium < large")
        if self.large.min_bytes > self.max_record_bytes:
            raise ValueError("large tier lower bound exceeds max_record_bytes")
        if self.large.target_count + self.medium.target_count > self.target_total_count:
            raise ValueError("outlier targets exceed target_total_count")
        return self

    def band(self, tier: SizeTier) -> TierConfig:
        return {SizeTier.LARGE: self.large, SizeTier.MEDIUM: self.medium, SizeTier.SMALL: self.small}[tier]


def _envelope(topic: str, ts: int, tier: SizeTier, filler: str) -> str:
    return f'{{"topic":{json.dumps(topic)},"ts":{ts},"tier":"{tier.value}","payload":"{filler}"}}'


class SizeTieredGenerator(RecordGenerator):
    """
    Appends batches of synthetic records whose sizes follow the configured tiers.

    Tier counts are re-read from the store on every batch, so a restarted
    process resumes the distribution where the previous one stopped.
    """

    def __init__(self, store: LogStore, config: Optional[GeneratorConfig] = None, rng: Optional[random.Random] = None):
        self.config = config or GeneratorConfig()
        super().__init__(store, start_offset=self.config.start_offset, rng=rng)

    def choose_tier(self, large_count: int, medium_count: int, remaining: Optional[int] = None) -> SizeTier:
        """
        Pick the tier for the next record.

        `remaining` is how many records are still to be written, this one
        included; when only enough slots are left for the unmet outliers,
        they are placed deterministically so the targets are always hit.
        """
        cfg = self.config
        large_needed = max(0, cfg.large.target_count - large_count)
        medium_needed = max(0, cfg.medium.target_count - medium_count)

        if large_needed == 0 and medium_needed == 0:
            return SizeTier.SMALL

        if remaining is not None and remaining <= large_needed + medium_needed:
            return SizeTier.LARGE if large_needed else SizeTier.MEDIUM

        r = self.rng.random()
        if large_needed and r < cfg.large_probability:
            return SizeTier.LARGE
        if medium_needed and r < cfg.large_probability + cfg.medium_probability:
            return SizeTier.MEDIUM
        return SizeTier.SMALL

    def build_record(self, offset: int, topic: str, tier: SizeTier, now: Optional[datetime] = None) -> LogRecord:
        """
        Synthesize a MESSAGE record whose serialized size lands in the tier's band,
        padding a fixed envelope with filler. The drawn size is clamped to
        max_record_bytes before padding, so the ceiling always holds.
        """
        now = now or datetime.now(timezone.utc)
        ts = int(now.timestamp() * 1000)
        band = self.config.band(tier)

        target = min(self.rng.randint(band.min_bytes, band.max_bytes), self.config.max_record_bytes)
        base_size = serialized_size(_envelope(topic, ts, tier, ""))
        if base_size > self.config.max_record_bytes:
            raise ValueError(f"Envelope for topic {topic!r} alone exceeds max_record_bytes")

        # Filler is ASCII, so each character is exactly one byte
        filler_len = max(0, target - base_size)
        data = _envelope(topic, ts, tier, "".join(self.rng.choices(FILLER_ALPHABET, k=filler_len)))
        size = serialized_size(data)

        return LogRecord(
            offset=offset,
            topic=topic,
            key=uuid.UUID(int=self.rng.getrandbits(128), version=4).hex,
            event_type=EventType.MESSAGE,
            data=data,
            size_bytes=size,
            created_at=now,
        )

    async def tier_counts(self) -> tuple[int, int]:
        cfg = self.config
        large = await self.store.count_by_size(cfg.large.min_bytes)
        medium = await self.store.count_by_size(cfg.medium.min_bytes, cfg.large.min_bytes)
        return large, medium

    async def is_complete(self) -> bool:
        return await self.store.count() >= self.config.target_total_count

    async def generate_batch(self) -> int:
        cfg = self.config
        total = await self.store.count()
        if total >= cfg.target_total_count:
            self.logger.debug(f"Target reached, nothing to do (total={total})")
            return 0

        large, medium = await self.tier_counts()
        offset = await self.next_offset()
        batch_len = min(cfg.batch_size, cfg.target_total_count - total)

        records: List[LogRecord] = []
        for i in range(batch_len):
            tier = self.choose_tier(large, medium, remaining=cfg.target_total_count - total - i)
            records.append(self.build_record(offset + i, self.rng.choice(TOPICS), tier))
            if tier is SizeTier.LARGE:
                large += 1
            elif tier is SizeTier.MEDIUM:
                medium += 1

        try:
            await self.store.append_batch(records)
        except StorageError:
            self.metrics.record_generator_failure()
            self.logger.error(f"Batch at offset {offset} rolled back; will retry on next tick")
            raise

        total += batch_len
        self.metrics.record_generated(batch_len, records[-1].offset)
        self.logger.info(
            f"Inserted batch -> total={total}, big={large}, med={medium}",
            extra={"first_offset": offset, "last_offset": records[-1].offset},
        )
        return batch_len
