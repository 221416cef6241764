"""Process configuration loaded from ``PIPELOG_*`` environment variables (and .env)."""
from enum import Enum
from typing import TYPE_CHECKING

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

if TYPE_CHECKING:
    from pipelog.generator.random_feed import RandomFeedConfig
    from pipelog.generator.tiered import GeneratorConfig


class DataMode(str, Enum):
    """Where the log's records come from."""
    TEST = "TEST"              # in-memory store fed with random messages
    SYNTHETIC = "SYNTHETIC"    # SQLite store populated by the size-tiered generator
    EXTERNAL = "EXTERNAL"      # SQLite store populated by another pipeline; read-only here


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="PIPELOG_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ---------- Mode / storage ----------
    DATA_MODE: DataMode = DataMode.SYNTHETIC
    SQLITE_DB_PATH: str = "data/events.db"
    STORE_READ_TIMEOUT: float = Field(default=5.0, gt=0)

    # ---------- Poll ----------
    POLL_BYTE_BUDGET: int = Field(default=1024 * 1024, gt=0)
    OVERSIZE_THRESHOLD: int = Field(default=19_990, gt=0)
    VERIFY_RECORD_SIZES: bool = True

    # ---------- Generator ----------
    GENERATOR_INTERVAL: float = Field(default=5.0, gt=0)
    TARGET_TOTAL_COUNT: int = Field(default=250_000, ge=0)
    LARGE_TIER_FRACTION: float = Field(default=0.001, ge=0, lt=1)
    MEDIUM_TIER_FRACTION: float = Field(default=0.001, ge=0, lt=1)
    LARGE_MIN_BYTES: int = 900_000
    LARGE_MAX_BYTES: int = 980_000
    MEDIUM_MIN_BYTES: int = 450_000
    MEDIUM_MAX_BYTES: int = 512_000
    SMALL_MIN_BYTES: int = 1_000
    SMALL_MAX_BYTES: int = 20_000
    MAX_RECORD_BYTES: int = 1_000_000
    GENERATOR_BATCH_SIZE: int = Field(default=500, gt=0)
    START_OFFSET: int = Field(default=1_000_000, ge=0)
    TEST_FEED_TOTAL: int = Field(default=10_000, ge=0)

    # ---------- Server ----------
    SERVER_HOST: str = "0.0.0.0"
    SERVER_PORT: int = 8080
    SERVER_PUBLIC_URL: str = "http://cloud-server:8080"

    # ---------- Observability ----------
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "text"
    OTEL_ENABLED: bool = False

    @field_validator("DATA_MODE", mode="before")
    def _parse_data_mode(cls, v):
        """Accept any casing; PRODUCTION is the legacy name for SYNTHETIC."""
        if isinstance(v, str):
            v = v.strip().upper()
            if v == "PRODUCTION":
                return DataMode.SYNTHETIC
        return v

    @field_validator("LOG_FORMAT")
    def _check_log_format(cls, v: str) -> str:
        if v.lower() not in ("text", "json"):
            raise ValueError("LOG_FORMAT must be 'text' or 'json'")
        return v.lower()

    def generator_config(self) -> "GeneratorConfig":
        from pipelog.generator.tiered import GeneratorConfig, TierConfig

        large_target = int(self.TARGET_TOTAL_COUNT * self.LARGE_TIER_FRACTION)
        medium_target = int(self.TARGET_TOTAL_COUNT * self.MEDIUM_TIER_FRACTION)
        return GeneratorConfig(
            target_total_count=self.TARGET_TOTAL_COUNT,
            large=TierConfig(
                target_count=large_target,
                min_bytes=self.LARGE_MIN_BYTES,
                max_bytes=self.LARGE_MAX_BYTES,
            ),
            medium=TierConfig(
                target_count=medium_target,
                min_bytes=self.MEDIUM_MIN_BYTES,
                max_bytes=self.MEDIUM_MAX_BYTES,
            ),
            small=TierConfig(
                target_count=max(0, self.TARGET_TOTAL_COUNT - large_target - medium_target),
                min_bytes=self.SMALL_MIN_BYTES,
                max_bytes=self.SMALL_MAX_BYTES,
            ),
            max_record_bytes=self.MAX_RECORD_BYTES,
            batch_size=self.GENERATOR_BATCH_SIZE,
            start_offset=self.START_OFFSET,
            large_probability=self.LARGE_TIER_FRACTION,
            medium_probability=self.MEDIUM_TIER_FRACTION,
        )

    def random_feed_config(self) -> "RandomFeedConfig":
        from pipelog.generator.random_feed import RandomFeedConfig

        return RandomFeedConfig(
            total_messages=self.TEST_FEED_TOTAL,
            batch_size=self.GENERATOR_BATCH_SIZE,
            start_offset=self.START_OFFSET,
        )


settings = Settings()
