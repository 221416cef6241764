# pipelog/generator/__init__.py
from pipelog.generator.base import RecordGenerator
from pipelog.generator.tiered import SizeTieredGenerator, GeneratorConfig, TierConfig, SizeTier
from pipelog.generator.random_feed import RandomMessageFeed, RandomFeedConfig

__all__ = [
    "RecordGenerator",
    "SizeTieredGenerator",
    "GeneratorConfig",
    "TierConfig",
    "SizeTier",
    "RandomMessageFeed",
    "RandomFeedConfig",
]
