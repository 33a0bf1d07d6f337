"""Storage module for the metadata cache."""
from .database import DurableCacheStore
from .cache import TieredMetadataCache

__all__ = [
    "DurableCacheStore",
    "TieredMetadataCache",
]
