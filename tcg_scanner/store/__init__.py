"""Storage package: record store, rate limits, image cache and scan cache."""

from .cache import ScanResultCache
from .db import RecordStore
from .image_cache import ImageCacheStore, PutResult
from .objects import LocalObjectStore, ObjectStore
from .rate_limit import ScanRateLimiter

__all__ = [
    "RecordStore",
    "ScanRateLimiter",
    "ImageCacheStore",
    "PutResult",
    "ObjectStore",
    "LocalObjectStore",
    "ScanResultCache",
]
