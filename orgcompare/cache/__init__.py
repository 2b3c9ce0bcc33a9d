"""Two-tier organization tree cache: JSON store on disk plus memory mirror."""

from __future__ import annotations

from .manager import TreeCacheManager
from .store import CacheStats, PersistentCacheStore, format_bytes

__all__ = [
    "CacheStats",
    "PersistentCacheStore",
    "TreeCacheManager",
    "format_bytes",
]
