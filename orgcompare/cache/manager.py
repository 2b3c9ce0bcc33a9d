"""In-memory mirror of the persistent tree cache."""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterable
from datetime import datetime
from typing import TYPE_CHECKING

from ..tree_model import TreeNode
from .store import CacheStats, PersistentCacheStore

if TYPE_CHECKING:
    from ..orgs import Organization

logger = logging.getLogger(__name__)


class TreeCacheManager:
    """Owns the memory mirror of cached trees and keeps it in step with the store.

    Store I/O for one organization is serialized by that organization's own
    lock, so a slow write for one org never blocks reads or writes of
    another. The shared ``_lock`` only guards the mirror dicts and is never
    held across disk access.
    """

    def __init__(self, store: PersistentCacheStore) -> None:
        self.store = store
        self._lock = threading.Lock()
        self._org_locks: dict[str, threading.RLock] = {}
        self._trees: dict[str, tuple[TreeNode, ...]] = {}
        self._refreshed: dict[str, datetime] = {}

    def _org_lock(self, org_id: str) -> threading.RLock:
        with self._lock:
            lock = self._org_locks.get(org_id)
            if lock is None:
                lock = self._org_locks[org_id] = threading.RLock()
            return lock

    def _forget(self, org_id: str) -> None:
        with self._lock:
            self._trees.pop(org_id, None)
            self._refreshed.pop(org_id, None)

    def _load(self, org_id: str) -> tuple[TreeNode, ...] | None:
        """Read ``org_id`` from the store into the mirror; caller holds its org lock."""
        tree = self.store.read(org_id)
        if tree is None:
            return None
        meta = self.store.read_metadata(org_id)
        with self._lock:
            self._trees[org_id] = tree
            if meta is not None:
                self._refreshed[org_id] = meta.last_refreshed
        return tree

    def cleanup_stale_cache(self, current_org_ids: Iterable[str]) -> list[str]:
        """Evict every cached id that is not among ``current_org_ids``.

        Returns the evicted ids; a second call with the same ids returns ``[]``.
        """
        keep = set(current_org_ids)
        with self._lock:
            mirrored = set(self._trees)
        stale = sorted((set(self.store.list_ids()) | mirrored) - keep)
        if stale:
            logger.info("Cleaning up %d stale cache entries", len(stale))
        for org_id in stale:
            self.invalidate(org_id)
        return stale

    def warm_load(self, org_ids: Iterable[str]) -> int:
        """Load stored trees for ``org_ids`` into memory; returns count loaded."""
        loaded = 0
        for org_id in org_ids:
            with self._org_lock(org_id):
                if self._load(org_id) is not None:
                    loaded += 1
        logger.info("Warm-loaded %d cached org trees", loaded)
        return loaded

    def startup(self, current_org_ids: Iterable[str]) -> list[str]:
        """Stale cleanup followed by eager warm load; returns evicted ids."""
        current = list(current_org_ids)
        evicted = self.cleanup_stale_cache(current)
        self.warm_load(current)
        return evicted

    def get(self, org_id: str) -> tuple[TreeNode, ...] | None:
        tree = self.peek(org_id)
        if tree is not None:
            return tree
        with self._org_lock(org_id):
            tree = self.peek(org_id)
            if tree is not None:
                return tree
            return self._load(org_id)

    def peek(self, org_id: str) -> tuple[TreeNode, ...] | None:
        """Memory-only lookup; never touches the store."""
        with self._lock:
            return self._trees.get(org_id)

    def put(self, org_id: str, org: "Organization", tree: tuple[TreeNode, ...] | list[TreeNode]) -> None:
        nodes = tuple(tree)
        with self._org_lock(org_id):
            meta = self.store.write(org_id, org, nodes)
            with self._lock:
                self._trees[org_id] = nodes
                self._refreshed[org_id] = meta.last_refreshed

    def invalidate(self, org_id: str) -> None:
        with self._org_lock(org_id):
            self._forget(org_id)
            self.store.remove(org_id)

    def clear(self) -> None:
        with self._lock:
            known = set(self._trees)
        for org_id in sorted(known | set(self.store.list_ids())):
            self.invalidate(org_id)
        logger.info("Cleared all cache data")

    def last_refreshed(self, org_id: str) -> datetime | None:
        with self._lock:
            return self._refreshed.get(org_id)

    def cached_ids(self) -> list[str]:
        return self.store.list_ids()

    def stats(self) -> CacheStats:
        return self.store.stats()


__all__ = ["TreeCacheManager"]
