"""Durable per-organization tree cache backed by JSON files.

Layout inside the cache directory:
- ``cache_index.json``: which organizations are cached and when
- ``<orgId>_files.json``: serialized tree for one organization
- ``<orgId>_metadata.json``: ``CacheMetadata`` for one organization

The index is the authoritative directory of entries. Writes go blob, then
metadata, then index, so an interrupted write can only orphan a blob. Reads
that fail to decode evict the entry before reporting a miss.
"""

from __future__ import annotations

import json
import logging
import os
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING

from ..errors import CacheCorruption
from ..tree_model import (
    CacheMetadata,
    TreeNode,
    count_files,
    metadata_from_dict,
    metadata_to_dict,
    tree_from_list,
    tree_to_list,
)
from ..tree_model.serialize import format_timestamp, parse_timestamp

if TYPE_CHECKING:
    from ..orgs import Organization

logger = logging.getLogger(__name__)

INDEX_FILENAME = "cache_index.json"
FILES_SUFFIX = "_files.json"
METADATA_SUFFIX = "_metadata.json"


@dataclass(frozen=True)
class CacheStats:
    """Aggregate size of the persistent cache."""

    total_orgs: int
    total_files: int
    total_bytes: int

    @property
    def size_label(self) -> str:
        return format_bytes(self.total_bytes)


def format_bytes(size: int) -> str:
    """Format a byte count as ``B``/``KB``/``MB``/``GB`` with two decimals."""
    if size <= 0:
        return "0 B"
    units = ("B", "KB", "MB", "GB")
    value = float(size)
    unit_idx = 0
    while value >= 1024 and unit_idx < len(units) - 1:
        value /= 1024
        unit_idx += 1
    text = f"{value:.2f}".rstrip("0").rstrip(".")
    return f"{text} {units[unit_idx]}"


def _write_json(path: Path, payload: object) -> None:
    tmp_path = path.with_name(path.name + ".tmp")
    tmp_path.write_text(json.dumps(payload, indent=2) + "\n", encoding="utf-8")
    os.replace(tmp_path, path)


def _now() -> datetime:
    return datetime.now(timezone.utc)


class PersistentCacheStore:
    """File-backed key-value store of organization trees plus a single index."""

    def __init__(self, cache_dir: Path) -> None:
        self.cache_dir = Path(cache_dir)
        self.index_path = self.cache_dir / INDEX_FILENAME
        self._lock = threading.RLock()
        self._entries: dict[str, CacheMetadata] = {}
        self._last_updated: datetime = _now()
        self.cache_dir.mkdir(parents=True, exist_ok=True)
        self._load_index()

    def files_path(self, org_id: str) -> Path:
        return self.cache_dir / f"{org_id}{FILES_SUFFIX}"

    def metadata_path(self, org_id: str) -> Path:
        return self.cache_dir / f"{org_id}{METADATA_SUFFIX}"

    @property
    def last_updated(self) -> datetime:
        return self._last_updated

    def _load_index(self) -> None:
        try:
            raw = json.loads(self.index_path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return
        except (OSError, ValueError) as exc:
            logger.error("Failed to load cache index %s: %s", self.index_path, exc)
            return
        if not isinstance(raw, dict):
            logger.error("Ignoring cache index %s: not a JSON object", self.index_path)
            return

        raw_entries = raw.get("orgs")
        if isinstance(raw_entries, dict):
            for org_id, raw_meta in raw_entries.items():
                try:
                    meta = metadata_from_dict(raw_meta)
                except ValueError as exc:
                    logger.warning("Dropping malformed index entry %s: %s", org_id, exc)
                    continue
                self._entries[str(org_id)] = meta
        try:
            self._last_updated = parse_timestamp(raw.get("lastUpdated"))
        except ValueError:
            self._last_updated = _now()
        logger.info("Loaded cache index with %d orgs", len(self._entries))

    def _save_index(self) -> None:
        self._last_updated = _now()
        payload = {
            "orgs": {org_id: metadata_to_dict(meta) for org_id, meta in self._entries.items()},
            "lastUpdated": format_timestamp(self._last_updated),
        }
        _write_json(self.index_path, payload)

    def has(self, org_id: str) -> bool:
        with self._lock:
            return org_id in self._entries and self.files_path(org_id).exists()

    def list_ids(self) -> list[str]:
        with self._lock:
            return list(self._entries)

    def read_metadata(self, org_id: str) -> CacheMetadata | None:
        with self._lock:
            return self._entries.get(org_id)

    def _decode(self, org_id: str) -> tuple[TreeNode, ...]:
        try:
            raw = json.loads(self.files_path(org_id).read_text(encoding="utf-8"))
            return tree_from_list(raw)
        except FileNotFoundError as exc:
            raise CacheCorruption(org_id, "indexed blob is missing") from exc
        except (OSError, ValueError) as exc:
            raise CacheCorruption(org_id, str(exc)) from exc

    def read(self, org_id: str) -> tuple[TreeNode, ...] | None:
        """Return the cached tree for ``org_id`` or ``None`` on miss.

        Corrupt or missing blobs are evicted from the index and disk before
        returning ``None``.
        """
        with self._lock:
            if org_id not in self._entries:
                return None
        try:
            tree = self._decode(org_id)
        except CacheCorruption as exc:
            logger.warning("Evicting corrupt cache entry: %s", exc)
            self.remove(org_id)
            return None
        logger.debug("Cache hit for %s: %d top-level nodes", org_id, len(tree))
        return tree

    def write(self, org_id: str, org: "Organization", tree: tuple[TreeNode, ...] | list[TreeNode]) -> CacheMetadata:
        """Persist ``tree`` for ``org_id`` and record it in the index."""
        nodes = tuple(tree)
        _write_json(self.files_path(org_id), tree_to_list(nodes))
        meta = CacheMetadata(
            org_id=org_id,
            username=org.username,
            alias=org.alias,
            last_refreshed=_now(),
            file_count=count_files(nodes),
        )
        _write_json(self.metadata_path(org_id), metadata_to_dict(meta))
        with self._lock:
            self._entries[org_id] = meta
            self._save_index()
        logger.info(
            "Cached %d top-level nodes for %s (%d total files)",
            len(nodes),
            org.display_name,
            meta.file_count,
        )
        return meta

    def remove(self, org_id: str) -> None:
        """Drop blob, metadata and index entry for ``org_id``."""
        with self._lock:
            for path in (self.files_path(org_id), self.metadata_path(org_id)):
                try:
                    path.unlink()
                except FileNotFoundError:
                    pass
            if org_id in self._entries:
                del self._entries[org_id]
                self._save_index()
                logger.info("Removed cached data for org %s", org_id)

    def clear_all(self) -> None:
        for org_id in self.list_ids():
            self.remove(org_id)
        logger.info("Cleared all cache data")

    def stats(self) -> CacheStats:
        with self._lock:
            total_orgs = len(self._entries)
            total_files = sum(meta.file_count for meta in self._entries.values())
        total_bytes = 0
        for dirpath, _dirnames, filenames in os.walk(self.cache_dir):
            for filename in filenames:
                try:
                    total_bytes += (Path(dirpath) / filename).stat().st_size
                except OSError:
                    continue
        return CacheStats(total_orgs=total_orgs, total_files=total_files, total_bytes=total_bytes)


__all__ = [
    "INDEX_FILENAME",
    "FILES_SUFFIX",
    "METADATA_SUFFIX",
    "CacheStats",
    "format_bytes",
    "PersistentCacheStore",
]
