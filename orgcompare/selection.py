"""Bounded, ordered selection of files feeding the comparison engine."""

from __future__ import annotations

import logging
import threading
from enum import Enum

from .config import DEFAULT_MAX_COMPARE_FILES, HARD_MAX_COMPARE_FILES
from .errors import SelectionBoundsViolation
from .tree_model import FileRef

logger = logging.getLogger(__name__)

MIN_COMPARE_FILES = 2


class CompareType(str, Enum):
    TWO_WAY = "two-way"
    THREE_WAY = "three-way"
    FOUR_WAY = "four-way"
    MULTI_WAY = "multi-way"


def compare_type_for(count: int) -> CompareType | None:
    """Comparison flavour for ``count`` files; ``None`` below two."""
    if count < MIN_COMPARE_FILES:
        return None
    if count == 2:
        return CompareType.TWO_WAY
    if count == 3:
        return CompareType.THREE_WAY
    if count == 4:
        return CompareType.FOUR_WAY
    return CompareType.MULTI_WAY


class SelectionManager:
    """Owns the current selection.

    Ids are unique; adding past ``max_files`` evicts the oldest entry first.
    """

    def __init__(
        self,
        max_files: int = DEFAULT_MAX_COMPARE_FILES,
        hard_cap: int = HARD_MAX_COMPARE_FILES,
    ) -> None:
        if not MIN_COMPARE_FILES <= max_files <= hard_cap:
            raise SelectionBoundsViolation(max_files, hard_cap)
        self.hard_cap = hard_cap
        self._max_files = max_files
        self._files: list[FileRef] = []
        self._lock = threading.Lock()

    @property
    def max_files(self) -> int:
        return self._max_files

    @property
    def files(self) -> tuple[FileRef, ...]:
        """Snapshot of the selection, oldest first."""
        with self._lock:
            return tuple(self._files)

    def __len__(self) -> int:
        with self._lock:
            return len(self._files)

    def is_selected(self, file_id: str) -> bool:
        with self._lock:
            return any(item.id == file_id for item in self._files)

    def toggle(self, file: FileRef) -> bool:
        """Add or remove ``file``; returns whether it is selected afterwards."""
        with self._lock:
            for idx, item in enumerate(self._files):
                if item.id == file.id:
                    del self._files[idx]
                    logger.debug("Deselected %s", file.id)
                    return False
            if len(self._files) >= self._max_files:
                evicted = self._files.pop(0)
                logger.info("Selection full; dropped oldest file %s", evicted.id)
            self._files.append(file)
            logger.debug("Selected %s", file.id)
            return True

    def set_max(self, n: int) -> None:
        """Change the bound, keeping the most recently added ``n`` files."""
        if isinstance(n, bool) or not isinstance(n, int) or not MIN_COMPARE_FILES <= n <= self.hard_cap:
            raise SelectionBoundsViolation(n, self.hard_cap)
        with self._lock:
            self._max_files = n
            if len(self._files) > n:
                self._files = self._files[-n:]

    def clear(self) -> None:
        with self._lock:
            self._files.clear()

    def compare_type(self) -> CompareType | None:
        return compare_type_for(len(self))

    def can_compare(self) -> bool:
        return len(self) >= MIN_COMPARE_FILES


__all__ = [
    "MIN_COMPARE_FILES",
    "CompareType",
    "compare_type_for",
    "SelectionManager",
]
