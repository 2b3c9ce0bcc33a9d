"""Positional N-way comparison of selected files.

Lines are compared index by index across every file; there is no sequence
alignment, so one inserted line shifts the classification of every line
after it.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from .config import HARD_MAX_COMPARE_FILES
from .errors import ComparisonError
from .retrieval import RetrievalCollaborator
from .selection import MIN_COMPARE_FILES, CompareType, compare_type_for
from .tree_model import FileRef

logger = logging.getLogger(__name__)

UNKNOWN_ORG_NAME = "Unknown Org"
LOCAL_ENCODINGS = ("utf-8", "utf-8-sig", "latin-1")


class DiffClass(str, Enum):
    UNCHANGED = "unchanged"
    ADDED = "added"
    REMOVED = "removed"
    MODIFIED = "modified"


class Layout(str, Enum):
    HORIZONTAL = "horizontal"
    GRID = "grid"


@dataclass(frozen=True)
class DiffLine:
    line_number: int
    content: str
    classification: DiffClass
    source_file_index: int


@dataclass(frozen=True)
class FileDiffResult:
    file: FileRef
    org_name: str
    lines: tuple[DiffLine, ...]


@dataclass(frozen=True)
class DiffStats:
    total_lines: int = 0
    added_lines: int = 0
    removed_lines: int = 0
    modified_lines: int = 0


@dataclass(frozen=True)
class ComparisonResult:
    files: tuple[FileDiffResult, ...]
    compare_type: CompareType
    layout: Layout
    total_lines: int
    added_lines: int
    removed_lines: int
    modified_lines: int

    @property
    def changed_lines(self) -> int:
        return self.added_lines + self.removed_lines + self.modified_lines


def split_lines(content: str) -> list[str]:
    return content.split("\n")


def classify_line(index: int, lines: Sequence[str], others: Sequence[Sequence[str]]) -> tuple[str, DiffClass]:
    """Classify ``lines[index]`` against the same index of every other file."""
    current = lines[index] if index < len(lines) else ""
    other_lines = [other[index] if index < len(other) else "" for other in others]

    if index < len(lines):
        if any(other != current for other in other_lines):
            if any(other == current for other in other_lines):
                return current, DiffClass.MODIFIED
            return current, DiffClass.ADDED
        return current, DiffClass.UNCHANGED

    if any(other.strip() for other in other_lines):
        return current, DiffClass.REMOVED
    return current, DiffClass.UNCHANGED


def positional_diff(contents: Sequence[str]) -> list[tuple[DiffLine, ...]]:
    """Per-file classified lines; every file gets ``max_lines`` entries."""
    split = [split_lines(content) for content in contents]
    max_lines = max((len(lines) for lines in split), default=0)
    results: list[tuple[DiffLine, ...]] = []
    for file_index, lines in enumerate(split):
        others = [other for idx, other in enumerate(split) if idx != file_index]
        diff_lines = []
        for line_index in range(max_lines):
            content, classification = classify_line(line_index, lines, others)
            diff_lines.append(DiffLine(line_index + 1, content, classification, file_index))
        results.append(tuple(diff_lines))
    return results


def diff_stats(per_file: Sequence[Sequence[DiffLine]]) -> DiffStats:
    added = removed = modified = total = 0
    for lines in per_file:
        total += len(lines)
        for line in lines:
            if line.classification is DiffClass.ADDED:
                added += 1
            elif line.classification is DiffClass.REMOVED:
                removed += 1
            elif line.classification is DiffClass.MODIFIED:
                modified += 1
    return DiffStats(total, added, removed, modified)


def recommended_layout(file_count: int) -> Layout:
    return Layout.HORIZONTAL if file_count <= 3 else Layout.GRID


def comparison_title(files: Sequence[FileRef]) -> str:
    names = [item.name for item in files]
    if len(names) in (2, 3):
        return " ↔ ".join(names)
    return f"Multi-way Comparison ({len(names)} files)"


def _read_local(path: str) -> str | None:
    try:
        raw = Path(path).read_bytes()
    except OSError as exc:
        logger.warning("Failed to read local file %s, falling back to org content: %s", path, exc)
        return None
    for encoding in LOCAL_ENCODINGS:
        try:
            return raw.decode(encoding)
        except UnicodeDecodeError:
            continue
    return None


class ContentResolver:
    """Resolve a ``FileRef`` to text: local path first, then the retrieval collaborator."""

    def __init__(self, retriever: RetrievalCollaborator | None = None) -> None:
        self.retriever = retriever

    def content_of(self, file: FileRef) -> str:
        if file.local_path:
            text = _read_local(file.local_path)
            if text is not None:
                return text
        if self.retriever is None:
            return ""
        try:
            return self.retriever.content_of(file.org_id, file.id) or ""
        except (OSError, ValueError) as exc:
            logger.error("Failed to retrieve content for %s: %s", file.name, exc)
            return ""


def compare_selection(
    files: Sequence[FileRef],
    resolver: ContentResolver,
    org_names: Mapping[str, str] | None = None,
    hard_cap: int = HARD_MAX_COMPARE_FILES,
) -> ComparisonResult:
    """Compare 2..``hard_cap`` files from a selection snapshot."""
    if len(files) < MIN_COMPARE_FILES:
        raise ComparisonError(f"at least {MIN_COMPARE_FILES} files are required for comparison")
    if len(files) > hard_cap:
        raise ComparisonError(f"cannot compare more than {hard_cap} files")

    names = org_names or {}
    contents = [resolver.content_of(item) for item in files]
    per_file = positional_diff(contents)
    stats = diff_stats(per_file)
    compare_type = compare_type_for(len(files)) or CompareType.MULTI_WAY
    logger.info(
        "Compared %d files: %d added, %d removed, %d modified of %d lines",
        len(files),
        stats.added_lines,
        stats.removed_lines,
        stats.modified_lines,
        stats.total_lines,
    )
    return ComparisonResult(
        files=tuple(
            FileDiffResult(item, names.get(item.org_id, UNKNOWN_ORG_NAME), lines)
            for item, lines in zip(files, per_file)
        ),
        compare_type=compare_type,
        layout=recommended_layout(len(files)),
        total_lines=stats.total_lines,
        added_lines=stats.added_lines,
        removed_lines=stats.removed_lines,
        modified_lines=stats.modified_lines,
    )


__all__ = [
    "UNKNOWN_ORG_NAME",
    "DiffClass",
    "Layout",
    "DiffLine",
    "FileDiffResult",
    "DiffStats",
    "ComparisonResult",
    "split_lines",
    "classify_line",
    "positional_diff",
    "diff_stats",
    "recommended_layout",
    "comparison_title",
    "ContentResolver",
    "compare_selection",
]
