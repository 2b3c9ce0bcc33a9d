"""Domain datatypes for per-organization source trees and cache metadata."""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass
from datetime import datetime
from enum import Enum

PLACEHOLDER_LABEL = "No files cached - refresh to load"


class NodeKind(str, Enum):
    """Discriminator for ``TreeNode``."""

    ORGANIZATION = "org"
    FOLDER = "folder"
    FILE = "file"


@dataclass(frozen=True)
class FileRef:
    """Reference to one retrieved source file of an organization."""

    id: str
    name: str
    metadata_type: str
    full_name: str
    org_id: str
    local_path: str | None = None


@dataclass(frozen=True)
class TreeNode:
    """One organization, folder or file node with ordered, owned children."""

    id: str
    label: str
    kind: NodeKind
    org_id: str | None = None
    metadata_type: str | None = None
    file: FileRef | None = None
    children: tuple["TreeNode", ...] = ()
    placeholder: bool = False

    @property
    def is_file(self) -> bool:
        return self.kind is NodeKind.FILE

    @property
    def is_folder(self) -> bool:
        return self.kind is NodeKind.FOLDER


@dataclass(frozen=True)
class CacheMetadata:
    """Index record for one cached organization."""

    org_id: str
    username: str
    last_refreshed: datetime
    file_count: int
    alias: str | None = None


def iter_nodes(nodes: tuple[TreeNode, ...] | list[TreeNode]) -> Iterator[TreeNode]:
    """Yield every node of ``nodes`` in depth-first pre-order."""
    stack = list(reversed(nodes))
    while stack:
        node = stack.pop()
        yield node
        stack.extend(reversed(node.children))


def count_files(nodes: tuple[TreeNode, ...] | list[TreeNode]) -> int:
    """Count ``File`` nodes recursively."""
    return sum(1 for node in iter_nodes(nodes) if node.is_file)


def iter_files(nodes: tuple[TreeNode, ...] | list[TreeNode]) -> Iterator[FileRef]:
    for node in iter_nodes(nodes):
        if node.file is not None:
            yield node.file


def placeholder_node(org_id: str) -> TreeNode:
    """Synthetic child shown for an organization that has nothing cached."""
    return TreeNode(
        id=f"{org_id}:placeholder",
        label=PLACEHOLDER_LABEL,
        kind=NodeKind.FOLDER,
        org_id=org_id,
        placeholder=True,
    )


__all__ = [
    "PLACEHOLDER_LABEL",
    "NodeKind",
    "FileRef",
    "TreeNode",
    "CacheMetadata",
    "iter_nodes",
    "iter_files",
    "count_files",
    "placeholder_node",
]
