"""Filesystem scanning and tree construction for retrieved organization source."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path

from ..errors import TraversalFailure
from .metadata_types import MetadataType, member_name, metadata_type_for_directory
from .types import FileRef, NodeKind, TreeNode

logger = logging.getLogger(__name__)

MAX_DIRECTORY_DEPTH = 10


@dataclass(frozen=True)
class DirectoryChild:
    """One visible directory child row."""

    name: str
    path: Path
    is_dir: bool


def _sort_key(name: str) -> tuple[str, str]:
    return name.lower(), name


def list_directory_children(directory: Path, show_hidden: bool = False) -> list[DirectoryChild]:
    """List visible children of ``directory`` in alphabetical order.

    Raises ``OSError`` when the directory cannot be scanned.
    """
    children: list[DirectoryChild] = []
    with os.scandir(directory) as entries:
        for child in entries:
            name = child.name
            if not show_hidden and name.startswith("."):
                continue
            try:
                is_dir = child.is_dir(follow_symlinks=False)
            except OSError:
                is_dir = False
            children.append(DirectoryChild(name=name, path=Path(child.path), is_dir=is_dir))

    children.sort(key=lambda item: _sort_key(item.name))
    return children


def build_source_tree(
    org_id: str,
    root: Path,
    *,
    show_hidden: bool = False,
    max_depth: int = MAX_DIRECTORY_DEPTH,
) -> tuple[TreeNode, ...]:
    """Walk a retrieved source directory into an ordered folder/file forest.

    Top-level directories named after known metadata types are labelled with
    the type's display name and tag every descendant file with that type.
    Any unreadable directory aborts the whole walk with ``TraversalFailure``
    so callers never see a partial tree.
    """
    root = Path(root)
    if not root.is_dir():
        raise TraversalFailure(org_id, root, "source directory does not exist")

    def file_node(child: DirectoryChild, parts: tuple[str, ...], metadata: MetadataType | None) -> TreeNode:
        relative = "/".join(parts)
        type_name = metadata.xml_name if metadata is not None else "Unknown"
        ref = FileRef(
            id=f"{org_id}:{relative}",
            name=child.name,
            metadata_type=type_name,
            full_name=member_name(parts[1:], metadata) if len(parts) > 1 else member_name(parts, metadata),
            org_id=org_id,
            local_path=str(child.path),
        )
        return TreeNode(
            id=ref.id,
            label=child.name,
            kind=NodeKind.FILE,
            org_id=org_id,
            metadata_type=type_name,
            file=ref,
        )

    def build_children(
        directory: Path,
        parts: tuple[str, ...],
        metadata: MetadataType | None,
        depth: int,
    ) -> tuple[TreeNode, ...]:
        try:
            children = list_directory_children(directory, show_hidden)
        except OSError as exc:
            raise TraversalFailure(org_id, directory, str(exc)) from exc

        nodes: list[TreeNode] = []
        for child in children:
            child_parts = parts + (child.name,)
            if not child.is_dir:
                nodes.append(file_node(child, child_parts, metadata))
                continue
            if depth >= max_depth:
                logger.warning("Skipping %s: deeper than %d levels", child.path, max_depth)
                continue

            child_metadata = metadata
            label = child.name
            if not parts:
                child_metadata = metadata_type_for_directory(child.name)
                if child_metadata is not None:
                    label = child_metadata.display_name
            nodes.append(
                TreeNode(
                    id=f"{org_id}:folder:{'/'.join(child_parts)}",
                    label=label,
                    kind=NodeKind.FOLDER,
                    org_id=org_id,
                    metadata_type=child_metadata.xml_name if child_metadata is not None else None,
                    children=build_children(child.path, child_parts, child_metadata, depth + 1),
                )
            )

        if not parts:
            nodes.sort(key=lambda node: _sort_key(node.label))
        return tuple(nodes)

    tree = build_children(root, (), None, 0)
    logger.info("Built source tree for %s from %s (%d top-level nodes)", org_id, root, len(tree))
    return tree


__all__ = [
    "MAX_DIRECTORY_DEPTH",
    "DirectoryChild",
    "list_directory_children",
    "build_source_tree",
]
