"""Domain model for per-organization source trees.

This package contains non-UI tree primitives:
- organization/folder/file node datatypes with nested children
- strict JSON encoding used by the persistent cache
- filesystem walking of retrieved source directories
- the metadata-type registry that labels top-level folders
"""

from __future__ import annotations

from .build import MAX_DIRECTORY_DEPTH, DirectoryChild, build_source_tree, list_directory_children
from .metadata_types import (
    METADATA_TYPES,
    MetadataType,
    known_type_names,
    member_name,
    metadata_type_for_directory,
)
from .serialize import metadata_from_dict, metadata_to_dict, tree_from_list, tree_to_list
from .types import (
    PLACEHOLDER_LABEL,
    CacheMetadata,
    FileRef,
    NodeKind,
    TreeNode,
    count_files,
    iter_files,
    iter_nodes,
    placeholder_node,
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
    "tree_to_list",
    "tree_from_list",
    "metadata_to_dict",
    "metadata_from_dict",
    "MAX_DIRECTORY_DEPTH",
    "DirectoryChild",
    "list_directory_children",
    "build_source_tree",
    "METADATA_TYPES",
    "MetadataType",
    "known_type_names",
    "member_name",
    "metadata_type_for_directory",
]
