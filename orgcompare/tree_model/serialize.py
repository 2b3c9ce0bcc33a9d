"""JSON-compatible encoding for trees and cache metadata.

Decoders are strict: any shape mismatch raises ``ValueError`` so callers can
treat the stored payload as corrupt.
"""

from __future__ import annotations

from datetime import datetime, timezone

from .types import CacheMetadata, FileRef, NodeKind, TreeNode


def _require_str(raw: dict[str, object], key: str) -> str:
    value = raw.get(key)
    if not isinstance(value, str):
        raise ValueError(f"expected string for {key!r}, got {type(value).__name__}")
    return value


def _optional_str(raw: dict[str, object], key: str) -> str | None:
    value = raw.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValueError(f"expected string or null for {key!r}")
    return value


def file_ref_to_dict(ref: FileRef) -> dict[str, object]:
    return {
        "id": ref.id,
        "name": ref.name,
        "type": ref.metadata_type,
        "fullName": ref.full_name,
        "orgId": ref.org_id,
        "filePath": ref.local_path,
    }


def file_ref_from_dict(raw: object) -> FileRef:
    if not isinstance(raw, dict):
        raise ValueError("file reference must be an object")
    return FileRef(
        id=_require_str(raw, "id"),
        name=_require_str(raw, "name"),
        metadata_type=_require_str(raw, "type"),
        full_name=_require_str(raw, "fullName"),
        org_id=_require_str(raw, "orgId"),
        local_path=_optional_str(raw, "filePath"),
    )


def node_to_dict(node: TreeNode) -> dict[str, object]:
    out: dict[str, object] = {
        "id": node.id,
        "label": node.label,
        "type": node.kind.value,
    }
    if node.org_id is not None:
        out["orgId"] = node.org_id
    if node.metadata_type is not None:
        out["metadataType"] = node.metadata_type
    if node.file is not None:
        out["file"] = file_ref_to_dict(node.file)
    if node.kind is not NodeKind.FILE:
        out["children"] = [node_to_dict(child) for child in node.children]
    if node.placeholder:
        out["placeholder"] = True
    return out


def node_from_dict(raw: object) -> TreeNode:
    if not isinstance(raw, dict):
        raise ValueError("tree node must be an object")
    kind = NodeKind(_require_str(raw, "type"))
    raw_children = raw.get("children", [])
    if not isinstance(raw_children, list):
        raise ValueError("children must be a list")
    raw_file = raw.get("file")
    file_ref = file_ref_from_dict(raw_file) if raw_file is not None else None
    if kind is NodeKind.FILE and file_ref is None:
        raise ValueError("file node without file reference")
    return TreeNode(
        id=_require_str(raw, "id"),
        label=_require_str(raw, "label"),
        kind=kind,
        org_id=_optional_str(raw, "orgId"),
        metadata_type=_optional_str(raw, "metadataType"),
        file=file_ref,
        children=tuple(node_from_dict(child) for child in raw_children),
        placeholder=bool(raw.get("placeholder", False)),
    )


def tree_to_list(nodes: tuple[TreeNode, ...] | list[TreeNode]) -> list[dict[str, object]]:
    return [node_to_dict(node) for node in nodes]


def tree_from_list(raw: object) -> tuple[TreeNode, ...]:
    if not isinstance(raw, list):
        raise ValueError("tree payload must be a list")
    return tuple(node_from_dict(item) for item in raw)


def format_timestamp(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.isoformat()


def parse_timestamp(raw: object) -> datetime:
    if not isinstance(raw, str):
        raise ValueError("timestamp must be an ISO-8601 string")
    parsed = datetime.fromisoformat(raw.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def metadata_to_dict(meta: CacheMetadata) -> dict[str, object]:
    return {
        "orgId": meta.org_id,
        "orgUsername": meta.username,
        "orgAlias": meta.alias,
        "lastRefreshed": format_timestamp(meta.last_refreshed),
        "fileCount": meta.file_count,
    }


def metadata_from_dict(raw: object) -> CacheMetadata:
    if not isinstance(raw, dict):
        raise ValueError("metadata must be an object")
    file_count = raw.get("fileCount")
    if isinstance(file_count, bool) or not isinstance(file_count, int) or file_count < 0:
        raise ValueError("fileCount must be a non-negative integer")
    return CacheMetadata(
        org_id=_require_str(raw, "orgId"),
        username=_require_str(raw, "orgUsername"),
        alias=_optional_str(raw, "orgAlias"),
        last_refreshed=parse_timestamp(raw.get("lastRefreshed")),
        file_count=file_count,
    )


__all__ = [
    "file_ref_to_dict",
    "file_ref_from_dict",
    "node_to_dict",
    "node_from_dict",
    "tree_to_list",
    "tree_from_list",
    "format_timestamp",
    "parse_timestamp",
    "metadata_to_dict",
    "metadata_from_dict",
]
