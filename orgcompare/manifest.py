"""Retrieval manifests, per-organization manifest settings and project scaffolding.

Each organization retrieves its own set of metadata types at its own API
version. Those settings live in the config file under ``org_manifests`` and
are created from the global defaults the first time an organization is
retrieved.
"""

from __future__ import annotations

import json
import logging
import threading
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from pathlib import Path
from xml.sax.saxutils import escape

from . import config
from .errors import ManifestConfigError
from .tree_model import METADATA_TYPES, known_type_names
from .tree_model.serialize import format_timestamp, parse_timestamp

logger = logging.getLogger(__name__)

MANIFEST_FILENAME = "package.xml"
PROJECT_FILENAME = "sfdx-project.json"
PACKAGE_DIRECTORY = "force-app"
METADATA_NAMESPACE = "http://soap.sforce.com/2006/04/metadata"


def source_root(project_dir: Path) -> Path:
    """Directory the CLI retrieves default-package source into."""
    return project_dir / PACKAGE_DIRECTORY / "main" / "default"


def generate_manifest(
    metadata_types: Sequence[str],
    api_version: str,
    members: Mapping[str, Sequence[str]] | None = None,
) -> str:
    """Build a ``package.xml`` for the listed types.

    A type retrieves the members named in ``members`` or, when none are
    listed for it, every member (``*``).
    """
    members = members or {}
    lines = [
        '<?xml version="1.0" encoding="UTF-8"?>',
        f'<Package xmlns="{METADATA_NAMESPACE}">',
    ]
    for name in metadata_types:
        lines.append("    <types>")
        for member in members.get(name) or ("*",):
            lines.append(f"        <members>{escape(member)}</members>")
        lines.append(f"        <name>{escape(name)}</name>")
        lines.append("    </types>")
    lines.append(f"    <version>{escape(api_version)}</version>")
    lines.append("</Package>")
    return "\n".join(lines) + "\n"


def ensure_project_structure(project_dir: Path, api_version: str) -> None:
    """Create ``sfdx-project.json`` and the default package directory if missing."""
    project_dir.mkdir(parents=True, exist_ok=True)
    project_config = project_dir / PROJECT_FILENAME
    if not project_config.exists():
        payload = {
            "packageDirectories": [{"path": PACKAGE_DIRECTORY, "default": True}],
            "namespace": "",
            "sourceApiVersion": api_version,
        }
        project_config.write_text(json.dumps(payload, indent=2) + "\n", encoding="utf-8")
    source_root(project_dir).mkdir(parents=True, exist_ok=True)


def write_manifest(
    project_dir: Path,
    metadata_types: Sequence[str],
    api_version: str,
    members: Mapping[str, Sequence[str]] | None = None,
) -> Path:
    manifest_path = project_dir / MANIFEST_FILENAME
    manifest_path.write_text(generate_manifest(metadata_types, api_version, members), encoding="utf-8")
    return manifest_path


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _ordered_types(names: Sequence[str]) -> tuple[str, ...]:
    wanted = set(names)
    return tuple(item.xml_name for item in METADATA_TYPES if item.xml_name in wanted)


@dataclass(frozen=True)
class OrgManifestConfig:
    """Metadata types, member filters and API version retrieved for one organization."""

    org_id: str
    enabled_metadata_types: tuple[str, ...]
    api_version: str
    last_modified: datetime
    org_alias: str | None = None
    custom_members: Mapping[str, tuple[str, ...]] = field(default_factory=dict)

    def to_dict(self) -> dict[str, object]:
        return {
            "orgAlias": self.org_alias,
            "lastModified": format_timestamp(self.last_modified),
            "enabledMetadataTypes": list(self.enabled_metadata_types),
            "customMembers": {name: list(items) for name, items in self.custom_members.items()},
            "apiVersion": self.api_version,
        }


class ManifestConfigRegistry:
    """Per-organization manifest settings, persisted through loader/saver hooks.

    Stored entries are sanitized on load: unknown metadata types and
    unsupported API versions fall back to the registry defaults.
    """

    def __init__(
        self,
        default_types: Sequence[str] = config.DEFAULT_METADATA_TYPES,
        default_api_version: str = config.DEFAULT_API_VERSION,
        load: Callable[[], dict[str, dict[str, object]]] = config.load_manifest_records,
        save: Callable[[dict[str, dict[str, object]]], None] = config.save_manifest_records,
    ) -> None:
        self.default_types = _ordered_types(default_types) or _ordered_types(config.DEFAULT_METADATA_TYPES)
        self.default_api_version = default_api_version
        self._save = save
        self._lock = threading.Lock()
        self._configs: dict[str, OrgManifestConfig] = {}
        for org_id, raw in load().items():
            self._configs[org_id] = self._from_dict(org_id, raw)
        if self._configs:
            logger.info("Loaded manifest configurations for %d orgs", len(self._configs))

    @classmethod
    def in_memory(
        cls,
        default_types: Sequence[str] = config.DEFAULT_METADATA_TYPES,
        default_api_version: str = config.DEFAULT_API_VERSION,
    ) -> "ManifestConfigRegistry":
        return cls(default_types, default_api_version, load=dict, save=lambda _records: None)

    def _from_dict(self, org_id: str, raw: dict[str, object]) -> OrgManifestConfig:
        types = raw.get("enabledMetadataTypes")
        enabled = _ordered_types([item for item in types if isinstance(item, str)]) if isinstance(types, list) else ()
        api_version = raw.get("apiVersion")
        if not isinstance(api_version, str) or api_version not in config.SUPPORTED_API_VERSIONS:
            api_version = self.default_api_version
        try:
            last_modified = parse_timestamp(raw.get("lastModified"))
        except ValueError:
            last_modified = _now()
        members: dict[str, tuple[str, ...]] = {}
        raw_members = raw.get("customMembers")
        if isinstance(raw_members, dict):
            for name, items in raw_members.items():
                if isinstance(items, list):
                    members[str(name)] = tuple(item for item in items if isinstance(item, str) and item)
        alias = raw.get("orgAlias")
        return OrgManifestConfig(
            org_id=org_id,
            enabled_metadata_types=enabled or self.default_types,
            api_version=api_version,
            last_modified=last_modified,
            org_alias=alias if isinstance(alias, str) and alias else None,
            custom_members=members,
        )

    def _persist(self) -> None:
        self._save({org_id: item.to_dict() for org_id, item in self._configs.items()})

    def get(self, org_id: str, org_alias: str | None = None) -> OrgManifestConfig:
        """Return the organization's settings, creating defaults on first use."""
        with self._lock:
            existing = self._configs.get(org_id)
            if existing is not None:
                return existing
            created = OrgManifestConfig(
                org_id=org_id,
                enabled_metadata_types=self.default_types,
                api_version=self.default_api_version,
                last_modified=_now(),
                org_alias=org_alias,
            )
            self._configs[org_id] = created
            self._persist()
            return created

    def update(
        self,
        org_id: str,
        *,
        enabled_metadata_types: Sequence[str] | None = None,
        api_version: str | None = None,
        custom_members: Mapping[str, Sequence[str]] | None = None,
    ) -> OrgManifestConfig:
        """Replace the given fields of an organization's settings.

        Unknown metadata type names, an empty type list and unsupported API
        versions raise ``ManifestConfigError`` and leave the settings as they
        were.
        """
        changes: dict[str, object] = {}
        if enabled_metadata_types is not None:
            unknown = sorted(set(enabled_metadata_types) - set(known_type_names()))
            if unknown:
                raise ManifestConfigError(f"unknown metadata types: {', '.join(unknown)}")
            enabled = _ordered_types(enabled_metadata_types)
            if not enabled:
                raise ManifestConfigError("at least one metadata type must be enabled")
            changes["enabled_metadata_types"] = enabled
        if api_version is not None:
            if api_version not in config.SUPPORTED_API_VERSIONS:
                raise ManifestConfigError(
                    f"unsupported API version {api_version!r}; expected one of {', '.join(config.SUPPORTED_API_VERSIONS)}"
                )
            changes["api_version"] = api_version
        if custom_members is not None:
            changes["custom_members"] = {
                name: tuple(items) for name, items in custom_members.items() if tuple(items)
            }

        current = self.get(org_id)
        with self._lock:
            updated = replace(current, last_modified=_now(), **changes)
            self._configs[org_id] = updated
            self._persist()
        logger.info("Updated manifest config for %s: %s", org_id, ", ".join(updated.enabled_metadata_types))
        return updated

    def enabled_types(self, org_id: str) -> tuple[str, ...]:
        return self.get(org_id).enabled_metadata_types

    def reset_to_default(self, org_id: str) -> OrgManifestConfig:
        return self.update(
            org_id,
            enabled_metadata_types=self.default_types,
            api_version=self.default_api_version,
            custom_members={},
        )

    def enable_all(self, org_id: str) -> OrgManifestConfig:
        return self.update(org_id, enabled_metadata_types=known_type_names())

    def enable_core_only(self, org_id: str) -> OrgManifestConfig:
        return self.update(org_id, enabled_metadata_types=config.CORE_METADATA_TYPES)

    def remove(self, org_id: str) -> None:
        with self._lock:
            if self._configs.pop(org_id, None) is None:
                return
            self._persist()
        logger.info("Removed manifest config for %s", org_id)

    def configured_ids(self) -> list[str]:
        with self._lock:
            return list(self._configs)


__all__ = [
    "MANIFEST_FILENAME",
    "PROJECT_FILENAME",
    "source_root",
    "generate_manifest",
    "ensure_project_structure",
    "write_manifest",
    "OrgManifestConfig",
    "ManifestConfigRegistry",
]
