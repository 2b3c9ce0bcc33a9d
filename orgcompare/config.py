"""Persistent JSON config helpers.

Stores comparison limits, retrieval settings, default metadata types, the
organization registry and per-organization manifest configs. All access is
defensive: malformed or missing config falls back safely to defaults.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path

from platformdirs import user_cache_dir, user_config_dir

from .tree_model import known_type_names

logger = logging.getLogger(__name__)

APP_NAME = "orgcompare"
CONFIG_FILENAME = "config.json"
CONFIG_PATH = Path(user_config_dir(APP_NAME, appauthor=False)) / CONFIG_FILENAME
DEFAULT_CACHE_DIR = Path(user_cache_dir(APP_NAME, appauthor=False)) / "orgCache"

DEFAULT_MAX_COMPARE_FILES = 4
HARD_MAX_COMPARE_FILES = 6
DEFAULT_API_VERSION = "58.0"
SUPPORTED_API_VERSIONS = ("58.0", "59.0", "60.0", "61.0")
DEFAULT_RETRIEVAL_TIMEOUT_SECONDS = 60.0
DEFAULT_LOG_LEVEL = "info"
LOG_LEVELS = ("debug", "info", "warning", "error")
DEFAULT_METADATA_TYPES = (
    "ApexClass",
    "ApexTrigger",
    "LightningComponentBundle",
    "AuraDefinitionBundle",
    "CustomObject",
    "Flow",
    "Layout",
    "PermissionSet",
    "Profile",
)
CORE_METADATA_TYPES = (
    "ApexClass",
    "ApexTrigger",
    "LightningComponentBundle",
    "AuraDefinitionBundle",
    "CustomObject",
)


def load_config() -> dict[str, object]:
    """Load the persisted JSON config object.

    Returns an empty dict when the file is missing, unreadable, malformed, or
    does not decode to a top-level JSON object.
    """
    try:
        data = json.loads(CONFIG_PATH.read_text(encoding="utf-8"))
    except FileNotFoundError:
        return {}
    except (OSError, ValueError) as exc:
        logger.warning("Ignoring unreadable config %s: %s", CONFIG_PATH, exc)
        return {}
    return data if isinstance(data, dict) else {}


def save_config(data: dict[str, object]) -> None:
    """Persist config data as pretty-printed JSON."""
    CONFIG_PATH.parent.mkdir(parents=True, exist_ok=True)
    CONFIG_PATH.write_text(json.dumps(data, indent=2) + "\n", encoding="utf-8")


def _update_config(key: str, value: object) -> None:
    config = load_config()
    config[key] = value
    save_config(config)


def load_max_compare_files() -> int:
    """Return persisted selection bound clamped to ``[2, HARD_MAX_COMPARE_FILES]``.

    Booleans and non-integers fall back to ``DEFAULT_MAX_COMPARE_FILES``.
    """
    value = load_config().get("max_compare_files")
    if isinstance(value, bool) or not isinstance(value, int):
        return DEFAULT_MAX_COMPARE_FILES
    return max(2, min(HARD_MAX_COMPARE_FILES, value))


def save_max_compare_files(value: int) -> None:
    _update_config("max_compare_files", int(value))


def load_api_version() -> str:
    value = load_config().get("api_version")
    if isinstance(value, str) and value.strip() in SUPPORTED_API_VERSIONS:
        return value.strip()
    return DEFAULT_API_VERSION


def load_retrieval_timeout() -> float:
    value = load_config().get("retrieval_timeout_seconds")
    if isinstance(value, bool) or not isinstance(value, (int, float)) or value <= 0:
        return DEFAULT_RETRIEVAL_TIMEOUT_SECONDS
    return float(value)


def load_cli_command() -> str | None:
    """Return configured platform CLI executable, or ``None`` to auto-detect."""
    value = load_config().get("cli_command")
    if not isinstance(value, str):
        return None
    stripped = value.strip()
    return stripped if stripped else None


def load_enabled_metadata_types() -> tuple[str, ...]:
    """Return enabled metadata types, dropping names the registry does not know."""
    value = load_config().get("enabled_metadata_types")
    if not isinstance(value, list):
        return DEFAULT_METADATA_TYPES
    known = set(known_type_names())
    enabled = tuple(item for item in value if isinstance(item, str) and item in known)
    return enabled if enabled else DEFAULT_METADATA_TYPES


def save_enabled_metadata_types(names: list[str] | tuple[str, ...]) -> None:
    known = set(known_type_names())
    _update_config("enabled_metadata_types", [name for name in names if name in known])


def load_log_level() -> str:
    value = load_config().get("log_level")
    if isinstance(value, str) and value.strip().lower() in LOG_LEVELS:
        return value.strip().lower()
    return DEFAULT_LOG_LEVEL


def load_cache_dir() -> Path:
    value = load_config().get("cache_dir")
    if isinstance(value, str) and value.strip():
        return Path(value.strip()).expanduser()
    return DEFAULT_CACHE_DIR


def load_organization_records() -> list[dict[str, object]]:
    """Return raw organization records; non-object entries are dropped."""
    value = load_config().get("organizations")
    if not isinstance(value, list):
        return []
    return [item for item in value if isinstance(item, dict)]


def save_organization_records(records: list[dict[str, object]]) -> None:
    _update_config("organizations", records)


def load_manifest_records() -> dict[str, dict[str, object]]:
    """Return raw per-organization manifest configs keyed by org id."""
    value = load_config().get("org_manifests")
    if not isinstance(value, dict):
        return {}
    return {str(org_id): item for org_id, item in value.items() if isinstance(item, dict)}


def save_manifest_records(records: dict[str, dict[str, object]]) -> None:
    _update_config("org_manifests", records)


@dataclass(frozen=True)
class Settings:
    """Snapshot of config values handed to services at construction time."""

    cache_dir: Path = DEFAULT_CACHE_DIR
    max_compare_files: int = DEFAULT_MAX_COMPARE_FILES
    api_version: str = DEFAULT_API_VERSION
    retrieval_timeout_seconds: float = DEFAULT_RETRIEVAL_TIMEOUT_SECONDS
    cli_command: str | None = None
    enabled_metadata_types: tuple[str, ...] = field(default=DEFAULT_METADATA_TYPES)
    log_level: str = DEFAULT_LOG_LEVEL


def load_settings() -> Settings:
    return Settings(
        cache_dir=load_cache_dir(),
        max_compare_files=load_max_compare_files(),
        api_version=load_api_version(),
        retrieval_timeout_seconds=load_retrieval_timeout(),
        cli_command=load_cli_command(),
        enabled_metadata_types=load_enabled_metadata_types(),
        log_level=load_log_level(),
    )


__all__ = [
    "APP_NAME",
    "CONFIG_PATH",
    "DEFAULT_CACHE_DIR",
    "DEFAULT_MAX_COMPARE_FILES",
    "HARD_MAX_COMPARE_FILES",
    "DEFAULT_API_VERSION",
    "SUPPORTED_API_VERSIONS",
    "DEFAULT_RETRIEVAL_TIMEOUT_SECONDS",
    "DEFAULT_METADATA_TYPES",
    "CORE_METADATA_TYPES",
    "LOG_LEVELS",
    "Settings",
    "load_config",
    "save_config",
    "load_max_compare_files",
    "save_max_compare_files",
    "load_api_version",
    "load_retrieval_timeout",
    "load_cli_command",
    "load_enabled_metadata_types",
    "save_enabled_metadata_types",
    "load_log_level",
    "load_cache_dir",
    "load_organization_records",
    "save_organization_records",
    "load_manifest_records",
    "save_manifest_records",
    "load_settings",
]
