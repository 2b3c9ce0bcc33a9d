"""Service wiring.

Every service is constructed once here and handed its collaborators
explicitly; nothing is reached through module-level singletons.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path

from .cache import PersistentCacheStore, TreeCacheManager
from .compare import ComparisonResult, ContentResolver, compare_selection
from .config import Settings, load_settings
from .manifest import ManifestConfigRegistry
from .orgs import OrganizationRegistry
from .retrieval import RetrievalCollaborator, SourceRetriever
from .search import SearchHit, search_files
from .selection import SelectionManager
from .sync import TreeSyncEngine
from .tree_model import FileRef, iter_files

logger = logging.getLogger(__name__)


@dataclass
class OrgCompareApp:
    settings: Settings
    registry: OrganizationRegistry
    cache: TreeCacheManager
    retriever: RetrievalCollaborator
    engine: TreeSyncEngine
    selection: SelectionManager
    resolver: ContentResolver
    manifests: ManifestConfigRegistry

    def org_names(self) -> dict[str, str]:
        return {org.id: org.display_name for org in self.registry.list_organizations()}

    def find_file(self, org_key: str, relative_path: str) -> FileRef | None:
        """Locate a cached file by organization (id, alias or username) and path."""
        org = self.registry.find(org_key)
        if org is None:
            return None
        tree = self.cache.get(org.id)
        if tree is None:
            return None
        wanted = relative_path.strip("/").replace("\\", "/")
        file_id = f"{org.id}:{wanted}"
        for ref in iter_files(tree):
            if ref.id == file_id:
                return ref
        return None

    def search_files(self, query: str, org_keys: Sequence[str] | None = None) -> list[SearchHit]:
        """Search cached files of every organization, or only of ``org_keys``."""
        org_ids = None
        if org_keys is not None:
            org_ids = [org.id for org in (self.registry.find(key) for key in org_keys) if org is not None]
        return search_files(self.registry, self.cache, query, org_ids)

    def compare(self, files: Sequence[FileRef] | None = None) -> ComparisonResult:
        """Compare ``files`` or, when omitted, the current selection."""
        chosen = tuple(files) if files is not None else self.selection.files
        return compare_selection(chosen, self.resolver, self.org_names(), self.selection.hard_cap)

    def close(self) -> None:
        self.engine.close()


def build_app(
    settings: Settings | None = None,
    *,
    registry: OrganizationRegistry | None = None,
    retriever: RetrievalCollaborator | None = None,
    manifests: ManifestConfigRegistry | None = None,
    cache_dir: Path | None = None,
) -> OrgCompareApp:
    """Construct and start every service; cache cleanup and warm-load run here."""
    settings = settings or load_settings()
    registry = registry if registry is not None else OrganizationRegistry()
    if manifests is None:
        manifests = ManifestConfigRegistry(settings.enabled_metadata_types, settings.api_version)
    store = PersistentCacheStore(cache_dir if cache_dir is not None else settings.cache_dir)
    cache = TreeCacheManager(store)
    if retriever is None:
        retriever = SourceRetriever(registry, settings, manifests=manifests)
    engine = TreeSyncEngine(registry, cache, retriever, on_remove=manifests.remove)
    evicted = engine.startup()
    if evicted:
        logger.info("Evicted cache for removed organizations: %s", ", ".join(evicted))
    return OrgCompareApp(
        settings=settings,
        registry=registry,
        cache=cache,
        retriever=retriever,
        engine=engine,
        selection=SelectionManager(settings.max_compare_files),
        resolver=ContentResolver(retriever),
        manifests=manifests,
    )


__all__ = ["OrgCompareApp", "build_app"]
