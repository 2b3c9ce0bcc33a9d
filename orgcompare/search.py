"""Find cached files across every registered organization.

Matching is a case-insensitive substring test against the file name and the
``<org>/<path>`` string, so ``dev/classes`` narrows to one organization's
classes. Only cached trees are searched; nothing is retrieved.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass

from .cache import TreeCacheManager
from .orgs import OrganizationRegistry
from .tree_model import FileRef, iter_files


@dataclass(frozen=True)
class SearchHit:
    org_id: str
    org_name: str
    path: str
    file: FileRef

    @property
    def compare_arg(self) -> str:
        """``ORG:PATH`` form accepted by ``orgcompare compare``."""
        return f"{self.org_name}:{self.path}"


def relative_path(ref: FileRef) -> str:
    """Path of ``ref`` below its organization's source root."""
    return ref.id.partition(":")[2]


def search_files(
    registry: OrganizationRegistry,
    cache: TreeCacheManager,
    query: str,
    org_ids: Iterable[str] | None = None,
) -> list[SearchHit]:
    """Return cached files matching ``query``, ordered by organization then path.

    An empty query lists every cached file. Organizations without a cached
    tree contribute nothing.
    """
    needle = query.strip().lower()
    only = set(org_ids) if org_ids is not None else None
    hits: list[SearchHit] = []
    for org in registry.list_organizations():
        if only is not None and org.id not in only:
            continue
        tree = cache.get(org.id)
        if tree is None:
            continue
        for ref in iter_files(tree):
            path = relative_path(ref)
            if needle and needle not in ref.name.lower() and needle not in f"{org.display_name}/{path}".lower():
                continue
            hits.append(SearchHit(org_id=org.id, org_name=org.display_name, path=path, file=ref))
    hits.sort(key=lambda hit: (hit.org_name.lower(), hit.path.lower()))
    return hits


__all__ = ["SearchHit", "relative_path", "search_files"]
