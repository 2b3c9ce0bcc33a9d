"""Per-organization expansion and refresh state machine.

Expansion only ever serves what is cached (or a placeholder when nothing
is); remote retrieval happens exclusively on an explicit forced refresh.
Each organization moves through ``OrgState`` according to ``TRANSITIONS``:

    Unexpanded --expand(hit)--> Expanded-Cached
    Unexpanded --expand(miss)-> Expanded-Placeholder
    (any but Refreshing) --refresh--> Refreshing --ok--> Expanded-Live
    Refreshing --failed--> Unexpanded
    Refreshing --cancelled--> state held before the refresh

A failed or cancelled refresh never touches the cache: the new tree is
written through the cache manager only after retrieval and traversal both
succeed, and that write replaces the previous entry wholesale.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from .cache import TreeCacheManager
from .errors import InvalidTransition, OrgCompareError, RefreshCancelled, RetrievalFailure
from .orgs import OrganizationRegistry
from .progress import MULTI_ORG_REFRESH, ORG_REFRESH, CancellationToken, ProgressReporter, ProgressSink
from .retrieval import RetrievalCollaborator
from .tree_model import NodeKind, TreeNode, build_source_tree, iter_nodes, placeholder_node

logger = logging.getLogger(__name__)

DEFAULT_REFRESH_WORKERS = 4


class OrgState(str, Enum):
    UNEXPANDED = "unexpanded"
    EXPANDED_CACHED = "expanded-cached"
    EXPANDED_PLACEHOLDER = "expanded-placeholder"
    REFRESHING = "refreshing"
    EXPANDED_LIVE = "expanded-live"


class SyncEvent(str, Enum):
    EXPAND_HIT = "expand-hit"
    EXPAND_MISS = "expand-miss"
    COLLAPSE = "collapse"
    REFRESH = "refresh"
    REFRESH_OK = "refresh-ok"
    REFRESH_FAILED = "refresh-failed"


EXPANDED_STATES = frozenset(
    {OrgState.EXPANDED_CACHED, OrgState.EXPANDED_PLACEHOLDER, OrgState.EXPANDED_LIVE}
)

TRANSITIONS: dict[tuple[OrgState, SyncEvent], OrgState] = {
    (OrgState.UNEXPANDED, SyncEvent.EXPAND_HIT): OrgState.EXPANDED_CACHED,
    (OrgState.UNEXPANDED, SyncEvent.EXPAND_MISS): OrgState.EXPANDED_PLACEHOLDER,
    (OrgState.UNEXPANDED, SyncEvent.REFRESH): OrgState.REFRESHING,
    (OrgState.REFRESHING, SyncEvent.REFRESH_OK): OrgState.EXPANDED_LIVE,
    (OrgState.REFRESHING, SyncEvent.REFRESH_FAILED): OrgState.UNEXPANDED,
}
for _expanded in EXPANDED_STATES:
    TRANSITIONS[(_expanded, SyncEvent.COLLAPSE)] = OrgState.UNEXPANDED
    TRANSITIONS[(_expanded, SyncEvent.REFRESH)] = OrgState.REFRESHING
del _expanded


@dataclass(frozen=True)
class RefreshOutcome:
    """Result of refreshing one organization within a multi-org refresh."""

    org_id: str
    tree: tuple[TreeNode, ...] | None = None
    error: OrgCompareError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


FailureSink = Callable[[str, OrgCompareError], None]


class TreeSyncEngine:
    """Serve organization trees from cache and run forced refreshes.

    At most one refresh per organization is in flight; a second request for
    the same organization receives the in-flight ``Future``. Refreshes for
    different organizations run independently on a bounded worker pool.
    The engine lock guards expansion state and in-flight futures only;
    cache reads and writes happen outside it.
    """

    def __init__(
        self,
        registry: OrganizationRegistry,
        cache: TreeCacheManager,
        retriever: RetrievalCollaborator,
        *,
        max_workers: int = DEFAULT_REFRESH_WORKERS,
        on_failure: FailureSink | None = None,
        on_remove: Callable[[str], None] | None = None,
        build_tree: Callable[[str, Path], tuple[TreeNode, ...]] = build_source_tree,
    ) -> None:
        self.registry = registry
        self.cache = cache
        self.retriever = retriever
        self._on_failure = on_failure
        self._on_remove = on_remove
        self._build_tree = build_tree
        self._lock = threading.RLock()
        self._states: dict[str, OrgState] = {}
        self._pre_refresh: dict[str, OrgState] = {}
        self._expanded_folders: dict[str, set[str]] = {}
        self._inflight: dict[str, Future[tuple[TreeNode, ...]]] = {}
        self._executor = ThreadPoolExecutor(
            max_workers=max(1, max_workers),
            thread_name_prefix="orgcompare-refresh",
        )

    def __enter__(self) -> "TreeSyncEngine":
        return self

    def __exit__(self, *_exc: object) -> None:
        self.close()

    def close(self) -> None:
        self._executor.shutdown(wait=True)

    def startup(self) -> list[str]:
        """Drop cache entries of unknown organizations and warm-load the rest."""
        return self.cache.startup(self.registry.ids())

    def state_of(self, org_id: str) -> OrgState:
        with self._lock:
            return self._states.get(org_id, OrgState.UNEXPANDED)

    def _transition(self, org_id: str, event: SyncEvent) -> OrgState:
        with self._lock:
            current = self._states.get(org_id, OrgState.UNEXPANDED)
            target = TRANSITIONS.get((current, event))
            if target is None:
                raise InvalidTransition(org_id, current.value, event.value)
            if target is OrgState.UNEXPANDED:
                self._states.pop(org_id, None)
                self._expanded_folders.pop(org_id, None)
            else:
                self._states[org_id] = target
            logger.debug("%s: %s --%s--> %s", org_id, current.value, event.value, target.value)
            return target

    def expanded_org_ids(self) -> list[str]:
        """Organizations currently expanded, in registry order."""
        with self._lock:
            active = {
                org_id
                for org_id, state in self._states.items()
                if state in EXPANDED_STATES or state is OrgState.REFRESHING
            }
        return [org_id for org_id in self.registry.ids() if org_id in active]

    def root_nodes(self) -> list[TreeNode]:
        return [
            TreeNode(id=org.id, label=org.display_name, kind=NodeKind.ORGANIZATION, org_id=org.id)
            for org in self.registry.list_organizations()
        ]

    def _current_children(self, org_id: str) -> tuple[TreeNode, ...]:
        tree = self.cache.get(org_id)
        if tree is None:
            return (placeholder_node(org_id),)
        return tree

    def expand(self, org_id: str) -> tuple[TreeNode, ...]:
        """Return the children of an organization node without remote calls.

        The cache lookup runs outside the engine lock; only the state
        transition is taken under it.
        """
        if self.state_of(org_id) is not OrgState.UNEXPANDED:
            return self._current_children(org_id)

        tree = self.cache.get(org_id)
        with self._lock:
            if self.state_of(org_id) is OrgState.UNEXPANDED:
                if tree is not None:
                    self._transition(org_id, SyncEvent.EXPAND_HIT)
                    logger.info("Expanded %s from cache", org_id)
                    return tree
                self._transition(org_id, SyncEvent.EXPAND_MISS)
                logger.info("Expanded %s with placeholder: nothing cached", org_id)
                return (placeholder_node(org_id),)
        # another caller moved the org on while the cache was read
        return self._current_children(org_id)

    def collapse(self, org_id: str) -> None:
        with self._lock:
            if self.state_of(org_id) is OrgState.UNEXPANDED:
                return
            self._transition(org_id, SyncEvent.COLLAPSE)

    def remove_organization(self, org_id: str) -> None:
        """Forget an organization entirely: registry, expansion state and cache."""
        with self._lock:
            self._states.pop(org_id, None)
            self._pre_refresh.pop(org_id, None)
            self._expanded_folders.pop(org_id, None)
        self.registry.remove(org_id)
        self.cache.invalidate(org_id)
        if self._on_remove is not None:
            self._on_remove(org_id)
        logger.info("Removed organization %s", org_id)

    def _find_node(self, org_id: str, node_id: str) -> TreeNode | None:
        tree = self.cache.peek(org_id)
        if tree is None:
            return None
        for node in iter_nodes(tree):
            if node.id == node_id:
                return node
        return None

    def expand_folder(self, org_id: str, folder_id: str) -> tuple[TreeNode, ...]:
        """Mark a folder expanded and return its already-built children."""
        with self._lock:
            node = self._find_node(org_id, folder_id)
            if node is None or not node.is_folder:
                return ()
            self._expanded_folders.setdefault(org_id, set()).add(folder_id)
            return node.children

    def collapse_folder(self, org_id: str, folder_id: str) -> None:
        with self._lock:
            self._expanded_folders.get(org_id, set()).discard(folder_id)

    def is_folder_expanded(self, org_id: str, folder_id: str) -> bool:
        with self._lock:
            return folder_id in self._expanded_folders.get(org_id, set())

    def expanded_folders(self, org_id: str) -> frozenset[str]:
        with self._lock:
            return frozenset(self._expanded_folders.get(org_id, set()))

    def path_to(self, org_id: str, node_id: str) -> list[TreeNode]:
        """Return the chain of nodes from the top level down to ``node_id``."""
        tree = self.cache.peek(org_id)
        if tree is None:
            return []

        def walk(nodes: tuple[TreeNode, ...], trail: list[TreeNode]) -> list[TreeNode] | None:
            for node in nodes:
                path = trail + [node]
                if node.id == node_id:
                    return path
                found = walk(node.children, path)
                if found is not None:
                    return found
            return None

        return walk(tree, []) or []

    def refresh(
        self,
        org_id: str,
        token: CancellationToken | None = None,
        progress: ProgressSink | None = None,
    ) -> Future[tuple[TreeNode, ...]]:
        """Start (or join) a forced refresh of ``org_id``.

        A caller joining an in-flight refresh shares its outcome; its own
        ``token`` and ``progress`` are not attached to that refresh.
        """
        with self._lock:
            inflight = self._inflight.get(org_id)
            if inflight is not None:
                logger.info("Joining in-flight refresh for %s", org_id)
                return inflight

            previous = self.state_of(org_id)
            self._transition(org_id, SyncEvent.REFRESH)
            self._pre_refresh[org_id] = previous
            future = self._executor.submit(self._run_refresh, org_id, token, progress)
            self._inflight[org_id] = future

            def _release(done: Future[tuple[TreeNode, ...]]) -> None:
                with self._lock:
                    if self._inflight.get(org_id) is done:
                        del self._inflight[org_id]

            future.add_done_callback(_release)
            return future

    def refresh_now(
        self,
        org_id: str,
        token: CancellationToken | None = None,
        progress: ProgressSink | None = None,
    ) -> tuple[TreeNode, ...]:
        return self.refresh(org_id, token, progress).result()

    def _run_refresh(
        self,
        org_id: str,
        token: CancellationToken | None,
        progress: ProgressSink | None,
    ) -> tuple[TreeNode, ...]:
        reporter = ProgressReporter(ORG_REFRESH, progress)
        token = token or CancellationToken()
        try:
            reporter.start_step(0)
            org = self.registry.require(org_id)
            token.raise_if_cancelled(org_id)
            reporter.complete_step(0)

            directory = self.retriever.retrieve_source(org_id)
            token.raise_if_cancelled(org_id)
            reporter.complete_step(1)

            tree = self._build_tree(org_id, Path(directory))
            token.raise_if_cancelled(org_id)
            reporter.complete_step(2)

            with self._lock:
                if self.state_of(org_id) is not OrgState.REFRESHING:
                    # removed while the refresh was running
                    raise RefreshCancelled(org_id)
            self.cache.put(org_id, org, tree)
            with self._lock:
                committed = self.state_of(org_id) is OrgState.REFRESHING
                if committed:
                    self._transition(org_id, SyncEvent.REFRESH_OK)
                    self._pre_refresh.pop(org_id, None)
            if not committed:
                # removed while the cache was being written
                self.cache.invalidate(org_id)
                raise RefreshCancelled(org_id)
            reporter.complete_step(3)
            reporter.complete(f"Refreshed {org.display_name}")
            logger.info("Refreshed %s: %d top-level nodes", org.display_name, len(tree))
            return tree
        except RefreshCancelled:
            with self._lock:
                restored = self._pre_refresh.pop(org_id, OrgState.UNEXPANDED)
                if restored is OrgState.UNEXPANDED:
                    self._states.pop(org_id, None)
                else:
                    self._states[org_id] = restored
            reporter.fail("Refresh cancelled")
            logger.info("Refresh of %s cancelled; restored %s", org_id, restored.value)
            raise
        except Exception as exc:
            with self._lock:
                self._pre_refresh.pop(org_id, None)
                if self.state_of(org_id) is OrgState.REFRESHING:
                    self._transition(org_id, SyncEvent.REFRESH_FAILED)
            error = exc if isinstance(exc, OrgCompareError) else RetrievalFailure(org_id, "refresh", str(exc))
            reporter.fail(str(error))
            logger.warning("Refresh of %s failed: %s", org_id, error)
            if self._on_failure is not None:
                self._on_failure(org_id, error)
            if error is exc:
                raise
            raise error from exc

    def refresh_expanded(
        self,
        token: CancellationToken | None = None,
        progress: ProgressSink | None = None,
    ) -> list[RefreshOutcome]:
        """Refresh every expanded organization one after another.

        Collapsed organizations are left alone. A failure is recorded in the
        outcome list and does not stop the remaining organizations; a
        cancellation stops the sweep.
        """
        reporter = ProgressReporter(MULTI_ORG_REFRESH, progress)
        reporter.start_step(0)
        targets = self.expanded_org_ids()
        reporter.complete_step(0)

        outcomes: list[RefreshOutcome] = []
        for idx, org_id in enumerate(targets):
            if token is not None and token.cancelled:
                outcomes.append(RefreshOutcome(org_id, error=RefreshCancelled(org_id)))
                continue
            reporter.update_step(idx * 100.0 / len(targets), f"Refreshing {org_id}")
            try:
                tree = self.refresh(org_id, token).result()
            except OrgCompareError as exc:
                outcomes.append(RefreshOutcome(org_id, error=exc))
                continue
            outcomes.append(RefreshOutcome(org_id, tree=tree))

        reporter.complete_step(1)
        reporter.complete(f"Refreshed {sum(1 for item in outcomes if item.ok)} of {len(targets)} organizations")
        return outcomes


__all__ = [
    "DEFAULT_REFRESH_WORKERS",
    "OrgState",
    "SyncEvent",
    "EXPANDED_STATES",
    "TRANSITIONS",
    "RefreshOutcome",
    "TreeSyncEngine",
]
