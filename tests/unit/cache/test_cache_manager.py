"""Tests for the in-memory cache mirror: stale cleanup, warm-load and invalidation."""

from __future__ import annotations

import tempfile
import threading
import unittest
from pathlib import Path
from unittest import mock

from orgcompare.cache import PersistentCacheStore, TreeCacheManager
from orgcompare.orgs import Organization
from orgcompare.tree_model import FileRef, NodeKind, TreeNode


def _org(org_id: str) -> Organization:
    return Organization(id=org_id, username=f"{org_id}@example.com")


def _tree(org_id: str) -> tuple[TreeNode, ...]:
    ref = FileRef(
        id=f"{org_id}:classes/Foo.cls",
        name="Foo.cls",
        metadata_type="ApexClass",
        full_name="Foo",
        org_id=org_id,
    )
    return (TreeNode(id=ref.id, label=ref.name, kind=NodeKind.FILE, org_id=org_id, file=ref),)


class TreeCacheManagerTests(unittest.TestCase):
    def test_cleanup_stale_cache_is_idempotent(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            manager = TreeCacheManager(PersistentCacheStore(Path(tmp)))
            for org_id in ("a", "b", "c"):
                manager.put(org_id, _org(org_id), _tree(org_id))

            self.assertEqual(manager.cleanup_stale_cache(["a"]), ["b", "c"])
            self.assertEqual(manager.cleanup_stale_cache(["a"]), [])
            self.assertEqual(manager.cached_ids(), ["a"])
            self.assertIsNone(manager.get("b"))

    def test_startup_warm_loads_known_orgs_into_memory(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            TreeCacheManager(PersistentCacheStore(Path(tmp))).put("a", _org("a"), _tree("a"))

            store = PersistentCacheStore(Path(tmp))
            manager = TreeCacheManager(store)
            evicted = manager.startup(["a", "never-cached"])

            self.assertEqual(evicted, [])
            self.assertEqual(manager.peek("a"), _tree("a"))
            self.assertIsNotNone(manager.last_refreshed("a"))
            with mock.patch.object(store, "read", side_effect=AssertionError("store read")):
                self.assertEqual(manager.get("a"), _tree("a"))

    def test_get_falls_back_to_store_and_fills_memory(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            TreeCacheManager(PersistentCacheStore(Path(tmp))).put("a", _org("a"), _tree("a"))
            manager = TreeCacheManager(PersistentCacheStore(Path(tmp)))

            self.assertIsNone(manager.peek("a"))
            self.assertEqual(manager.get("a"), _tree("a"))
            self.assertEqual(manager.peek("a"), _tree("a"))

    def test_invalidate_drops_memory_and_store(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            store = PersistentCacheStore(Path(tmp))
            manager = TreeCacheManager(store)
            manager.put("a", _org("a"), _tree("a"))

            manager.invalidate("a")

            self.assertIsNone(manager.get("a"))
            self.assertIsNone(manager.last_refreshed("a"))
            self.assertFalse(store.has("a"))

    def test_clear_empties_everything(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            manager = TreeCacheManager(PersistentCacheStore(Path(tmp)))
            manager.put("a", _org("a"), _tree("a"))
            manager.put("b", _org("b"), _tree("b"))

            manager.clear()

            self.assertEqual(manager.cached_ids(), [])
            self.assertEqual(manager.stats().total_orgs, 0)

    def test_slow_write_for_one_org_does_not_block_others(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            store = PersistentCacheStore(Path(tmp))
            TreeCacheManager(store).put("b", _org("b"), _tree("b"))
            manager = TreeCacheManager(store)
            gate = threading.Event()
            writing = threading.Event()
            original_write = store.write

            def slow_write(org_id, org, tree):
                if org_id == "a":
                    writing.set()
                    gate.wait(5)
                return original_write(org_id, org, tree)

            with mock.patch.object(store, "write", side_effect=slow_write):
                writer = threading.Thread(target=manager.put, args=("a", _org("a"), _tree("a")), daemon=True)
                writer.start()
                self.assertTrue(writing.wait(5))

                done = threading.Event()

                def other_org() -> None:
                    manager.get("b")
                    manager.put("c", _org("c"), _tree("c"))
                    done.set()

                threading.Thread(target=other_org, daemon=True).start()
                finished = done.wait(2)
                gate.set()
                writer.join(5)

            self.assertTrue(finished)
            self.assertEqual(manager.peek("b"), _tree("b"))
            self.assertEqual(manager.get("a"), _tree("a"))
            self.assertEqual(sorted(manager.cached_ids()), ["a", "b", "c"])


if __name__ == "__main__":
    unittest.main()
