"""Tests for the JSON-file cache store.

Validates on-disk layout, persistence across instances and self-healing
reads when blobs are corrupt or missing.
"""

from __future__ import annotations

import json
import tempfile
import unittest
from pathlib import Path

from orgcompare.cache import PersistentCacheStore, format_bytes
from orgcompare.cache.store import INDEX_FILENAME
from orgcompare.orgs import Organization
from orgcompare.tree_model import FileRef, NodeKind, TreeNode

DEV = Organization(id="00D1", username="dev@example.com", alias="Dev")


def _tree(org_id: str = "00D1", *names: str) -> tuple[TreeNode, ...]:
    leaves = []
    for name in names or ("Foo.cls",):
        ref = FileRef(
            id=f"{org_id}:classes/{name}",
            name=name,
            metadata_type="ApexClass",
            full_name=name.split(".")[0],
            org_id=org_id,
        )
        leaves.append(TreeNode(id=ref.id, label=name, kind=NodeKind.FILE, org_id=org_id, file=ref))
    folder = TreeNode(
        id=f"{org_id}:folder:classes",
        label="Apex Classes",
        kind=NodeKind.FOLDER,
        org_id=org_id,
        children=tuple(leaves),
    )
    return (folder,)


class PersistentCacheStoreTests(unittest.TestCase):
    def test_write_creates_blob_metadata_and_index(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            store = PersistentCacheStore(Path(tmp))
            meta = store.write("00D1", DEV, _tree("00D1", "A.cls", "B.cls"))

            self.assertEqual(meta.file_count, 2)
            self.assertEqual(meta.alias, "Dev")
            self.assertTrue((Path(tmp) / "00D1_files.json").is_file())
            self.assertTrue((Path(tmp) / "00D1_metadata.json").is_file())
            index = json.loads((Path(tmp) / INDEX_FILENAME).read_text(encoding="utf-8"))
            self.assertIn("00D1", index["orgs"])
            self.assertEqual(index["orgs"]["00D1"]["fileCount"], 2)
            self.assertIn("lastUpdated", index)
            self.assertEqual(store.last_updated.isoformat(), index["lastUpdated"])
            self.assertEqual(list(Path(tmp).glob("*.tmp")), [])

    def test_entries_survive_new_instance(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            PersistentCacheStore(Path(tmp)).write("00D1", DEV, _tree())

            reopened = PersistentCacheStore(Path(tmp))

            self.assertTrue(reopened.has("00D1"))
            self.assertEqual(reopened.list_ids(), ["00D1"])
            self.assertEqual(reopened.read("00D1"), _tree())
            self.assertEqual(reopened.read_metadata("00D1").username, "dev@example.com")

    def test_write_replaces_previous_tree_wholesale(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            store = PersistentCacheStore(Path(tmp))
            store.write("00D1", DEV, _tree("00D1", "Old.cls"))
            store.write("00D1", DEV, _tree("00D1", "New.cls"))

            labels = [leaf.label for leaf in store.read("00D1")[0].children]
            self.assertEqual(labels, ["New.cls"])

    def test_corrupt_blob_is_evicted_and_reported_as_miss(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            store = PersistentCacheStore(Path(tmp))
            store.write("00D1", DEV, _tree())
            store.files_path("00D1").write_text("{not json", encoding="utf-8")

            self.assertIsNone(store.read("00D1"))
            self.assertFalse(store.has("00D1"))
            self.assertEqual(store.list_ids(), [])
            self.assertFalse(store.files_path("00D1").exists())
            self.assertFalse(store.metadata_path("00D1").exists())
            self.assertEqual(PersistentCacheStore(Path(tmp)).list_ids(), [])

    def test_missing_blob_is_evicted(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            store = PersistentCacheStore(Path(tmp))
            store.write("00D1", DEV, _tree())
            store.files_path("00D1").unlink()

            self.assertIsNone(store.read("00D1"))
            self.assertIsNone(store.read_metadata("00D1"))

    def test_unknown_id_is_plain_miss(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            store = PersistentCacheStore(Path(tmp))
            self.assertIsNone(store.read("nope"))
            self.assertFalse(store.has("nope"))

    def test_malformed_index_starts_empty(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            (Path(tmp) / INDEX_FILENAME).write_text("[1, 2]", encoding="utf-8")
            self.assertEqual(PersistentCacheStore(Path(tmp)).list_ids(), [])

    def test_remove_and_clear_all(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            store = PersistentCacheStore(Path(tmp))
            store.write("00D1", DEV, _tree("00D1"))
            store.write("00D2", Organization(id="00D2", username="prod@example.com"), _tree("00D2"))

            store.remove("00D1")
            self.assertEqual(store.list_ids(), ["00D2"])
            store.remove("00D1")

            store.clear_all()
            self.assertEqual(store.list_ids(), [])
            self.assertEqual(sorted(p.name for p in Path(tmp).iterdir()), [INDEX_FILENAME])

    def test_stats_counts_orgs_files_and_bytes(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            store = PersistentCacheStore(Path(tmp))
            store.write("00D1", DEV, _tree("00D1", "A.cls", "B.cls", "C.cls"))

            stats = store.stats()

            self.assertEqual(stats.total_orgs, 1)
            self.assertEqual(stats.total_files, 3)
            self.assertGreater(stats.total_bytes, 0)
            self.assertTrue(stats.size_label.endswith("B"))


class FormatBytesTests(unittest.TestCase):
    def test_units(self) -> None:
        self.assertEqual(format_bytes(0), "0 B")
        self.assertEqual(format_bytes(512), "512 B")
        self.assertEqual(format_bytes(1536), "1.5 KB")
        self.assertEqual(format_bytes(5 * 1024 * 1024), "5 MB")
        self.assertEqual(format_bytes(3 * 1024 ** 4), "3072 GB")


if __name__ == "__main__":
    unittest.main()
