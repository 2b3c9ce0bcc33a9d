"""Tests for source tree construction from a retrieved directory.

Covers type-directory labelling, per-level ordering, stable node ids and
all-or-nothing failure on unreadable directories.
"""

from __future__ import annotations

import tempfile
import unittest
from pathlib import Path
from unittest import mock

from orgcompare.errors import TraversalFailure
from orgcompare.tree_model import (
    NodeKind,
    build_source_tree,
    count_files,
    iter_files,
    member_name,
    metadata_type_for_directory,
)


def _write(root: Path, relative: str, text: str = "") -> None:
    path = root / relative
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")


class BuildSourceTreeTests(unittest.TestCase):
    def test_type_directories_get_display_labels_and_sorted_children(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            root = Path(tmp)
            _write(root, "classes/zeta.cls", "class Zeta {}")
            _write(root, "classes/Alpha.cls", "class Alpha {}")
            _write(root, "classes/Alpha.cls-meta.xml", "<xml/>")
            _write(root, "triggers/AccountTrigger.trigger", "trigger T on Account {}")
            _write(root, ".hidden/ignored.txt")

            tree = build_source_tree("00D1", root)

            self.assertEqual([node.label for node in tree], ["Apex Classes", "Apex Triggers"])
            classes = tree[0]
            self.assertEqual(classes.kind, NodeKind.FOLDER)
            self.assertEqual(classes.id, "00D1:folder:classes")
            self.assertEqual(classes.metadata_type, "ApexClass")
            self.assertEqual(
                [child.label for child in classes.children],
                ["Alpha.cls", "Alpha.cls-meta.xml", "zeta.cls"],
            )

    def test_file_refs_carry_ids_types_and_local_paths(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            root = Path(tmp)
            _write(root, "classes/Foo.cls", "class Foo {}")
            _write(root, "lwc/widget/widget.js", "export default class {}")

            tree = build_source_tree("00D1", root)
            refs = {ref.id: ref for ref in iter_files(tree)}

            foo = refs["00D1:classes/Foo.cls"]
            self.assertEqual(foo.metadata_type, "ApexClass")
            self.assertEqual(foo.full_name, "Foo")
            self.assertEqual(foo.org_id, "00D1")
            self.assertEqual(Path(foo.local_path or "").read_text(encoding="utf-8"), "class Foo {}")

            widget = refs["00D1:lwc/widget/widget.js"]
            self.assertEqual(widget.metadata_type, "LightningComponentBundle")
            self.assertEqual(widget.full_name, "widget")
            self.assertEqual(count_files(tree), 2)

    def test_unknown_top_level_directory_keeps_its_name(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            root = Path(tmp)
            _write(root, "weird/thing.txt", "x")

            tree = build_source_tree("00D1", root)

            self.assertEqual(tree[0].label, "weird")
            self.assertIsNone(tree[0].metadata_type)
            self.assertEqual(tree[0].children[0].file.metadata_type, "Unknown")

    def test_missing_root_raises_traversal_failure(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            with self.assertRaises(TraversalFailure) as ctx:
                build_source_tree("00D1", Path(tmp) / "missing")
        self.assertEqual(ctx.exception.step, "traverse")
        self.assertEqual(ctx.exception.org_id, "00D1")

    def test_unreadable_subdirectory_aborts_whole_walk(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            root = Path(tmp)
            _write(root, "classes/Foo.cls")
            _write(root, "triggers/T.trigger")

            from orgcompare.tree_model import build as build_module

            real = build_module.list_directory_children

            def flaky(directory: Path, show_hidden: bool = False):
                if Path(directory).name == "triggers":
                    raise PermissionError("denied")
                return real(directory, show_hidden)

            with mock.patch.object(build_module, "list_directory_children", side_effect=flaky):
                with self.assertRaises(TraversalFailure):
                    build_source_tree("00D1", root)

    def test_depth_limit_skips_deeper_directories(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            root = Path(tmp)
            _write(root, "a/b/c/deep.txt")
            _write(root, "a/top.txt")

            tree = build_source_tree("00D1", root, max_depth=1)

            labels = [child.label for child in tree[0].children]
            self.assertEqual(labels, ["top.txt"])


class MemberNameTests(unittest.TestCase):
    def test_flat_member_drops_meta_and_type_suffix(self) -> None:
        classes = metadata_type_for_directory("classes")
        self.assertEqual(member_name(("Foo.cls-meta.xml",), classes), "Foo")
        self.assertEqual(member_name(("Foo.cls",), classes), "Foo")

    def test_bundle_member_uses_bundle_directory(self) -> None:
        aura = metadata_type_for_directory("aura")
        self.assertEqual(member_name(("cmp", "cmpController.js"), aura), "cmp")

    def test_empty_parts_yield_empty_name(self) -> None:
        self.assertEqual(member_name((), None), "")


if __name__ == "__main__":
    unittest.main()
