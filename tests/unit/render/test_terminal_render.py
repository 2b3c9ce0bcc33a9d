"""Tests for tree outlines and comparison output."""

from __future__ import annotations

import unittest

from orgcompare.compare import ContentResolver, compare_selection
from orgcompare.render import highlight_lines, render_comparison, render_tree, sanitize_terminal_text
from orgcompare.tree_model import FileRef, NodeKind, TreeNode, placeholder_node


def _file(org_id: str, name: str) -> TreeNode:
    ref = FileRef(id=f"{org_id}:classes/{name}", name=name, metadata_type="ApexClass", full_name=name, org_id=org_id)
    return TreeNode(id=ref.id, label=name, kind=NodeKind.FILE, org_id=org_id, file=ref)


class StaticResolver(ContentResolver):
    def __init__(self, contents: dict[str, str]) -> None:
        super().__init__()
        self.contents = contents

    def content_of(self, file: FileRef) -> str:
        return self.contents[file.id]


class RenderTreeTests(unittest.TestCase):
    def test_collapsed_and_expanded_folders(self) -> None:
        folder = TreeNode(
            id="o:folder:classes",
            label="Apex Classes",
            kind=NodeKind.FOLDER,
            org_id="o",
            children=(_file("o", "Foo.cls"),),
        )

        self.assertEqual(render_tree([folder]), "▾ Apex Classes/\n  Foo.cls")
        self.assertEqual(render_tree([folder], expanded_folders=set()), "▸ Apex Classes/")

    def test_placeholder_is_shown_in_parentheses(self) -> None:
        self.assertEqual(render_tree([placeholder_node("o")]), "(No files cached - refresh to load)")


class RenderComparisonTests(unittest.TestCase):
    def test_no_color_output_has_markers_and_summary(self) -> None:
        a = FileRef(id="dev:classes/Foo.cls", name="Foo.cls", metadata_type="ApexClass", full_name="Foo", org_id="dev")
        b = FileRef(id="prod:classes/Foo.cls", name="Foo.cls", metadata_type="ApexClass", full_name="Foo", org_id="prod")
        result = compare_selection(
            [a, b],
            StaticResolver({a.id: "x\ny", b.id: "x\ny\nz"}),
            {"dev": "Dev", "prod": "Prod"},
        )

        text = render_comparison(result, no_color=True)

        self.assertNotIn("\x1b[", text)
        self.assertIn("Foo.cls ↔ Foo.cls", text)
        self.assertIn("== Dev: Foo ==", text)
        self.assertIn("- 3 | ", text)
        self.assertIn("+ 3 | z", text)
        self.assertIn("  1 | x", text)
        self.assertTrue(text.endswith("two-way (2 files, horizontal): 6 lines, +1 -1 ~0"))

    def test_highlight_keeps_line_count(self) -> None:
        lines = ["", "public class Foo {", "    // comment", "}", ""]
        highlighted = highlight_lines(lines, "Foo.cls")
        self.assertEqual(len(highlighted), len(lines))
        self.assertIn("Foo", highlighted[1])

    def test_unknown_style_falls_back(self) -> None:
        self.assertEqual(len(highlight_lines(["a", "b"], "notes.unknownext", style="no-such-style")), 2)

    def test_control_bytes_are_escaped(self) -> None:
        self.assertEqual(sanitize_terminal_text("a\x07b\tc"), "a\\x07b\tc")


if __name__ == "__main__":
    unittest.main()
