"""End-to-end: refresh two organizations, select one file from each, compare."""

from __future__ import annotations

import tempfile
import unittest
from pathlib import Path

from orgcompare.app import build_app
from orgcompare.config import Settings
from orgcompare.manifest import ManifestConfigRegistry
from orgcompare.orgs import Organization, OrganizationRegistry
from orgcompare.selection import CompareType
from orgcompare.sync import OrgState

DEV = Organization(id="00DDEV", username="dev@example.com", alias="Dev")
PROD = Organization(id="00DPROD", username="prod@example.com", alias="Prod")


class DirectoryRetriever:
    def __init__(self, sources: dict[str, Path]) -> None:
        self.sources = sources

    def retrieve_source(self, org_id: str) -> Path:
        return self.sources[org_id]

    def content_of(self, org_id: str, file_id: str) -> str:
        relative = file_id.split(":", 1)[1]
        return (self.sources[org_id] / relative).read_text(encoding="utf-8")


class DevProdComparisonTests(unittest.TestCase):
    def test_refresh_select_and_compare(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            root = Path(tmp)
            sources = {}
            for org, body in ((DEV, "Integer limit = 10;"), (PROD, "Integer limit = 50;")):
                source = root / org.alias
                (source / "classes").mkdir(parents=True)
                (source / "classes" / "Foo.cls").write_text(
                    f"public class Foo {{\n    {body}\n}}\n", encoding="utf-8"
                )
                sources[org.id] = source

            app = build_app(
                Settings(cache_dir=root / "cache"),
                registry=OrganizationRegistry.in_memory([DEV, PROD]),
                retriever=DirectoryRetriever(sources),
                manifests=ManifestConfigRegistry.in_memory(),
            )
            try:
                self.assertTrue(app.engine.expand(DEV.id)[0].placeholder)
                app.engine.expand(PROD.id)
                outcomes = app.engine.refresh_expanded()
                self.assertTrue(all(outcome.ok for outcome in outcomes))
                self.assertEqual(app.engine.state_of(DEV.id), OrgState.EXPANDED_LIVE)
                hits = app.search_files("foo.cls")
                self.assertEqual([hit.compare_arg for hit in hits], ["Dev:classes/Foo.cls", "Prod:classes/Foo.cls"])

                for org in (DEV, PROD):
                    ref = app.find_file(org.alias, "classes/Foo.cls")
                    self.assertIsNotNone(ref)
                    app.selection.toggle(ref)

                result = app.compare()
            finally:
                app.close()

        self.assertEqual(result.compare_type, CompareType.TWO_WAY)
        # with two files a differing line matches no other file, so it counts as added on both sides
        self.assertEqual(result.modified_lines, 0)
        self.assertEqual(result.added_lines, 2)
        self.assertGreaterEqual(result.changed_lines, 1)
        self.assertEqual([diff.org_name for diff in result.files], ["Dev", "Prod"])

    def test_third_org_matching_dev_reports_modified_lines(self) -> None:
        uat = Organization(id="00DUAT", username="uat@example.com", alias="UAT")
        with tempfile.TemporaryDirectory() as tmp:
            root = Path(tmp)
            sources = {}
            for org, body in ((DEV, "a = 1;"), (PROD, "a = 2;"), (uat, "a = 1;")):
                source = root / org.id
                (source / "classes").mkdir(parents=True)
                (source / "classes" / "Foo.cls").write_text(f"class Foo {{\n{body}\n}}", encoding="utf-8")
                sources[org.id] = source

            app = build_app(
                Settings(cache_dir=root / "cache"),
                registry=OrganizationRegistry.in_memory([DEV, PROD, uat]),
                retriever=DirectoryRetriever(sources),
                manifests=ManifestConfigRegistry.in_memory(),
            )
            try:
                for org in (DEV, PROD, uat):
                    app.engine.refresh_now(org.id)
                refs = [app.find_file(org.id, "classes/Foo.cls") for org in (DEV, PROD, uat)]
                result = app.compare(refs)
            finally:
                app.close()

        self.assertEqual(result.compare_type, CompareType.THREE_WAY)
        self.assertEqual(result.modified_lines, 2)
        self.assertEqual(result.added_lines, 1)
        self.assertEqual(result.total_lines, 9)


if __name__ == "__main__":
    unittest.main()
