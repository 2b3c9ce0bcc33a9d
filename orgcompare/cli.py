"""Command-line front door for orgcompare.

Parses CLI options, wires the services and dispatches one subcommand:
listing and importing organizations, showing cached trees, forcing
refreshes, inspecting the cache, searching and comparing files across
organizations, and per-organization manifest settings.
"""

from __future__ import annotations

import argparse
import sys

from .app import OrgCompareApp, build_app
from .cache import format_bytes
from .config import HARD_MAX_COMPARE_FILES, LOG_LEVELS, SUPPORTED_API_VERSIONS, load_settings
from .errors import OrgCompareError
from .log import setup_logging
from .orgs import query_cli_organizations
from .render import DEFAULT_STYLE, render_comparison, render_tree
from .retrieval import SourceRetriever
from .sync import RefreshOutcome
from .tree_model import FileRef, count_files


def _print_progress(step: int, percent: float, message: str) -> None:
    sys.stderr.write(f"[step {step + 1} {percent:5.1f}%] {message}\n")


def _file_arg(value: str) -> tuple[str, str]:
    """argparse type for ``ORG:PATH`` file references."""
    org, sep, path = value.partition(":")
    if not sep or not org or not path:
        raise argparse.ArgumentTypeError(f"expected ORG:PATH, got {value!r}")
    return org, path


def _resolve_org_id(app: OrgCompareApp, key: str) -> str:
    org = app.registry.find(key)
    if org is None:
        raise SystemExit(f"Unknown organization: {key}")
    return org.id


def _cmd_orgs(app: OrgCompareApp, _args: argparse.Namespace) -> None:
    orgs = app.registry.list_organizations()
    if not orgs:
        print("No organizations registered. Use 'orgcompare add-org' to import one.")
        return
    for org in orgs:
        refreshed = app.cache.last_refreshed(org.id)
        stamp = refreshed.strftime("%Y-%m-%d %H:%M") if refreshed is not None else "never refreshed"
        print(f"{org.id}\t{org.display_name}\t{org.username}\t{stamp}")


def _cmd_add_org(app: OrgCompareApp, args: argparse.Namespace) -> None:
    if isinstance(app.retriever, SourceRetriever):
        command = app.retriever.detect_cli()
    else:
        command = app.settings.cli_command or "sf"
    available = query_cli_organizations(command)
    if args.all:
        chosen = available
    else:
        chosen = [org for org in available if args.key in (org.id, org.alias, org.username)]
        if not chosen:
            raise SystemExit(f"No authenticated organization matches {args.key!r}")
    for org in chosen:
        app.registry.add(org)
        print(f"Added {org.display_name} ({org.id})")


def _cmd_remove_org(app: OrgCompareApp, args: argparse.Namespace) -> None:
    org_id = _resolve_org_id(app, args.key)
    app.engine.remove_organization(org_id)
    print(f"Removed {org_id}")


def _cmd_tree(app: OrgCompareApp, args: argparse.Namespace) -> None:
    org_id = _resolve_org_id(app, args.key)
    children = app.engine.expand(org_id)
    org = app.registry.require(org_id)
    print(f"▾ {org.display_name}")
    for line in render_tree(children).splitlines():
        print(f"  {line}")


def _cmd_refresh(app: OrgCompareApp, args: argparse.Namespace) -> None:
    progress = None if args.quiet else _print_progress
    if args.keys:
        org_ids = [_resolve_org_id(app, key) for key in args.keys]
        outcomes = []
        for org_id in org_ids:
            try:
                outcomes.append(RefreshOutcome(org_id, tree=app.engine.refresh(org_id, progress=progress).result()))
            except OrgCompareError as exc:
                outcomes.append(RefreshOutcome(org_id, error=exc))
    else:
        if not app.registry.ids():
            raise SystemExit("No organizations registered.")
        for org_id in app.registry.ids():
            app.engine.expand(org_id)
        outcomes = app.engine.refresh_expanded(progress=progress)

    failures = 0
    for outcome in outcomes:
        if outcome.ok:
            print(f"{outcome.org_id}: {count_files(outcome.tree or ())} files cached")
        else:
            failures += 1
            print(f"{outcome.org_id}: refresh failed: {outcome.error}", file=sys.stderr)
    if failures:
        raise SystemExit(f"{failures} of {len(outcomes)} refreshes failed")


def _cmd_cache(app: OrgCompareApp, args: argparse.Namespace) -> None:
    if args.action == "clear":
        app.cache.clear()
        print("Cache cleared.")
        return
    stats = app.cache.stats()
    print(f"Organizations: {stats.total_orgs}")
    print(f"Files: {stats.total_files}")
    print(f"Size: {format_bytes(stats.total_bytes)}")


def _cmd_compare(app: OrgCompareApp, args: argparse.Namespace) -> None:
    refs: list[FileRef] = []
    for org_key, path in args.files:
        ref = app.find_file(org_key, path)
        if ref is None:
            raise SystemExit(f"File not found in cache: {org_key}:{path} (try 'orgcompare refresh {org_key}')")
        if any(ref.id == seen.id for seen in refs):
            print(f"Ignoring repeated file {org_key}:{path}", file=sys.stderr)
            continue
        refs.append(ref)
    if len(refs) > HARD_MAX_COMPARE_FILES:
        raise SystemExit(f"Cannot compare more than {HARD_MAX_COMPARE_FILES} files.")

    app.selection.set_max(max(app.selection.max_files, len(refs)))
    app.selection.clear()
    for ref in refs:
        app.selection.toggle(ref)
    if not app.selection.can_compare():
        raise SystemExit("Select at least two distinct files to compare.")
    result = app.compare()
    sys.stdout.write(render_comparison(result, style=args.style, no_color=args.no_color or not sys.stdout.isatty()))
    sys.stdout.write("\n")


def _cmd_search(app: OrgCompareApp, args: argparse.Namespace) -> None:
    org_ids = [_resolve_org_id(app, key) for key in args.org] if args.org else None
    hits = app.search_files(args.query, org_ids)
    if not hits:
        print(f"No cached files match {args.query!r}.")
        return
    shown = hits[: args.limit] if args.limit > 0 else hits
    for hit in shown:
        print(hit.compare_arg)
    if len(shown) < len(hits):
        print(f"... {len(hits) - len(shown)} more", file=sys.stderr)


def _cmd_manifest(app: OrgCompareApp, args: argparse.Namespace) -> None:
    org = app.registry.require(_resolve_org_id(app, args.key))
    manifest = app.manifests.get(org.id, org.alias)
    if args.reset:
        manifest = app.manifests.reset_to_default(org.id)
    elif args.core:
        manifest = app.manifests.enable_core_only(org.id)
    elif args.all_types:
        manifest = app.manifests.enable_all(org.id)
    if args.types or args.api_version:
        manifest = app.manifests.update(org.id, enabled_metadata_types=args.types, api_version=args.api_version)

    print(f"Organization: {org.display_name} ({org.id})")
    print(f"API version: {manifest.api_version}")
    print(f"Metadata types: {', '.join(manifest.enabled_metadata_types)}")
    for name, members in sorted(manifest.custom_members.items()):
        print(f"  {name}: {', '.join(members)}")
    print(f"Last modified: {manifest.last_modified.strftime('%Y-%m-%d %H:%M')}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="orgcompare",
        description="Cache per-organization source trees and compare files across organizations.",
    )
    parser.add_argument("--log-level", choices=LOG_LEVELS, default=None, help="Override the configured log level.")
    parser.add_argument("--style", default=DEFAULT_STYLE, help="Pygments style name for comparison output.")
    parser.add_argument("--no-color", action="store_true", help="Disable color output even on TTY.")
    sub = parser.add_subparsers(dest="command", required=True)

    orgs = sub.add_parser("orgs", help="List registered organizations.")
    orgs.set_defaults(handler=_cmd_orgs)

    add_org = sub.add_parser("add-org", help="Import an authenticated organization from the platform CLI.")
    add_org.add_argument("key", nargs="?", default=None, help="Org id, alias or username.")
    add_org.add_argument("--all", action="store_true", help="Import every authenticated organization.")
    add_org.set_defaults(handler=_cmd_add_org)

    remove_org = sub.add_parser("remove-org", help="Forget an organization and drop its cache.")
    remove_org.add_argument("key", help="Org id, alias or username.")
    remove_org.set_defaults(handler=_cmd_remove_org)

    tree = sub.add_parser("tree", help="Show the cached source tree of an organization.")
    tree.add_argument("key", help="Org id, alias or username.")
    tree.set_defaults(handler=_cmd_tree)

    refresh = sub.add_parser("refresh", help="Retrieve source again and replace the cached tree.")
    refresh.add_argument("keys", nargs="*", help="Organizations to refresh (default: all registered).")
    refresh.add_argument("--quiet", action="store_true", help="Do not print progress.")
    refresh.set_defaults(handler=_cmd_refresh)

    cache = sub.add_parser("cache", help="Inspect or clear the tree cache.")
    cache.add_argument("action", choices=("stats", "clear"))
    cache.set_defaults(handler=_cmd_cache)

    compare = sub.add_parser("compare", help="Compare cached files, given as ORG:PATH.")
    compare.add_argument("files", nargs="+", type=_file_arg, metavar="ORG:PATH")
    compare.set_defaults(handler=_cmd_compare)

    search = sub.add_parser("search", help="Find cached files across organizations by name or path.")
    search.add_argument("query", nargs="?", default="", help="Case-insensitive name or ORG/PATH fragment.")
    search.add_argument("--org", action="append", metavar="KEY", help="Only search this organization (repeatable).")
    search.add_argument("--limit", type=int, default=0, help="Print at most this many matches.")
    search.set_defaults(handler=_cmd_search)

    manifest = sub.add_parser("manifest", help="Show or change which metadata an organization retrieves.")
    manifest.add_argument("key", help="Org id, alias or username.")
    preset = manifest.add_mutually_exclusive_group()
    preset.add_argument("--reset", action="store_true", help="Restore the default types and API version.")
    preset.add_argument("--core", action="store_true", help="Retrieve only the core code types.")
    preset.add_argument("--all-types", action="store_true", help="Retrieve every known metadata type.")
    manifest.add_argument("--types", nargs="+", metavar="TYPE", help="Metadata types to retrieve.")
    manifest.add_argument("--api-version", choices=SUPPORTED_API_VERSIONS, help="API version for retrieval.")
    manifest.set_defaults(handler=_cmd_manifest)
    return parser


def main(argv: list[str] | None = None) -> None:
    """Parse CLI arguments, build services and run one subcommand.

    ``argv`` is primarily for tests; when omitted ``sys.argv`` is used.
    Domain errors are reported as ``SystemExit`` messages.
    """
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.command == "add-org" and not args.all and not args.key:
        parser.error("add-org needs an org key or --all")

    settings = load_settings()
    setup_logging(args.log_level or settings.log_level)
    app = build_app(settings)
    try:
        args.handler(app, args)
    except OrgCompareError as exc:
        raise SystemExit(str(exc)) from exc
    finally:
        app.close()


if __name__ == "__main__":
    main()
