"""Source retrieval through the platform command-line tool.

Each organization gets its own project directory under the system temp dir.
A retrieval writes a manifest for the organization's own metadata types and
API version, runs the CLI's ``project retrieve start`` command and returns
the default-package source directory it populated.
"""

from __future__ import annotations

import logging
import shutil
import subprocess
import tempfile
import threading
from collections.abc import Callable
from concurrent.futures import Future
from pathlib import Path
from typing import Protocol

from .config import Settings
from .errors import SF_CLI_COMMAND_FAILED, SF_CLI_NOT_FOUND, SF_CLI_TIMEOUT, RetrievalFailure
from .manifest import ManifestConfigRegistry, ensure_project_structure, source_root, write_manifest
from .orgs import OrganizationRegistry

logger = logging.getLogger(__name__)

TEMP_DIR_PREFIX = "sf-org-compare"
CLI_CANDIDATES = ("sf", "sfdx")
CLI_PROBE_TIMEOUT_SECONDS = 5.0


class RetrievalCollaborator(Protocol):
    """What the sync engine and comparison engine need from retrieval."""

    def retrieve_source(self, org_id: str) -> Path: ...

    def content_of(self, org_id: str, file_id: str) -> str: ...


Runner = Callable[..., subprocess.CompletedProcess[str]]


class SourceRetriever:
    """Retrieval collaborator backed by the platform CLI.

    Concurrent ``retrieve_source`` calls for the same organization share a
    single in-flight retrieval.
    """

    def __init__(
        self,
        registry: OrganizationRegistry,
        settings: Settings,
        *,
        work_root: Path | None = None,
        run: Runner = subprocess.run,
        manifests: ManifestConfigRegistry | None = None,
    ) -> None:
        self.registry = registry
        self.settings = settings
        self.manifests = (
            manifests
            if manifests is not None
            else ManifestConfigRegistry.in_memory(settings.enabled_metadata_types, settings.api_version)
        )
        self.work_root = work_root if work_root is not None else Path(tempfile.gettempdir()) / TEMP_DIR_PREFIX
        self._run = run
        self._cli_command: str | None = None
        self._lock = threading.Lock()
        self._active: dict[str, Future[Path]] = {}
        self._source_dirs: dict[str, Path] = {}

    def project_dir(self, org_id: str) -> Path:
        return self.work_root / f"org-{org_id}"

    def _probe(self, command: str) -> bool:
        try:
            proc = self._run(
                [command, "--version"],
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
                check=False,
                timeout=CLI_PROBE_TIMEOUT_SECONDS,
            )
        except (OSError, subprocess.SubprocessError):
            return False
        return proc.returncode == 0

    def detect_cli(self, org_id: str = "*") -> str:
        """Return a working CLI executable, probing configured then known names."""
        if self._cli_command is not None:
            return self._cli_command
        candidates = (self.settings.cli_command,) if self.settings.cli_command else CLI_CANDIDATES
        for command in candidates:
            if command and self._probe(command):
                logger.info("Found CLI command: %s", command)
                self._cli_command = command
                return command
        raise RetrievalFailure(
            org_id,
            "detect-cli",
            "platform CLI not found; install it or set cli_command in config",
            SF_CLI_NOT_FOUND,
        )

    def retrieve_source(self, org_id: str) -> Path:
        with self._lock:
            active = self._active.get(org_id)
            if active is None:
                future: Future[Path] = Future()
                self._active[org_id] = future
                owner = True
            else:
                future = active
                owner = False

        if not owner:
            logger.info("Joining in-flight retrieval for %s", org_id)
            return future.result()

        logger.info("Starting retrieval for %s", org_id)
        try:
            result = self._perform_retrieval(org_id)
        except BaseException as exc:
            future.set_exception(exc)
            raise
        else:
            future.set_result(result)
            return result
        finally:
            with self._lock:
                self._active.pop(org_id, None)

    def _perform_retrieval(self, org_id: str) -> Path:
        org = self.registry.require(org_id)
        command = self.detect_cli(org_id)
        project_dir = self.project_dir(org_id)

        try:
            manifest = self.manifests.get(org_id, org.alias)
            ensure_project_structure(project_dir, manifest.api_version)
            manifest_path = write_manifest(
                project_dir,
                manifest.enabled_metadata_types,
                manifest.api_version,
                manifest.custom_members,
            )
        except OSError as exc:
            raise RetrievalFailure(org_id, "manifest", str(exc)) from exc

        args = [
            command,
            "project",
            "retrieve",
            "start",
            "--manifest",
            str(manifest_path),
            "--target-org",
            org.display_name,
            "--json",
        ]
        logger.debug("Executing: %s", " ".join(args))
        timeout = self.settings.retrieval_timeout_seconds
        try:
            proc = self._run(
                args,
                cwd=str(project_dir),
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                encoding="utf-8",
                errors="replace",
                check=False,
                timeout=timeout,
            )
        except subprocess.TimeoutExpired as exc:
            raise RetrievalFailure(
                org_id,
                "timeout",
                f"retrieval took longer than {timeout:g}s",
                SF_CLI_TIMEOUT,
            ) from exc
        except OSError as exc:
            raise RetrievalFailure(org_id, "retrieve", str(exc), SF_CLI_COMMAND_FAILED) from exc

        if proc.returncode != 0:
            detail = (proc.stderr or proc.stdout or "").strip() or f"exit code {proc.returncode}"
            raise RetrievalFailure(org_id, "retrieve", detail, SF_CLI_COMMAND_FAILED)

        sources = source_root(project_dir)
        with self._lock:
            self._source_dirs[org_id] = sources
        logger.info("Retrieval complete for %s: %s", org.display_name, sources)
        return sources

    def source_dir(self, org_id: str) -> Path | None:
        with self._lock:
            known = self._source_dirs.get(org_id)
        if known is not None:
            return known
        candidate = source_root(self.project_dir(org_id))
        return candidate if candidate.is_dir() else None

    def content_of(self, org_id: str, file_id: str) -> str:
        """Read a file of the last retrieval by id; unknown files read as ``""``."""
        prefix = f"{org_id}:"
        root = self.source_dir(org_id)
        if root is None or not file_id.startswith(prefix):
            return ""
        root = root.resolve()
        target = (root / file_id[len(prefix) :]).resolve()
        if not target.is_relative_to(root):
            logger.warning("Refusing to read %s outside of %s", target, root)
            return ""
        try:
            return target.read_text(encoding="utf-8", errors="replace")
        except OSError as exc:
            logger.warning("Could not read %s: %s", target, exc)
            return ""

    def clear(self, org_id: str) -> None:
        """Remove the organization's project directory."""
        with self._lock:
            self._source_dirs.pop(org_id, None)
        shutil.rmtree(self.project_dir(org_id), ignore_errors=True)

    def cleanup(self) -> None:
        with self._lock:
            self._source_dirs.clear()
        shutil.rmtree(self.work_root, ignore_errors=True)


__all__ = [
    "TEMP_DIR_PREFIX",
    "CLI_CANDIDATES",
    "RetrievalCollaborator",
    "SourceRetriever",
]
