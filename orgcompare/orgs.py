"""Organization records, the persisted registry, and CLI org discovery."""

from __future__ import annotations

import json
import logging
import subprocess
import threading
from collections.abc import Callable
from dataclasses import dataclass

from . import config
from .errors import ORGANIZATION_NOT_FOUND, SF_CLI_COMMAND_FAILED, RetrievalFailure

logger = logging.getLogger(__name__)

ORG_LIST_TIMEOUT_SECONDS = 30.0


@dataclass(frozen=True)
class Organization:
    """One authenticated tenant of the remote platform."""

    id: str
    username: str
    alias: str | None = None
    instance_url: str = ""

    @property
    def display_name(self) -> str:
        return self.alias or self.username

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.id,
            "username": self.username,
            "alias": self.alias,
            "instanceUrl": self.instance_url,
        }

    @classmethod
    def from_dict(cls, raw: dict[str, object]) -> "Organization | None":
        org_id = raw.get("id")
        username = raw.get("username")
        if not isinstance(org_id, str) or not org_id or not isinstance(username, str) or not username:
            return None
        alias = raw.get("alias")
        instance_url = raw.get("instanceUrl")
        return cls(
            id=org_id,
            username=username,
            alias=alias if isinstance(alias, str) and alias else None,
            instance_url=instance_url if isinstance(instance_url, str) else "",
        )


class OrganizationRegistry:
    """Known organizations, persisted through a pair of record loader/saver hooks."""

    def __init__(
        self,
        load: Callable[[], list[dict[str, object]]] = config.load_organization_records,
        save: Callable[[list[dict[str, object]]], None] = config.save_organization_records,
    ) -> None:
        self._save = save
        self._lock = threading.Lock()
        self._orgs: list[Organization] = []
        for record in load():
            org = Organization.from_dict(record)
            if org is None:
                logger.warning("Skipping malformed organization record: %r", record)
                continue
            self._orgs.append(org)

    @classmethod
    def in_memory(cls, orgs: list[Organization] | None = None) -> "OrganizationRegistry":
        records = [org.to_dict() for org in orgs or []]
        return cls(load=lambda: records, save=lambda _records: None)

    def _persist(self) -> None:
        self._save([org.to_dict() for org in self._orgs])

    def list_organizations(self) -> list[Organization]:
        with self._lock:
            return list(self._orgs)

    def ids(self) -> list[str]:
        with self._lock:
            return [org.id for org in self._orgs]

    def get(self, org_id: str) -> Organization | None:
        with self._lock:
            for org in self._orgs:
                if org.id == org_id:
                    return org
        return None

    def require(self, org_id: str) -> Organization:
        org = self.get(org_id)
        if org is None:
            raise RetrievalFailure(org_id, "org-lookup", "organization not found", ORGANIZATION_NOT_FOUND)
        return org

    def find(self, key: str) -> Organization | None:
        """Look an organization up by id, alias or username."""
        with self._lock:
            for org in self._orgs:
                if key in (org.id, org.alias, org.username):
                    return org
        return None

    def add(self, org: Organization) -> None:
        """Add ``org``, replacing an existing record with the same id wholesale."""
        with self._lock:
            for idx, existing in enumerate(self._orgs):
                if existing.id == org.id:
                    self._orgs[idx] = org
                    break
            else:
                self._orgs.append(org)
            self._persist()
        logger.info("Added organization %s", org.display_name)

    def remove(self, org_id: str) -> bool:
        with self._lock:
            remaining = [org for org in self._orgs if org.id != org_id]
            removed = len(remaining) != len(self._orgs)
            self._orgs = remaining
            if removed:
                self._persist()
        return removed


def _orgs_from_section(section: object) -> list[Organization]:
    if not isinstance(section, list):
        return []
    out: list[Organization] = []
    for item in section:
        if not isinstance(item, dict):
            continue
        username = item.get("username")
        if not isinstance(username, str) or not username:
            continue
        org_id = item.get("orgId")
        alias = item.get("alias")
        instance_url = item.get("instanceUrl") or item.get("loginUrl") or ""
        out.append(
            Organization(
                id=org_id if isinstance(org_id, str) and org_id else username,
                username=username,
                alias=alias if isinstance(alias, str) and alias else None,
                instance_url=instance_url if isinstance(instance_url, str) else "",
            )
        )
    return out


def parse_org_list_output(stdout: str) -> list[Organization]:
    """Parse ``<cli> org list --json`` output into organizations."""
    try:
        payload = json.loads(stdout)
    except ValueError as exc:
        raise RetrievalFailure("*", "org-lookup", f"unparsable org list output: {exc}") from exc
    if not isinstance(payload, dict):
        raise RetrievalFailure("*", "org-lookup", "org list output is not a JSON object")
    if payload.get("status", 0) != 0:
        message = payload.get("message") or "failed to query orgs"
        raise RetrievalFailure("*", "org-lookup", str(message))
    result = payload.get("result")
    if not isinstance(result, dict):
        return []
    return _orgs_from_section(result.get("scratchOrgs")) + _orgs_from_section(result.get("nonScratchOrgs"))


def query_cli_organizations(
    cli_command: str,
    run: Callable[..., subprocess.CompletedProcess[str]] = subprocess.run,
    timeout_seconds: float = ORG_LIST_TIMEOUT_SECONDS,
) -> list[Organization]:
    """List organizations the platform CLI is authenticated against."""
    try:
        proc = run(
            [cli_command, "org", "list", "--json"],
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
            encoding="utf-8",
            errors="replace",
            check=False,
            timeout=timeout_seconds,
        )
    except (OSError, subprocess.SubprocessError) as exc:
        raise RetrievalFailure("*", "org-lookup", str(exc), SF_CLI_COMMAND_FAILED) from exc
    if proc.returncode != 0 and not proc.stdout.strip():
        raise RetrievalFailure("*", "org-lookup", proc.stderr.strip() or f"exit code {proc.returncode}")
    return parse_org_list_output(proc.stdout)


__all__ = [
    "Organization",
    "OrganizationRegistry",
    "parse_org_list_output",
    "query_cli_organizations",
]
