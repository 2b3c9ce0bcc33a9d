"""Exception taxonomy shared by cache, retrieval, selection and comparison code."""

from __future__ import annotations

SF_CLI_NOT_FOUND = "SF_CLI_NOT_FOUND"
SF_CLI_COMMAND_FAILED = "SF_CLI_COMMAND_FAILED"
SF_CLI_TIMEOUT = "SF_CLI_TIMEOUT"
ORGANIZATION_NOT_FOUND = "ORGANIZATION_NOT_FOUND"
DIRECTORY_NOT_FOUND = "DIRECTORY_NOT_FOUND"


class OrgCompareError(Exception):
    """Base class for all orgcompare errors."""


class CacheCorruption(OrgCompareError):
    """Cached blob exists but cannot be decoded, or index points at missing data."""

    def __init__(self, org_id: str, reason: str) -> None:
        super().__init__(f"cache entry for {org_id} is unusable: {reason}")
        self.org_id = org_id
        self.reason = reason


class RetrievalFailure(OrgCompareError):
    """Remote retrieval failed at ``step`` for ``org_id``."""

    def __init__(
        self,
        org_id: str,
        step: str,
        message: str,
        error_code: str = SF_CLI_COMMAND_FAILED,
    ) -> None:
        super().__init__(f"[{step}] {org_id}: {message}")
        self.org_id = org_id
        self.step = step
        self.message = message
        self.error_code = error_code


class TraversalFailure(RetrievalFailure):
    """Retrieved directory could not be walked."""

    def __init__(self, org_id: str, directory: object, message: str) -> None:
        super().__init__(org_id, "traverse", f"{directory}: {message}", DIRECTORY_NOT_FOUND)
        self.directory = directory


class RefreshCancelled(OrgCompareError):
    """A forced refresh was cancelled by its caller."""

    def __init__(self, org_id: str) -> None:
        super().__init__(f"refresh cancelled for {org_id}")
        self.org_id = org_id


class InvalidTransition(OrgCompareError):
    """Requested expansion-state transition is not allowed from the current state."""

    def __init__(self, org_id: str, current: object, event: str) -> None:
        super().__init__(f"cannot {event} {org_id} while {current}")
        self.org_id = org_id
        self.current = current
        self.event = event


class SelectionBoundsViolation(OrgCompareError, ValueError):
    """Maximum selection size outside ``[2, hard_cap]``."""

    def __init__(self, requested: int, hard_cap: int) -> None:
        super().__init__(f"max compare files must be between 2 and {hard_cap}, got {requested}")
        self.requested = requested
        self.hard_cap = hard_cap


class ComparisonError(OrgCompareError, ValueError):
    """Comparison requested with an unsupported number of files."""


class ManifestConfigError(OrgCompareError, ValueError):
    """Per-organization manifest settings rejected on update."""


__all__ = [
    "SF_CLI_NOT_FOUND",
    "SF_CLI_COMMAND_FAILED",
    "SF_CLI_TIMEOUT",
    "ORGANIZATION_NOT_FOUND",
    "DIRECTORY_NOT_FOUND",
    "OrgCompareError",
    "CacheCorruption",
    "RetrievalFailure",
    "TraversalFailure",
    "RefreshCancelled",
    "InvalidTransition",
    "SelectionBoundsViolation",
    "ComparisonError",
    "ManifestConfigError",
]
