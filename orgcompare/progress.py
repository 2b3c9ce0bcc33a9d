"""Step-weighted progress reporting and cooperative cancellation."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass

from .errors import RefreshCancelled

logger = logging.getLogger(__name__)

ProgressSink = Callable[[int, float, str], None]


@dataclass(frozen=True)
class ProgressStep:
    """One named step of a long-running operation with a relative weight."""

    name: str
    description: str
    weight: int


ORG_REFRESH: tuple[ProgressStep, ...] = (
    ProgressStep("authenticate", "Verifying authentication", 10),
    ProgressStep("retrieve", "Retrieving metadata from org", 70),
    ProgressStep("process", "Processing metadata files", 15),
    ProgressStep("cache", "Updating cache", 5),
)

MULTI_ORG_REFRESH: tuple[ProgressStep, ...] = (
    ProgressStep("prepare", "Preparing refresh operation", 5),
    ProgressStep("refresh_orgs", "Refreshing organizations", 90),
    ProgressStep("finalize", "Finalizing and updating views", 5),
)


class CancellationToken:
    """Caller-owned flag checked by the refresh pipeline between steps."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self, org_id: str) -> None:
        if self._event.is_set():
            raise RefreshCancelled(org_id)


def _null_sink(_step: int, _percent: float, _message: str) -> None:
    return None


class ProgressReporter:
    """Translate step events into ``(step_index, percent_within_step, message)`` calls."""

    def __init__(self, steps: tuple[ProgressStep, ...], sink: ProgressSink | None = None) -> None:
        self.steps = steps
        self._sink = sink or _null_sink
        self.current_step = 0
        self.current_percent = 0.0
        self.failed_message: str | None = None

    def _emit(self, step_index: int, percent: float, message: str) -> None:
        self.current_step = step_index
        self.current_percent = max(0.0, min(100.0, percent))
        self._sink(step_index, self.current_percent, message)

    def start_step(self, step_index: int, message: str | None = None) -> None:
        if not 0 <= step_index < len(self.steps):
            return
        self._emit(step_index, 0.0, message or self.steps[step_index].description)

    def update_step(self, percent: float, message: str | None = None) -> None:
        step = self.steps[self.current_step] if self.steps else None
        default = step.description if step is not None else ""
        self._emit(self.current_step, percent, message or default)

    def complete_step(self, step_index: int) -> None:
        if not 0 <= step_index < len(self.steps):
            return
        self._emit(step_index, 100.0, f"{self.steps[step_index].description} - done")
        if step_index + 1 < len(self.steps):
            self.start_step(step_index + 1)

    def complete(self, message: str = "Done") -> None:
        self._emit(len(self.steps), 100.0, message)

    def fail(self, message: str) -> None:
        self.failed_message = message
        logger.debug("Progress failed at step %d: %s", self.current_step, message)
        self._sink(self.current_step, self.current_percent, message)

    @property
    def overall_percent(self) -> float:
        """Completion across all steps weighted by ``ProgressStep.weight``."""
        total = sum(step.weight for step in self.steps)
        if total <= 0:
            return 0.0
        if self.current_step >= len(self.steps):
            return 100.0
        done = sum(step.weight for step in self.steps[: self.current_step])
        done += self.steps[self.current_step].weight * self.current_percent / 100.0
        return round(done * 100.0 / total, 2)


__all__ = [
    "ProgressSink",
    "ProgressStep",
    "ORG_REFRESH",
    "MULTI_ORG_REFRESH",
    "CancellationToken",
    "ProgressReporter",
]
