"""Partitioned outcome of a multi-host run."""

from __future__ import annotations

import threading
from typing import Any

from .errors import HostError
from .models import CommandResult, NodeTarget


class ResponseSet:
    """Per-target outcomes split into successes and failures.

    Entries are appended in completion order while a run is in progress.
    Both append operations share one lock, and readers get copies.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._successes: dict[NodeTarget, Any] = {}
        self._failures: dict[NodeTarget, HostError] = {}

    def _check_new(self, target: NodeTarget) -> None:
        if target in self._successes or target in self._failures:
            raise ValueError(f"Outcome for {target.address} already recorded")

    def add_success(self, target: NodeTarget, payload: Any) -> None:
        with self._lock:
            self._check_new(target)
            self._successes[target] = payload

    def add_failure(self, target: NodeTarget, error: HostError) -> None:
        with self._lock:
            self._check_new(target)
            self._failures[target] = error

    def add_result(self, result: CommandResult) -> None:
        """Record a CommandResult in the partition its error selects."""
        if result.error is not None:
            self.add_failure(result.target, result.error)
        else:
            self.add_success(result.target, result)

    def successes(self) -> dict[NodeTarget, Any]:
        with self._lock:
            return dict(self._successes)

    def failures(self) -> dict[NodeTarget, HostError]:
        with self._lock:
            return dict(self._failures)

    def targets(self) -> list[NodeTarget]:
        with self._lock:
            return [*self._successes, *self._failures]

    def ok(self) -> bool:
        with self._lock:
            return not self._failures

    def has_errors(self) -> bool:
        return not self.ok()

    def __len__(self) -> int:
        with self._lock:
            return len(self._successes) + len(self._failures)

    def __repr__(self) -> str:
        with self._lock:
            return (
                f"<ResponseSet successes={len(self._successes)} "
                f"failures={len(self._failures)}>"
            )
