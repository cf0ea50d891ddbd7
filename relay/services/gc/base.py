"""Sweep task contract and per-task outcome."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field


@dataclass
class GCResult:
    """Outcome of one sweep task run.

    ``cleaned_count`` counts sessions finalized or codes purged;
    ``skipped_count`` counts candidates that no longer qualified once
    re-read under their lock.
    """

    task_name: str = ""
    cleaned_count: int = 0
    skipped_count: int = 0
    errors: list[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return not self.errors

    def add_error(self, error: str) -> None:
        self.errors.append(error)


class GCTask(ABC):
    """One sweep over the relay's state, bound to a single db session.

    A failure on one item goes into ``GCResult.errors``; the task carries
    on with the remaining items.
    """

    # Log and config key of the task
    name: str

    @abstractmethod
    async def run(self) -> GCResult: ...
