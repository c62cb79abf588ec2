from __future__ import annotations

from dataclasses import dataclass, field
from typing import List


@dataclass(slots=True)
class ThreadFailure:
    thread_id: str
    operation: str
    error: str


@dataclass(slots=True)
class RunReport:
    """Outcome of a single pass over the inbox."""

    dry_run: bool = False
    threads_seen: int = 0
    answered: List[str] = field(default_factory=list)
    replied: List[str] = field(default_factory=list)
    labelled: List[str] = field(default_factory=list)
    failures: List[ThreadFailure] = field(default_factory=list)
    aborted: bool = False

    def record_failure(self, thread_id: str, operation: str, error: Exception) -> None:
        self.failures.append(ThreadFailure(thread_id=thread_id, operation=operation, error=str(error)))

    def summary(self) -> str:
        verb = "would reply to" if self.dry_run else "replied to"
        text = (
            f"{self.threads_seen} thread(s) inspected, {verb} {len(self.replied)}, "
            f"labelled {len(self.labelled)}, skipped {len(self.answered)} already answered"
        )
        if self.failures:
            text += f", {len(self.failures)} failed"
        if self.aborted:
            text += " (run aborted)"
        return text
