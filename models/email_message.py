from __future__ import annotations

from dataclasses import dataclass


@dataclass(slots=True)
class EmailMessage:
    """Message header as returned by a Gmail ``messages.list`` search."""

    id: str
    thread_id: str | None
    sender: str | None = None
