from __future__ import annotations

from dataclasses import dataclass


@dataclass(slots=True)
class EmailThread:
    id: str
    snippet: str = ""
    history_id: str | None = None
