from __future__ import annotations

from dataclasses import dataclass


@dataclass(slots=True)
class Label:
    """A Gmail label. Names are unique per account, ignoring case."""

    id: str
    name: str
    type: str = "user"

    def matches(self, name: str) -> bool:
        return self.name.lower() == name.lower()
