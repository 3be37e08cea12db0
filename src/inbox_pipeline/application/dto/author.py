from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class Author:
    """Acting team member; tags internal notes."""

    user_id: int | None = None
    display_name: str | None = None
    username: str | None = None

    @property
    def label(self) -> str:
        return self.display_name or self.username or "User"
