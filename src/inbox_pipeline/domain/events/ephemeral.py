from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class TypingChanged:
    conversation_id: int
    is_typing: bool
    user_id: int | None = None


@dataclass(frozen=True, slots=True)
class PresenceChanged:
    user_id: int
    online: bool
