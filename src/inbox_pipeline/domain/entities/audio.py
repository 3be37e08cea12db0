from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class EncodedAudio:
    data: bytes
    mime_type: str
    duration: int  # whole seconds

    @property
    def size(self) -> int:
        return len(self.data)
