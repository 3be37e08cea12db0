from __future__ import annotations

from dataclasses import dataclass

from inbox_pipeline.domain.value_objects.enums import MessageType


@dataclass(frozen=True, slots=True)
class QuickReply:
    id: int
    title: str
    type: MessageType
    content: str | None = None
    file_url: str | None = None
    additional_text: str | None = None
    category: str | None = None

    @property
    def is_media(self) -> bool:
        return self.type is not MessageType.TEXT
