from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from inbox_pipeline.domain.value_objects.enums import MessageType


@dataclass(frozen=True, slots=True)
class MessageDraft:
    """Outbound message body for ``POST /conversations/{id}/messages``."""

    content: str
    message_type: MessageType = MessageType.TEXT
    client_message_id: str | None = None
    is_internal_note: bool = False
    author_name: str | None = None
    author_id: int | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
