from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from inbox_pipeline.domain.value_objects.enums import MessageType, PendingState


@dataclass(frozen=True, slots=True)
class PendingSend:
    """Optimistic, local-only record of an outbound message in flight."""

    temp_id: str
    conversation_id: int
    message_type: MessageType
    content: str | None
    state: PendingState
    created_at: datetime
    error: str | None = None
