from __future__ import annotations

from dataclasses import dataclass

from inbox_pipeline.domain.value_objects.enums import ConversationStatus


@dataclass(frozen=True, slots=True)
class Conversation:
    id: int
    contact_id: int | None = None
    contact_phone: str | None = None
    channel: str | None = None
    channel_id: int | None = None
    status: ConversationStatus = ConversationStatus.OPEN
    assigned_team_id: int | None = None
    assigned_user_id: int | None = None
    unread_count: int = 0
