from __future__ import annotations

from dataclasses import dataclass

from inbox_pipeline.domain.value_objects.enums import ConversationStatus


@dataclass(frozen=True, slots=True)
class ConversationUpdated:
    conversation_id: int
    status: ConversationStatus | None = None
    assigned_team_id: int | None = None
    assigned_user_id: int | None = None
