"""WebSocket frame models."""
from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, field_validator, model_validator
from pydantic.alias_generators import to_camel

from inbox_pipeline.domain.events.conversation_updated import ConversationUpdated
from inbox_pipeline.domain.events.ephemeral import PresenceChanged, TypingChanged
from inbox_pipeline.domain.events.message_created import MessageCreated, MessageDeleted, MessageUpdated
from inbox_pipeline.domain.value_objects.enums import ConversationStatus
from inbox_pipeline.infrastructure.http.mappers import message_from_json


class _Frame(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class WsInbound(_Frame):
    """Server → client."""

    type: str  # message_created | message_updated | message_deleted | typing | presence | conversation_updated
    conversation_id: int | None = None
    message: dict[str, Any] | None = None
    message_id: str | None = None
    correlation_id: str | None = None
    optimistic_id: str | None = None
    is_typing: bool | None = None
    user_id: int | None = None
    online: bool | None = None
    status: str | None = None
    assigned_team_id: int | None = None
    assigned_user_id: int | None = None
    deleted_for_everyone: bool | None = None

    @model_validator(mode="before")
    @classmethod
    def _flatten_envelope(cls, raw: Any) -> Any:
        # Also accept the {"event": ..., "data": {...}} envelope.
        if isinstance(raw, dict) and isinstance(raw.get("data"), dict):
            flat = {**raw["data"], **{k: v for k, v in raw.items() if k != "data"}}
            flat.setdefault("type", flat.pop("event", None))
            return flat
        if isinstance(raw, dict) and "type" not in raw and "event" in raw:
            return {**raw, "type": raw["event"]}
        return raw

    @field_validator("message_id", "correlation_id", "optimistic_id", mode="before")
    @classmethod
    def _stringify(cls, value: Any) -> Any:
        return str(value) if isinstance(value, int) else value

    @property
    def correlation(self) -> str | None:
        return self.correlation_id or self.optimistic_id


class WsOutbound(_Frame):
    """Client → server."""

    type: str  # join_conversation | leave_conversation | typing
    conversation_id: int | None = None
    is_typing: bool | None = None

    def to_frame(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


RealtimeEvent = MessageCreated | MessageUpdated | MessageDeleted | TypingChanged | PresenceChanged | ConversationUpdated

_CREATED_TYPES = frozenset({"message_created", "new_message", "broadcast_message", "message_sent"})


def decode_event(frame: dict[str, Any]) -> RealtimeEvent | None:
    """Map an inbound frame to a domain event; None for frames with no effect.

    Raises ``pydantic.ValidationError`` for malformed frames.
    """
    inbound = WsInbound.model_validate(frame)
    if inbound.type in _CREATED_TYPES or inbound.type == "message_updated":
        if inbound.message is None:
            return None
        data = dict(inbound.message)
        if inbound.conversation_id is not None:
            data.setdefault("conversationId", inbound.conversation_id)
        message = message_from_json(data)
        if inbound.type == "message_updated":
            return MessageUpdated(message)
        return MessageCreated(message, correlation_id=inbound.correlation)
    if inbound.type == "message_deleted":
        if inbound.conversation_id is None or inbound.message_id is None:
            return None
        return MessageDeleted(
            inbound.conversation_id,
            inbound.message_id,
            for_everyone=inbound.deleted_for_everyone is not False,
        )
    if inbound.type == "typing":
        if inbound.conversation_id is None:
            return None
        return TypingChanged(inbound.conversation_id, bool(inbound.is_typing), inbound.user_id)
    if inbound.type == "presence":
        if inbound.user_id is None:
            return None
        return PresenceChanged(inbound.user_id, bool(inbound.online))
    if inbound.type == "conversation_updated":
        if inbound.conversation_id is None:
            return None
        try:
            status = ConversationStatus(inbound.status) if inbound.status else None
        except ValueError:
            status = None
        return ConversationUpdated(
            inbound.conversation_id,
            status=status,
            assigned_team_id=inbound.assigned_team_id,
            assigned_user_id=inbound.assigned_user_id,
        )
    return None
