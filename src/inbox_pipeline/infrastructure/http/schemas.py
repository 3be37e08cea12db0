"""Wire models for the REST backend (camelCase JSON)."""
from __future__ import annotations

import json
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, field_validator
from pydantic.alias_generators import to_camel


class WireModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class MessagePayload(WireModel):
    id: str
    conversation_id: int
    is_from_contact: bool = False
    message_type: str | None = "text"
    content: str | None = None
    metadata: dict[str, Any] | None = None
    sent_at: datetime | None = None
    delivered_at: datetime | None = None
    read_at: datetime | None = None
    is_internal_note: bool = False
    author_name: str | None = None
    author_id: int | None = None
    is_deleted_by_user: bool = False
    is_deleted: bool = False
    client_message_id: str | None = None

    @field_validator("id", "client_message_id", mode="before")
    @classmethod
    def _stringify(cls, value: Any) -> Any:
        return str(value) if isinstance(value, int) else value

    @field_validator("metadata", mode="before")
    @classmethod
    def _decode_metadata(cls, value: Any) -> Any:
        # Legacy rows store metadata as a JSON string.
        if isinstance(value, str):
            try:
                decoded = json.loads(value)
            except ValueError:
                return {"raw": value}
            return decoded if isinstance(decoded, dict) else {"raw": decoded}
        return value


class ContactPayload(WireModel):
    id: int | None = None
    name: str | None = None
    phone: str | None = None


class ConversationPayload(WireModel):
    id: int
    contact_id: int | None = None
    contact: ContactPayload | None = None
    channel: str | None = None
    channel_id: int | None = None
    status: str | None = None
    assigned_team_id: int | None = None
    assigned_user_id: int | None = None
    unread_count: int = 0


class QuickReplyPayload(WireModel):
    id: int
    title: str
    type: str = "text"
    content: str | None = None
    file_url: str | None = None
    additional_text: str | None = None
    category: str | None = None


class CreateMessageRequest(WireModel):
    content: str
    message_type: str
    is_from_contact: bool = False
    is_internal_note: bool | None = None
    author_name: str | None = None
    author_id: int | None = None
    client_message_id: str | None = None
    metadata: dict[str, Any] | None = None

    def to_body(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class GatewayAck(WireModel):
    """Loose shape of the gateway's send-* responses."""

    success: bool = True
    error: str | None = None
    message_id: str | None = None
    zaap_id: str | None = None
    id: str | None = None
    file_url: str | None = None
    url: str | None = None
    message: MessagePayload | None = None

    @field_validator("message_id", "zaap_id", "id", mode="before")
    @classmethod
    def _stringify(cls, value: Any) -> Any:
        return str(value) if isinstance(value, int) else value

    @field_validator("message", mode="before")
    @classmethod
    def _only_objects(cls, value: Any) -> Any:
        # Some routes answer {"message": "sent"}; only a full object is a Message.
        return value if isinstance(value, dict) else None

    @property
    def gateway_id(self) -> str | None:
        return self.message_id or self.zaap_id or self.id
