from __future__ import annotations

from typing import Any

from inbox_pipeline.application.ports.clock import as_utc
from inbox_pipeline.domain.entities.conversation import Conversation
from inbox_pipeline.domain.entities.message import Message
from inbox_pipeline.domain.entities.metadata import (
    AudioMetadata,
    GenericMetadata,
    LocationMetadata,
    MediaMetadata,
    MessageMetadata,
    ReactionMetadata,
)
from inbox_pipeline.domain.entities.quick_reply import QuickReply
from inbox_pipeline.domain.value_objects.enums import ConversationStatus, MessageType
from inbox_pipeline.infrastructure.http.schemas import (
    ConversationPayload,
    MessagePayload,
    QuickReplyPayload,
)

_GATEWAY_KEYS = ("messageId", "zaapId")
_AUDIO_KEYS = ("duration", "mimeType")
_MEDIA_KEYS = ("mimeType", "fileName", "fileSize", "caption", "fileUrl", "mediaUrl", "url")
_LOCATION_KEYS = ("latitude", "longitude", "name", "address")
_REACTION_KEYS = ("emoji", "reaction", "targetMessageId", "referencedMessageId")


def payload_to_entity(payload: MessagePayload) -> Message:
    message_type = MessageType.parse(payload.message_type)
    raw_meta = dict(payload.metadata or {})
    if message_type is MessageType.UNSUPPORTED and payload.message_type:
        raw_meta.setdefault("originalType", payload.message_type)
    return Message(
        id=payload.id,
        conversation_id=payload.conversation_id,
        is_from_contact=payload.is_from_contact,
        message_type=message_type,
        content=payload.content,
        metadata=parse_metadata(message_type, raw_meta),
        sent_at=as_utc(payload.sent_at),
        delivered_at=as_utc(payload.delivered_at),
        read_at=as_utc(payload.read_at),
        is_internal_note=payload.is_internal_note,
        author_name=payload.author_name,
        author_id=payload.author_id,
        is_deleted_by_user=payload.is_deleted_by_user,
        is_deleted=payload.is_deleted,
        client_message_id=payload.client_message_id,
    ).normalized()


def message_from_json(data: dict[str, Any]) -> Message:
    return payload_to_entity(MessagePayload.model_validate(data))


def parse_metadata(message_type: MessageType, raw: dict[str, Any]) -> MessageMetadata:
    gateway = {
        "gateway_message_id": _str(raw.get("messageId")),
        "zaap_id": _str(raw.get("zaapId")),
    }
    match message_type:
        case MessageType.AUDIO:
            return AudioMetadata(
                **gateway,
                duration=_int(raw.get("duration")),
                mime_type=_str(raw.get("mimeType")),
                extra=_rest(raw, _GATEWAY_KEYS + _AUDIO_KEYS),
            )
        case MessageType.IMAGE | MessageType.VIDEO | MessageType.DOCUMENT | MessageType.STICKER:
            return MediaMetadata(
                **gateway,
                mime_type=_str(raw.get("mimeType")),
                file_name=_str(raw.get("fileName")),
                file_size=_int(raw.get("fileSize")),
                caption=_str(raw.get("caption")),
                url=_str(raw.get("fileUrl") or raw.get("mediaUrl") or raw.get("url")),
                extra=_rest(raw, _GATEWAY_KEYS + _MEDIA_KEYS),
            )
        case MessageType.LOCATION:
            return LocationMetadata(
                **gateway,
                latitude=_float(raw.get("latitude")),
                longitude=_float(raw.get("longitude")),
                name=_str(raw.get("name")),
                address=_str(raw.get("address")),
                extra=_rest(raw, _GATEWAY_KEYS + _LOCATION_KEYS),
            )
        case MessageType.REACTION:
            return ReactionMetadata(
                **gateway,
                emoji=_str(raw.get("emoji") or raw.get("reaction")),
                target_message_id=_str(raw.get("targetMessageId") or raw.get("referencedMessageId")),
                extra=_rest(raw, _GATEWAY_KEYS + _REACTION_KEYS),
            )
        case _:
            return GenericMetadata(**gateway, extra=_rest(raw, _GATEWAY_KEYS))


def conversation_from_payload(payload: ConversationPayload) -> Conversation:
    try:
        status = ConversationStatus(payload.status or ConversationStatus.OPEN)
    except ValueError:
        status = ConversationStatus.OPEN
    contact = payload.contact
    return Conversation(
        id=payload.id,
        contact_id=payload.contact_id or (contact.id if contact else None),
        contact_phone=contact.phone if contact else None,
        channel=payload.channel,
        channel_id=payload.channel_id,
        status=status,
        assigned_team_id=payload.assigned_team_id,
        assigned_user_id=payload.assigned_user_id,
        unread_count=payload.unread_count,
    )


def quick_reply_from_payload(payload: QuickReplyPayload) -> QuickReply:
    return QuickReply(
        id=payload.id,
        title=payload.title,
        type=MessageType.parse(payload.type),
        content=payload.content,
        file_url=payload.file_url,
        additional_text=payload.additional_text,
        category=payload.category,
    )


def _rest(raw: dict[str, Any], known: tuple[str, ...]) -> dict[str, Any]:
    return {k: v for k, v in raw.items() if k not in known}


def _str(value: Any) -> str | None:
    if value is None or value == "":
        return None
    return str(value)


def _int(value: Any) -> int | None:
    try:
        return int(float(value)) if value is not None else None
    except (TypeError, ValueError, OverflowError):
        return None


def _float(value: Any) -> float | None:
    try:
        return float(value) if value is not None else None
    except (TypeError, ValueError):
        return None
