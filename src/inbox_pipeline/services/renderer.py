"""Render classification: which display variant applies to a stored message.

Pure decision logic, no I/O. Media resolution chains are ordered; audio in
particular must try direct references before the raw-base64 heuristic, and
that heuristic before deferring to a gateway fetch.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from enum import StrEnum
from typing import assert_never

from inbox_pipeline.domain.entities.message import Message
from inbox_pipeline.domain.entities.metadata import (
    AudioMetadata,
    LocationMetadata,
    MediaMetadata,
    ReactionMetadata,
)
from inbox_pipeline.domain.value_objects.enums import DeliveryStatus, MessageType

DEFAULT_AUDIO_MIME = "audio/mp4"

_BASE64_RE = re.compile(r"^[A-Za-z0-9+/]+={0,2}$")
_DIRECT_PREFIXES = ("http://", "https://", "blob:", "data:")


class RenderKind(StrEnum):
    TEXT = "text"
    INTERNAL_NOTE = "internal_note"
    AUDIO = "audio"
    IMAGE = "image"
    VIDEO = "video"
    DOCUMENT = "document"
    STICKER = "sticker"
    LOCATION = "location"
    CONTACT_CARD = "contact_card"
    REACTION = "reaction"
    POLL = "poll"
    INTERACTIVE = "interactive"
    DELETED = "deleted"
    UNSUPPORTED = "unsupported"


class SourceKind(StrEnum):
    DIRECT = "direct"
    SYNTHESIZED = "synthesized"
    DEFERRED = "deferred"
    UNAVAILABLE = "unavailable"


@dataclass(frozen=True, slots=True)
class MediaSource:
    kind: SourceKind
    url: str | None = None
    fetch_id: str | None = None  # gateway id used to resolve a deferred fetch
    message_id: str | None = None

    @property
    def playable(self) -> bool:
        return self.kind in (SourceKind.DIRECT, SourceKind.SYNTHESIZED)


UNAVAILABLE = MediaSource(SourceKind.UNAVAILABLE)


@dataclass(frozen=True, slots=True)
class RenderVariant:
    kind: RenderKind
    text: str | None = None
    source: MediaSource | None = None
    caption: str | None = None
    file_name: str | None = None
    duration: int | None = None
    author_name: str | None = None
    delivery: DeliveryStatus | None = None
    original_type: str | None = None


def classify(message: Message) -> RenderVariant:
    delivery = message.delivery_status
    if message.is_deleted or message.is_deleted_by_user:
        return RenderVariant(RenderKind.DELETED, delivery=delivery)

    meta = message.metadata
    match message.message_type:
        case MessageType.TEXT:
            if message.is_internal_note:
                return RenderVariant(
                    RenderKind.INTERNAL_NOTE,
                    text=message.content,
                    author_name=message.author_name,
                    delivery=delivery,
                )
            return RenderVariant(RenderKind.TEXT, text=message.content, delivery=delivery)
        case MessageType.AUDIO:
            duration = meta.duration if isinstance(meta, AudioMetadata) else None
            return RenderVariant(
                RenderKind.AUDIO,
                source=resolve_audio_source(message),
                duration=duration,
                delivery=delivery,
            )
        case MessageType.IMAGE | MessageType.VIDEO | MessageType.DOCUMENT:
            media = meta if isinstance(meta, MediaMetadata) else None
            return RenderVariant(
                RenderKind(message.message_type.value),
                source=resolve_media_source(message),
                caption=media.caption if media else None,
                file_name=media.file_name if media else None,
                delivery=delivery,
            )
        case MessageType.STICKER:
            content = message.content or ""
            source = MediaSource(SourceKind.DIRECT, url=content) if content.startswith("data:") else UNAVAILABLE
            return RenderVariant(RenderKind.STICKER, source=source, delivery=delivery)
        case MessageType.LOCATION:
            label = None
            if isinstance(meta, LocationMetadata):
                label = meta.name or meta.address
            return RenderVariant(RenderKind.LOCATION, text=label or message.content, delivery=delivery)
        case MessageType.CONTACT:
            return RenderVariant(RenderKind.CONTACT_CARD, text=message.content, delivery=delivery)
        case MessageType.REACTION:
            emoji = meta.emoji if isinstance(meta, ReactionMetadata) else None
            return RenderVariant(RenderKind.REACTION, text=emoji or message.content, delivery=delivery)
        case MessageType.POLL:
            return RenderVariant(RenderKind.POLL, text=message.content, delivery=delivery)
        case MessageType.BUTTON | MessageType.LIST | MessageType.TEMPLATE:
            return RenderVariant(
                RenderKind.INTERACTIVE,
                text=message.content,
                delivery=delivery,
                original_type=message.message_type.value,
            )
        case MessageType.UNSUPPORTED:
            original = meta.extra.get("originalType")
            return RenderVariant(
                RenderKind.UNSUPPORTED,
                text=message.content,
                delivery=delivery,
                original_type=str(original) if original else None,
            )
        case _:
            assert_never(message.message_type)


def resolve_audio_source(message: Message) -> MediaSource:
    content = (message.content or "").strip()
    meta = message.metadata

    if content and _is_direct_reference(content):
        return MediaSource(SourceKind.DIRECT, url=content)
    if content and _looks_like_base64(content):
        mime = (meta.mime_type if isinstance(meta, AudioMetadata) else None) or DEFAULT_AUDIO_MIME
        return MediaSource(SourceKind.SYNTHESIZED, url=f"data:{mime};base64,{content}")
    if meta.gateway_id:
        return MediaSource(SourceKind.DEFERRED, fetch_id=meta.gateway_id, message_id=message.id)
    return UNAVAILABLE


def resolve_media_source(message: Message) -> MediaSource:
    """Image / video / document chain.

    Metadata-embedded URL, inline data URI, raw http(s) URL, deferred fetch.
    """
    content = (message.content or "").strip()
    meta = message.metadata

    embedded = meta.url if isinstance(meta, MediaMetadata) else None
    if embedded and (embedded.startswith("/") or embedded.startswith(_DIRECT_PREFIXES)):
        return MediaSource(SourceKind.DIRECT, url=embedded)
    if content.startswith("data:"):
        return MediaSource(SourceKind.DIRECT, url=content)
    if content.startswith(("http://", "https://")):
        return MediaSource(SourceKind.DIRECT, url=content)
    if meta.gateway_id:
        return MediaSource(SourceKind.DEFERRED, fetch_id=meta.gateway_id, message_id=message.id)
    return UNAVAILABLE


def _is_direct_reference(content: str) -> bool:
    # Root-relative server paths count as direct; they would otherwise pass the base64 check.
    return content.startswith(_DIRECT_PREFIXES) or content.startswith("/")


def _looks_like_base64(content: str) -> bool:
    compact = "".join(content.split())
    return len(compact) % 4 == 0 and bool(_BASE64_RE.match(compact))
