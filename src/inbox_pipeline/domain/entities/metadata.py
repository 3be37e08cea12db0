"""Per-message-type metadata payloads.

Every variant carries the gateway identifiers plus ``extra``, the only
free-form bag, holding gateway passthrough keys the pipeline does not model.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True, slots=True)
class MessageMetadata:
    gateway_message_id: str | None = None
    zaap_id: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    @property
    def gateway_id(self) -> str | None:
        """Identifier the messaging gateway knows this message by."""
        return self.gateway_message_id or self.zaap_id or _str_or_none(self.extra.get("id"))


@dataclass(frozen=True, slots=True)
class GenericMetadata(MessageMetadata):
    pass


@dataclass(frozen=True, slots=True)
class AudioMetadata(MessageMetadata):
    duration: int | None = None
    mime_type: str | None = None


@dataclass(frozen=True, slots=True)
class MediaMetadata(MessageMetadata):
    """Image, video, document and sticker payloads."""

    mime_type: str | None = None
    file_name: str | None = None
    file_size: int | None = None
    caption: str | None = None
    url: str | None = None


@dataclass(frozen=True, slots=True)
class LocationMetadata(MessageMetadata):
    latitude: float | None = None
    longitude: float | None = None
    name: str | None = None
    address: str | None = None


@dataclass(frozen=True, slots=True)
class ReactionMetadata(MessageMetadata):
    emoji: str | None = None
    target_message_id: str | None = None


def _str_or_none(value: Any) -> str | None:
    if value is None or value == "":
        return None
    return str(value)
