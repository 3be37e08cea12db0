from __future__ import annotations

from enum import StrEnum


class MessageType(StrEnum):
    TEXT = "text"
    AUDIO = "audio"
    IMAGE = "image"
    VIDEO = "video"
    DOCUMENT = "document"
    STICKER = "sticker"
    LOCATION = "location"
    CONTACT = "contact"
    REACTION = "reaction"
    POLL = "poll"
    BUTTON = "button"
    LIST = "list"
    TEMPLATE = "template"
    UNSUPPORTED = "unsupported"

    @classmethod
    def parse(cls, raw: str | None) -> MessageType:
        try:
            return cls(raw or cls.TEXT)
        except ValueError:
            return cls.UNSUPPORTED


BINARY_TYPES = frozenset(
    {MessageType.AUDIO, MessageType.IMAGE, MessageType.VIDEO, MessageType.DOCUMENT, MessageType.STICKER}
)


class ConversationStatus(StrEnum):
    OPEN = "open"
    PENDING = "pending"
    RESOLVED = "resolved"
    CLOSED = "closed"


class DeliveryStatus(StrEnum):
    COMPOSING = "composing"
    SENT = "sent"  # single check
    DELIVERED = "delivered"  # double gray check
    READ = "read"  # double blue check


class PendingState(StrEnum):
    UPLOADING = "uploading"
    SENT = "sent"
    FAILED = "failed"


class RecordingState(StrEnum):
    INACTIVE = "inactive"
    RECORDING = "recording"
    PREVIEW = "preview"


class TransferKind(StrEnum):
    IMAGE = "image"
    VIDEO = "video"
    DOCUMENT = "document"
