from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime

from inbox_pipeline.domain.entities.metadata import GenericMetadata, MessageMetadata
from inbox_pipeline.domain.value_objects.enums import DeliveryStatus, MessageType


@dataclass(frozen=True, slots=True)
class Message:
    id: str
    conversation_id: int
    is_from_contact: bool
    message_type: MessageType
    content: str | None
    metadata: MessageMetadata = field(default_factory=GenericMetadata)
    sent_at: datetime | None = None
    delivered_at: datetime | None = None
    read_at: datetime | None = None
    is_internal_note: bool = False
    author_name: str | None = None
    author_id: int | None = None
    is_deleted_by_user: bool = False
    is_deleted: bool = False
    client_message_id: str | None = None

    @property
    def delivery_status(self) -> DeliveryStatus | None:
        """Check-mark state for outbound messages; ``None`` for inbound ones."""
        if self.is_from_contact:
            return None
        if self.read_at is not None:
            return DeliveryStatus.READ
        if self.delivered_at is not None:
            return DeliveryStatus.DELIVERED
        if self.sent_at is not None:
            return DeliveryStatus.SENT
        return DeliveryStatus.COMPOSING

    @property
    def timestamp(self) -> datetime | None:
        return self.sent_at or self.delivered_at

    def normalized(self) -> Message:
        """Backfill earlier delivery stages so read => delivered => sent."""
        delivered_at = self.delivered_at or self.read_at
        sent_at = self.sent_at or delivered_at
        if delivered_at is self.delivered_at and sent_at is self.sent_at:
            return self
        return replace(self, delivered_at=delivered_at, sent_at=sent_at)


def merge_messages(current: Message, incoming: Message) -> Message:
    """Last write wins, except delivery timestamps and delete flags never regress."""
    merged = replace(
        incoming,
        sent_at=incoming.sent_at or current.sent_at,
        delivered_at=incoming.delivered_at or current.delivered_at,
        read_at=incoming.read_at or current.read_at,
        is_deleted=incoming.is_deleted or current.is_deleted,
        is_deleted_by_user=incoming.is_deleted_by_user or current.is_deleted_by_user,
        client_message_id=incoming.client_message_id or current.client_message_id,
    )
    return merged.normalized()
