from __future__ import annotations

from datetime import datetime, timedelta

from inbox_pipeline.application.exceptions import PreconditionError
from inbox_pipeline.domain.entities.message import Message


def assert_can_hide(message: Message) -> None:
    if not message.is_from_contact:
        raise PreconditionError("Only received messages can be hidden")
    if message.is_deleted_by_user:
        raise PreconditionError("Message is already hidden")


def assert_can_delete_for_everyone(message: Message, now: datetime, window: timedelta) -> str:
    """Check the sender-side hard delete rules; return the gateway id to delete.

    The window is measured from ``sent_at``, falling back to ``delivered_at``.
    """
    if message.is_from_contact:
        raise PreconditionError("Only sent messages can be deleted for everyone")
    if message.is_internal_note:
        raise PreconditionError("Internal notes are never sent to the channel")
    if message.is_deleted:
        raise PreconditionError("Message is already deleted")
    reference = message.sent_at or message.delivered_at
    if reference is None:
        raise PreconditionError("Message has no send time yet")
    if now - reference > window:
        minutes = int(window.total_seconds() // 60)
        raise PreconditionError(f"Messages can only be deleted within {minutes} minutes of sending")
    gateway_id = message.metadata.gateway_id
    if not gateway_id:
        raise PreconditionError("Message has no gateway identifier")
    return gateway_id
