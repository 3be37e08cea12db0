from __future__ import annotations

from typing import Any, Protocol

from inbox_pipeline.application.dto.draft import MessageDraft
from inbox_pipeline.application.dto.transfer import MediaFile, RemoteRef
from inbox_pipeline.domain.entities.audio import EncodedAudio
from inbox_pipeline.domain.entities.conversation import Conversation
from inbox_pipeline.domain.entities.message import Message
from inbox_pipeline.domain.entities.quick_reply import QuickReply
from inbox_pipeline.domain.value_objects.enums import TransferKind


class GatewayApi(Protocol):
    """REST backend + messaging gateway. Failures raise ``AppError`` subclasses."""

    async def list_messages(self, conversation_id: int, *, limit: int, offset: int = 0) -> list[Message]: ...

    async def get_conversation(self, conversation_id: int) -> Conversation: ...

    async def create_message(self, conversation_id: int, draft: MessageDraft) -> Message: ...

    async def send_media(
        self,
        kind: TransferKind,
        conversation_id: int,
        contact_phone: str,
        file: MediaFile,
        *,
        caption: str | None = None,
    ) -> RemoteRef: ...

    async def send_audio(
        self,
        conversation_id: int,
        contact_phone: str,
        audio: EncodedAudio,
        *,
        client_message_id: str | None = None,
    ) -> Message | None:
        """Returns the stored message, or None when it will only arrive by push."""
        ...

    async def send_link(
        self,
        conversation_id: int,
        contact_phone: str,
        url: str,
        text: str,
        *,
        client_message_id: str | None = None,
    ) -> Message | None: ...

    async def send_reaction(self, contact_phone: str, target_message_id: str, emoji: str) -> dict[str, Any]: ...

    async def remove_reaction(self, contact_phone: str, target_message_id: str) -> dict[str, Any]: ...

    async def delete_received(self, message_id: str) -> None: ...

    async def delete_sent(self, message_id: str, *, gateway_message_id: str, contact_phone: str | None) -> bool: ...

    async def delete_gateway_message(self, gateway_message_id: str, contact_phone: str | None) -> None: ...

    async def fetch_audio_url(self, message_id: str) -> str: ...

    async def fetch_media_content(self, message_id: str) -> str: ...

    async def mark_read(self, conversation_id: int) -> None: ...

    async def list_quick_replies(self) -> list[QuickReply]: ...
