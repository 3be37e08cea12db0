"""Message Composer: builds outbound messages and sequences multi-part sends.

Every send registers a ``PendingSend`` first. A failure only marks that entry
failed; the message list itself changes only through the store's merge path
once the backend confirms.
"""
from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import replace
from datetime import timedelta
from typing import AsyncIterator

from inbox_pipeline.application.dto.author import Author
from inbox_pipeline.application.dto.draft import MessageDraft
from inbox_pipeline.application.dto.result import Result
from inbox_pipeline.application.dto.transfer import Ack, MediaFile
from inbox_pipeline.application.exceptions import AppError, PreconditionError, SendError, SendStep
from inbox_pipeline.application.policies.deletion import assert_can_delete_for_everyone, assert_can_hide
from inbox_pipeline.application.ports.clock import Clock, SystemClock
from inbox_pipeline.application.ports.gateway import GatewayApi
from inbox_pipeline.config import Settings, settings as default_settings
from inbox_pipeline.domain.entities.audio import EncodedAudio
from inbox_pipeline.domain.entities.message import Message
from inbox_pipeline.domain.entities.quick_reply import QuickReply
from inbox_pipeline.domain.value_objects.enums import MessageType, PendingState, TransferKind
from inbox_pipeline.services.conversation_store import ConversationStore
from inbox_pipeline.services.media_transfer import MediaTransferAdapter
from inbox_pipeline.services.typing_indicator import TypingIndicator

logger = logging.getLogger(__name__)

_QUICK_REPLY_TYPES = frozenset(
    {MessageType.TEXT, MessageType.AUDIO, MessageType.IMAGE, MessageType.VIDEO, MessageType.DOCUMENT}
)


class MessageComposer:
    def __init__(
        self,
        gateway: GatewayApi,
        store: ConversationStore,
        transfer: MediaTransferAdapter,
        settings: Settings = default_settings,
        author: Author | None = None,
        typing: TypingIndicator | None = None,
        clock: Clock | None = None,
    ) -> None:
        self._gateway = gateway
        self._store = store
        self._transfer = transfer
        self._settings = settings
        self._author = author or Author()
        self._typing = typing
        self._clock = clock or SystemClock()

    # ---- text ----

    async def send_text(
        self,
        conversation_id: int,
        text: str,
        *,
        is_internal_note: bool = False,
    ) -> Result[Message]:
        """Send a text message, or store an internal note that never reaches the channel."""
        if not text.strip():
            return Result.failure(PreconditionError("Message text is empty"))

        draft = MessageDraft(content=text, message_type=MessageType.TEXT)
        if is_internal_note:
            draft = replace(
                draft,
                is_internal_note=True,
                author_name=self._author.label,
                author_id=self._author.user_id,
            )
        async with self._sending(conversation_id):
            try:
                message = await self._post(conversation_id, draft)
            except AppError as exc:
                return Result.failure(SendError(SendStep.PRIMARY, exc))
        return Result.success(message)

    async def send_link(self, conversation_id: int, contact_phone: str | None, url: str, text: str = "") -> Result[Message | None]:
        if not contact_phone:
            return Result.failure(PreconditionError("Contact has no phone number"))
        if not url.startswith(("http://", "https://")):
            return Result.failure(PreconditionError(f"{url!r} is not a web link"))

        pending = self._store.add_pending(conversation_id, MessageType.TEXT, f"{text} {url}".strip())
        async with self._sending(conversation_id):
            try:
                message = await self._gateway.send_link(
                    conversation_id, contact_phone, url, text, client_message_id=pending.temp_id
                )
            except AppError as exc:
                self._store.mark_failed(pending.temp_id, exc.user_message)
                return Result.failure(SendError(SendStep.PRIMARY, exc))
        self._settle(pending.temp_id, message)
        return Result.success(message)

    # ---- reactions ----

    async def send_reaction(self, contact_phone: str | None, target_message_id: str, emoji: str) -> Result[Ack]:
        if not contact_phone:
            return Result.failure(PreconditionError("Reactions need the contact's phone number"))
        if not emoji:
            return Result.failure(PreconditionError("No reaction selected"))
        try:
            data = await self._gateway.send_reaction(contact_phone, target_message_id, emoji)
        except AppError as exc:
            return Result.failure(SendError(SendStep.PRIMARY, exc))
        return Result.success(_ack(data))

    async def remove_reaction(self, contact_phone: str | None, target_message_id: str) -> Result[Ack]:
        if not contact_phone:
            return Result.failure(PreconditionError("Reactions need the contact's phone number"))
        try:
            data = await self._gateway.remove_reaction(contact_phone, target_message_id)
        except AppError as exc:
            return Result.failure(SendError(SendStep.PRIMARY, exc))
        return Result.success(_ack(data))

    # ---- quick replies ----

    async def send_quick_reply(self, conversation_id: int, template: QuickReply) -> Result[list[Message]]:
        """Send the template's primary part, then its ``additional_text`` if any.

        Both parts go through the message endpoint, which resolves the
        contact itself. Both are validated before anything goes out. A failed
        primary stops the sequence; a failed secondary leaves the primary in
        place and is reported as a partial send.
        """
        try:
            primary = self._quick_reply_draft(template)
        except PreconditionError as exc:
            return Result.failure(exc)
        secondary = None
        if template.additional_text and template.additional_text.strip():
            secondary = MessageDraft(content=template.additional_text, message_type=MessageType.TEXT)

        logger.info(
            "Sending quick reply %s (%s%s) to conversation %s",
            template.id, template.type, " + text" if secondary else "", conversation_id,
        )
        async with self._sending(conversation_id):
            try:
                first = await self._post(conversation_id, primary)
            except AppError as exc:
                return Result.failure(SendError(SendStep.PRIMARY, exc))
            if secondary is None:
                return Result.success([first])

            try:
                second = await self._post(conversation_id, secondary)
            except AppError as exc:
                logger.warning("Quick reply %s: additional text failed after primary was sent", template.id)
                return Result.failure(SendError(SendStep.SECONDARY, exc, partial=True, delivered=[first]))
        return Result.success([first, second])

    @staticmethod
    def _quick_reply_draft(template: QuickReply) -> MessageDraft:
        if template.type not in _QUICK_REPLY_TYPES:
            raise PreconditionError(f"Quick replies of type {template.type} cannot be sent")
        if template.type is MessageType.TEXT:
            if not (template.content or "").strip():
                raise PreconditionError(f"Quick reply {template.title!r} has no text")
            return MessageDraft(content=template.content or "", message_type=MessageType.TEXT)
        if not template.file_url:
            raise PreconditionError(f"Quick reply {template.title!r} has no file")
        metadata = {"url": template.file_url}
        if template.content:
            metadata["fileName"] = template.content
        return MessageDraft(content=template.file_url, message_type=template.type, metadata=metadata)

    # ---- attachments ----

    async def send_attachment_with_caption(
        self,
        conversation_id: int,
        file: MediaFile,
        kind: TransferKind,
        contact_phone: str | None,
        caption: str | None = None,
        *,
        abort: asyncio.Event | None = None,
    ) -> Result[Message]:
        """Upload ``file``, then compose a message pointing at the stored copy.

        The caption travels in metadata, never in content.
        """
        async with self._sending(conversation_id):
            return await self._send_attachment(conversation_id, file, kind, contact_phone, caption, abort)

    async def _send_attachment(
        self,
        conversation_id: int,
        file: MediaFile,
        kind: TransferKind,
        contact_phone: str | None,
        caption: str | None,
        abort: asyncio.Event | None,
    ) -> Result[Message]:
        message_type = MessageType(kind.value)
        pending = self._store.add_pending(conversation_id, message_type, file.file_name)
        uploaded = await self._transfer.upload(
            file, kind, conversation_id, contact_phone, caption=caption, abort=abort
        )
        if not uploaded.ok:
            assert uploaded.error is not None
            self._store.mark_failed(pending.temp_id, uploaded.error.user_message)
            return Result.failure(SendError(SendStep.UPLOAD, uploaded.error))

        ref = uploaded.unwrap()
        metadata: dict[str, object] = {
            "fileName": file.file_name,
            "mimeType": file.mime_type,
            "fileSize": file.size,
        }
        if ref.url:
            metadata["url"] = ref.url
        if ref.gateway_message_id:
            metadata["messageId"] = ref.gateway_message_id
        if caption:
            metadata["caption"] = caption
        draft = MessageDraft(
            content=ref.url or file.file_name,
            message_type=message_type,
            client_message_id=pending.temp_id,
            metadata=metadata,
        )
        try:
            message = await self._gateway.create_message(conversation_id, draft)
        except AppError as exc:
            self._store.mark_failed(pending.temp_id, exc.user_message)
            return Result.failure(SendError(SendStep.COMPOSE, exc, partial=True))
        self._store.confirm(pending.temp_id, message)
        return Result.success(message)

    async def send_audio(
        self,
        conversation_id: int,
        contact_phone: str | None,
        audio: EncodedAudio,
    ) -> Result[Message | None]:
        """Send a finished recording. ``None`` means the message will arrive by push."""
        pending = self._store.add_pending(conversation_id, MessageType.AUDIO, None)
        async with self._sending(conversation_id):
            uploaded = await self._transfer.upload_audio(
                audio, conversation_id, contact_phone, client_message_id=pending.temp_id
            )
        if not uploaded.ok:
            assert uploaded.error is not None
            self._store.mark_failed(pending.temp_id, uploaded.error.user_message)
            return Result.failure(SendError(SendStep.UPLOAD, uploaded.error))
        message = uploaded.unwrap()
        self._settle(pending.temp_id, message)
        return Result.success(message)

    # ---- deletes ----

    async def hide_message(self, message: Message) -> Result[Message]:
        """Hide a received message for this inbox only; content is kept."""
        try:
            assert_can_hide(message)
            await self._gateway.delete_received(message.id)
        except AppError as exc:
            return Result.failure(exc)
        self._store.hide(message.conversation_id, message.id)
        return Result.success(self._current(message, is_deleted_by_user=True))

    async def delete_message(self, message: Message, contact_phone: str | None) -> Result[Message]:
        """Delete a sent message for everyone, within the delete window."""
        window = timedelta(seconds=self._settings.DELETE_WINDOW_SECONDS)
        try:
            gateway_id = assert_can_delete_for_everyone(message, self._clock.now(), window)
            removed = await self._gateway.delete_sent(
                message.id, gateway_message_id=gateway_id, contact_phone=contact_phone
            )
            if not removed:
                logger.info("Backend kept gateway copy of %s; deleting %s directly", message.id, gateway_id)
                await self._gateway.delete_gateway_message(gateway_id, contact_phone)
        except AppError as exc:
            return Result.failure(exc)
        self._store.mark_deleted(message.conversation_id, message.id)
        return Result.success(self._current(message, is_deleted=True))

    # ---- internals ----

    async def _post(self, conversation_id: int, draft: MessageDraft) -> Message:
        pending = self._store.add_pending(conversation_id, draft.message_type, draft.content)
        try:
            message = await self._gateway.create_message(
                conversation_id, replace(draft, client_message_id=pending.temp_id)
            )
        except AppError as exc:
            logger.warning("Send to conversation %s failed: %s", conversation_id, exc.detail)
            self._store.mark_failed(pending.temp_id, exc.user_message)
            raise
        self._store.confirm(pending.temp_id, message)
        return message

    def _settle(self, temp_id: str, message: Message | None) -> None:
        if message is None:
            self._store.mark_pending(temp_id, PendingState.SENT)
        else:
            self._store.confirm(temp_id, message)

    def _current(self, message: Message, **flags: bool) -> Message:
        return self._store.get_message(message.conversation_id, message.id) or replace(message, **flags)

    @asynccontextmanager
    async def _sending(self, conversation_id: int) -> AsyncIterator[None]:
        """Ends the typing burst once the send settles, whatever the outcome."""
        try:
            yield
        finally:
            if self._typing is not None:
                await self._typing.sent(conversation_id)


def _ack(data: dict[str, object]) -> Ack:
    gateway_id = data.get("messageId") or data.get("zaapId") or data.get("id")
    return Ack(gateway_message_id=str(gateway_id) if gateway_id else None)
