from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator

import aiohttp

from inbox_pipeline.application.dto.author import Author
from inbox_pipeline.application.dto.result import Result
from inbox_pipeline.application.exceptions import AppError
from inbox_pipeline.application.ports.gateway import GatewayApi
from inbox_pipeline.application.ports.realtime import RealtimeConnector
from inbox_pipeline.config import Settings, settings as default_settings
from inbox_pipeline.domain.entities.conversation import Conversation
from inbox_pipeline.infrastructure.http.gateway_client import AiohttpGateway
from inbox_pipeline.infrastructure.ws.connection import AiohttpConnector
from inbox_pipeline.infrastructure.ws.transport import RealtimeTransport
from inbox_pipeline.services.composer import MessageComposer
from inbox_pipeline.services.conversation_store import ConversationStore
from inbox_pipeline.services.history import HistoryLoader
from inbox_pipeline.services.media_transfer import MediaTransferAdapter
from inbox_pipeline.services.quick_replies import QuickReplyPicker
from inbox_pipeline.services.typing_indicator import TypingIndicator

logger = logging.getLogger(__name__)


@dataclass
class Pipeline:
    """One agent session: a store plus every service that feeds it."""

    settings: Settings
    gateway: GatewayApi
    store: ConversationStore
    transfer: MediaTransferAdapter
    history: HistoryLoader
    transport: RealtimeTransport
    typing: TypingIndicator
    composer: MessageComposer
    quick_replies: QuickReplyPicker

    async def open_conversation(self, conversation_id: int) -> Result[Conversation]:
        """Make a conversation active: fetch it, join its room and load the latest page."""
        try:
            conversation = await self.gateway.get_conversation(conversation_id)
        except AppError as exc:
            logger.warning("Could not open conversation %s: %s", conversation_id, exc.detail)
            return Result.failure(exc)

        previous = self.store.active_conversation_id
        if previous is not None and previous != conversation_id:
            await self.transport.leave_conversation(previous)
        await self.typing.switch_conversation(conversation_id)
        self.store.upsert_conversation(conversation)
        self.store.set_active(conversation_id)
        await self.transport.join_conversation(conversation_id)

        loaded = await self.history.load_latest(conversation_id)
        if not loaded.ok:
            return Result.failure(loaded.error)  # type: ignore[arg-type]
        return Result.success(conversation)

    async def mark_as_read(self, conversation_id: int) -> Result[bool]:
        """Clear the unread counter once the backend accepts it; no call when nothing is unread."""
        if self.store.snapshot(conversation_id).unread_count == 0:
            return Result.success(False)
        try:
            await self.gateway.mark_read(conversation_id)
        except AppError as exc:
            logger.warning("mark-read for conversation %s failed: %s", conversation_id, exc.detail)
            return Result.failure(exc)
        self.store.mark_as_read(conversation_id)
        return Result.success(True)


def build_pipeline(
    gateway: GatewayApi,
    connect: RealtimeConnector,
    settings: Settings = default_settings,
    *,
    author: Author | None = None,
) -> Pipeline:
    store = ConversationStore()
    transfer = MediaTransferAdapter(gateway, settings)
    history = HistoryLoader(gateway, store, settings)
    transport = RealtimeTransport(connect, store, history, settings)
    typing = TypingIndicator(transport.send_typing, settings.TYPING_IDLE_SECONDS)
    composer = MessageComposer(gateway, store, transfer, settings, author=author, typing=typing)
    return Pipeline(
        settings=settings,
        gateway=gateway,
        store=store,
        transfer=transfer,
        history=history,
        transport=transport,
        typing=typing,
        composer=composer,
        quick_replies=QuickReplyPicker(trigger=settings.QUICK_REPLY_TRIGGER),
    )


@asynccontextmanager
async def create_pipeline(
    settings: Settings = default_settings,
    *,
    author: Author | None = None,
) -> AsyncIterator[Pipeline]:
    """Startup / shutdown lifecycle around one shared HTTP session."""
    async with aiohttp.ClientSession() as session:
        pipeline = build_pipeline(
            AiohttpGateway(session, settings),
            AiohttpConnector(session, settings),
            settings,
            author=author,
        )
        await pipeline.transport.start()
        try:
            yield pipeline
        finally:
            await pipeline.typing.aclose()
            await pipeline.transport.aclose()
            logger.info("Pipeline closed")
