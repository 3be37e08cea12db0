"""REST history paging into the conversation store.

The backend pages newest-first with ``limit``/``offset``; the store orders by
its own key, so page order does not matter.
"""
from __future__ import annotations

import logging

from inbox_pipeline.application.dto.result import Result
from inbox_pipeline.application.exceptions import AppError
from inbox_pipeline.application.ports.gateway import GatewayApi
from inbox_pipeline.config import Settings, settings as default_settings
from inbox_pipeline.services.conversation_store import ConversationStore

logger = logging.getLogger(__name__)


class HistoryLoader:
    def __init__(
        self,
        gateway: GatewayApi,
        store: ConversationStore,
        settings: Settings = default_settings,
    ) -> None:
        self._gateway = gateway
        self._store = store
        self._settings = settings

    async def load_latest(self, conversation_id: int) -> Result[bool]:
        """Fetch the newest page. Value: whether older pages may exist."""
        return await self._load(conversation_id, self._settings.HISTORY_PAGE_SIZE, 0)

    async def load_older(self, conversation_id: int) -> Result[bool]:
        offset = self._store.message_count(conversation_id)
        return await self._load(conversation_id, self._settings.HISTORY_PAGE_SIZE, offset)

    async def catch_up(self, conversation_id: int) -> Result[bool]:
        """Re-fetch recent history after a realtime gap."""
        return await self._load(conversation_id, self._settings.CATCH_UP_PAGE_SIZE, 0)

    async def _load(self, conversation_id: int, limit: int, offset: int) -> Result[bool]:
        try:
            page = await self._gateway.list_messages(conversation_id, limit=limit, offset=offset)
        except AppError as exc:
            logger.warning("History fetch failed for conversation %s: %s", conversation_id, exc.detail)
            return Result.failure(exc)
        changed = self._store.load_page(conversation_id, page)
        logger.debug(
            "Loaded %d messages (%d changed) for conversation %s at offset %d",
            len(page), changed, conversation_id, offset,
        )
        return Result.success(len(page) >= limit)
