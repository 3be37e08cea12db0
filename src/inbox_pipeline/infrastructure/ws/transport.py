"""Realtime transport: room subscriptions, inbound dispatch and reconnects."""
from __future__ import annotations

import asyncio
import logging
from typing import Any

from pydantic import ValidationError

from inbox_pipeline.application.ports.realtime import ConnectionLost, RealtimeConnection, RealtimeConnector
from inbox_pipeline.config import Settings, settings as default_settings
from inbox_pipeline.domain.events.conversation_updated import ConversationUpdated
from inbox_pipeline.domain.events.ephemeral import PresenceChanged, TypingChanged
from inbox_pipeline.domain.events.message_created import MessageCreated, MessageDeleted, MessageUpdated
from inbox_pipeline.infrastructure.ws.protocol import RealtimeEvent, WsOutbound, decode_event
from inbox_pipeline.services.conversation_store import ConversationStore
from inbox_pipeline.services.history import HistoryLoader

logger = logging.getLogger(__name__)


class RealtimeTransport:
    """Keeps one socket alive and feeds its events into the store.

    Joined rooms survive reconnects: after every reconnect each room is
    re-joined and its recent history re-fetched over REST, since events sent
    during the gap are lost.
    """

    def __init__(
        self,
        connect: RealtimeConnector,
        store: ConversationStore,
        history: HistoryLoader | None = None,
        settings: Settings = default_settings,
    ) -> None:
        self._connect = connect
        self._store = store
        self._history = history
        self._settings = settings
        self._joined: dict[int, None] = {}
        self._conn: RealtimeConnection | None = None
        self._task: asyncio.Task[None] | None = None
        self._ready = asyncio.Event()
        self._sessions = 0

    # ---- lifecycle ----

    async def start(self) -> None:
        self._task = asyncio.create_task(self._run(), name="realtime-transport")
        logger.info("Realtime transport started")

    async def aclose(self) -> None:
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("Realtime transport stopped")

    async def wait_ready(self, timeout: float | None = None) -> None:
        await asyncio.wait_for(self._ready.wait(), timeout)

    @property
    def connected(self) -> bool:
        return self._ready.is_set()

    @property
    def joined(self) -> tuple[int, ...]:
        return tuple(self._joined)

    # ---- rooms ----

    async def join_conversation(self, conversation_id: int) -> None:
        if conversation_id in self._joined:
            return
        self._joined[conversation_id] = None
        await self._emit(WsOutbound(type="join_conversation", conversation_id=conversation_id))

    async def leave_conversation(self, conversation_id: int) -> None:
        if conversation_id not in self._joined:
            return
        del self._joined[conversation_id]
        await self._emit(WsOutbound(type="leave_conversation", conversation_id=conversation_id))

    async def send_typing(self, conversation_id: int, is_typing: bool) -> None:
        await self._emit(WsOutbound(type="typing", conversation_id=conversation_id, is_typing=is_typing))

    # ---- inbound ----

    async def dispatch(self, frame: dict[str, Any]) -> None:
        """Route one inbound frame. Malformed frames are logged and dropped."""
        try:
            event = decode_event(frame)
        except ValidationError:
            logger.warning("Dropping malformed realtime frame: %.200s", frame)
            return
        if event is None:
            logger.debug("Ignoring realtime frame type=%s", frame.get("type"))
            return
        self.apply(event)

    def apply(self, event: RealtimeEvent) -> None:
        match event:
            case MessageCreated(message=message, correlation_id=correlation_id):
                self._store.apply_push(message, correlation_id=correlation_id)
            case MessageUpdated(message=message):
                self._store.apply_push(message)
            case MessageDeleted(conversation_id=cid, message_id=mid, for_everyone=True):
                self._store.mark_deleted(cid, mid)
            case MessageDeleted(conversation_id=cid, message_id=mid):
                self._store.hide(cid, mid)
            case TypingChanged(conversation_id=cid, is_typing=is_typing):
                self._store.set_typing(cid, is_typing)
            case PresenceChanged(user_id=user_id, online=online):
                self._store.set_presence(user_id, online)
            case ConversationUpdated():
                self._store.apply_conversation_update(event)

    # ---- connection loop ----

    async def _emit(self, frame: WsOutbound) -> bool:
        conn = self._conn
        if conn is None or not self._ready.is_set():
            # Joins are replayed on connect; typing frames are best-effort.
            logger.debug("Not connected; %s deferred", frame.type)
            return False
        try:
            await conn.send(frame.to_frame())
        except ConnectionLost as exc:
            logger.warning("Could not send %s: %s", frame.type, exc)
            return False
        return True

    async def _run(self) -> None:
        delay = self._settings.WS_RECONNECT_DELAY_SECONDS
        while True:
            try:
                conn = await self._connect()
            except ConnectionLost as exc:
                logger.warning("Realtime connect failed: %s; retrying in %ss", exc, delay)
                await asyncio.sleep(delay)
                continue

            self._conn = conn
            reconnect = self._sessions > 0
            self._sessions += 1
            try:
                await self._on_connected(conn, reconnect)
                async for frame in conn.frames():
                    await self.dispatch(frame)
            except ConnectionLost as exc:
                logger.warning("Realtime connection lost: %s; reconnecting in %ss", exc, delay)
            except Exception:
                logger.exception("Realtime loop error; reconnecting in %ss", delay)
            finally:
                self._ready.clear()
                self._conn = None
                await conn.close()
            await asyncio.sleep(delay)

    async def _on_connected(self, conn: RealtimeConnection, reconnect: bool) -> None:
        # Rooms joined or left while the replay is in flight are picked up by the next pass.
        subscribed: dict[int, None] = {}
        while True:
            joins = [cid for cid in self._joined if cid not in subscribed]
            leaves = [cid for cid in subscribed if cid not in self._joined]
            if not joins and not leaves:
                break
            for conversation_id in joins:
                await conn.send(WsOutbound(type="join_conversation", conversation_id=conversation_id).to_frame())
                subscribed[conversation_id] = None
            for conversation_id in leaves:
                await conn.send(WsOutbound(type="leave_conversation", conversation_id=conversation_id).to_frame())
                del subscribed[conversation_id]
        self._ready.set()
        if reconnect and self._history is not None:
            for conversation_id in list(self._joined):
                result = await self._history.catch_up(conversation_id)
                if not result.ok:
                    logger.warning("Catch-up failed for conversation %s", conversation_id)
