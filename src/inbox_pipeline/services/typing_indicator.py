"""Outbound typing indicator with an idle debounce."""
from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable

logger = logging.getLogger(__name__)

TypingEmitter = Callable[[int, bool], Awaitable[None]]


class TypingIndicator:
    """Emits one start per typing burst and one stop when it ends.

    A burst ends after ``idle_seconds`` without keystrokes, when the message
    is sent, when the text is cleared, or when the agent switches
    conversation.
    """

    def __init__(self, emit: TypingEmitter, idle_seconds: float = 1.0) -> None:
        self._emit = emit
        self._idle = idle_seconds
        self._conversation_id: int | None = None
        self._typing = False
        self._timer: asyncio.Task[None] | None = None

    @property
    def is_typing(self) -> bool:
        return self._typing

    async def keystroke(self, conversation_id: int, text: str) -> None:
        if conversation_id != self._conversation_id:
            await self.switch_conversation(conversation_id)
        if not text.strip():
            await self._stop()
            return
        if not self._typing:
            self._typing = True
            await self._send(conversation_id, True)
        self._restart_timer()

    async def sent(self, conversation_id: int) -> None:
        if conversation_id == self._conversation_id:
            await self._stop()

    async def switch_conversation(self, conversation_id: int | None) -> None:
        await self._stop()
        self._conversation_id = conversation_id

    async def aclose(self) -> None:
        await self._stop()
        self._conversation_id = None

    def _restart_timer(self) -> None:
        self._cancel_timer()
        self._timer = asyncio.create_task(self._expire())

    def _cancel_timer(self) -> None:
        if self._timer is not None and self._timer is not asyncio.current_task():
            self._timer.cancel()
        self._timer = None

    async def _expire(self) -> None:
        await asyncio.sleep(self._idle)
        self._timer = None
        await self._stop()

    async def _stop(self) -> None:
        self._cancel_timer()
        if not self._typing:
            return
        self._typing = False
        if self._conversation_id is not None:
            await self._send(self._conversation_id, False)

    async def _send(self, conversation_id: int, is_typing: bool) -> None:
        try:
            await self._emit(conversation_id, is_typing)
        except Exception:
            logger.exception("Typing %s for conversation %s failed", "start" if is_typing else "stop", conversation_id)
