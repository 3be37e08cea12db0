"""Quick-reply command parsing and the picker state behind the input box."""
from __future__ import annotations

import logging
from dataclasses import dataclass

from inbox_pipeline.application.dto.result import Result
from inbox_pipeline.application.exceptions import AppError
from inbox_pipeline.application.ports.gateway import GatewayApi
from inbox_pipeline.domain.entities.quick_reply import QuickReply

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class TriggerMatch:
    start: int  # index of the trigger character
    query: str


def find_trigger(text: str, trigger: str = "/") -> TriggerMatch | None:
    """Locate an open ``/query`` command: the text after the last trigger, with no space in it."""
    start = text.rfind(trigger)
    if start < 0:
        return None
    query = text[start + len(trigger):]
    if any(ch.isspace() for ch in query):
        return None
    return TriggerMatch(start, query)


def filter_replies(replies: list[QuickReply], query: str) -> list[QuickReply]:
    needle = query.casefold()
    if not needle:
        return list(replies)
    return [
        reply
        for reply in replies
        if any(needle in (field or "").casefold() for field in (reply.title, reply.content, reply.category))
    ]


class QuickReplyPicker:
    def __init__(self, replies: list[QuickReply] | None = None, trigger: str = "/") -> None:
        self._replies = list(replies or [])
        self._trigger = trigger
        self._match: TriggerMatch | None = None
        self._visible: list[QuickReply] = []
        self._index = 0

    async def refresh(self, gateway: GatewayApi) -> Result[int]:
        try:
            self._replies = await gateway.list_quick_replies()
        except AppError as exc:
            logger.warning("Could not load quick replies: %s", exc.detail)
            return Result.failure(exc)
        return Result.success(len(self._replies))

    @property
    def is_open(self) -> bool:
        return self._match is not None

    @property
    def visible(self) -> tuple[QuickReply, ...]:
        return tuple(self._visible)

    @property
    def selected(self) -> QuickReply | None:
        if not self._visible:
            return None
        return self._visible[self._index]

    def update(self, text: str) -> None:
        """Re-evaluate the picker for the current input text."""
        self._match = find_trigger(text, self._trigger)
        self._visible = filter_replies(self._replies, self._match.query) if self._match else []
        self._index = 0

    def move_down(self) -> None:
        if self._visible:
            self._index = (self._index + 1) % len(self._visible)

    def move_up(self) -> None:
        if self._visible:
            self._index = (self._index - 1) % len(self._visible)

    def close(self) -> None:
        self._match = None
        self._visible = []
        self._index = 0

    def apply(self, text: str, reply: QuickReply | None = None) -> str:
        """Replace the open command with a text reply's content.

        Media replies leave the text alone minus the command; the caller
        sends them through ``MessageComposer.send_quick_reply``.
        """
        reply = reply or self.selected
        match = find_trigger(text, self._trigger)
        self.close()
        if reply is None or match is None:
            return text
        head = text[: match.start]
        if reply.is_media:
            return head
        return head + (reply.content or "")
