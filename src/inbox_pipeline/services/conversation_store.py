"""Conversation store: the single writer of canonical message state.

REST history pages and realtime push events are merged into one ordered,
de-duplicated list per conversation. Ordering key is ``sent_at``, then
``delivered_at``, then local receipt time; ties keep first-arrival order.
"""
from __future__ import annotations

import itertools
import logging
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Callable, Iterable

from inbox_pipeline.application.ports.clock import Clock, SystemClock
from inbox_pipeline.domain.entities.conversation import Conversation
from inbox_pipeline.domain.entities.message import Message, merge_messages
from inbox_pipeline.domain.entities.pending import PendingSend
from inbox_pipeline.domain.events.conversation_updated import ConversationUpdated
from inbox_pipeline.domain.value_objects.enums import MessageType, PendingState
from inbox_pipeline.domain.value_objects.ids import new_correlation_id

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ConversationView:
    """Read-only snapshot handed to UI subscribers."""

    conversation_id: int
    conversation: Conversation | None
    messages: tuple[Message, ...]
    pending: tuple[PendingSend, ...]
    typing: bool
    unread_count: int


Listener = Callable[[ConversationView], None]


class _Entry:
    __slots__ = ("message", "seq", "received_at")

    def __init__(self, message: Message, seq: int, received_at: datetime) -> None:
        self.message = message
        self.seq = seq
        self.received_at = received_at

    @property
    def key(self) -> tuple[datetime, int]:
        return (self.message.timestamp or self.received_at, self.seq)


class _ConversationState:
    __slots__ = ("conversation", "entries", "order", "pending", "typing", "unread")

    def __init__(self) -> None:
        self.conversation: Conversation | None = None
        self.entries: dict[str, _Entry] = {}
        self.order: list[str] = []
        self.pending: dict[str, PendingSend] = {}
        self.typing = False
        self.unread = 0


class ConversationStore:
    def __init__(self, clock: Clock | None = None) -> None:
        self._clock = clock or SystemClock()
        self._states: dict[int, _ConversationState] = {}
        self._pending_owner: dict[str, int] = {}
        self._presence: dict[int, bool] = {}
        self._listeners: dict[int, list[Listener]] = {}
        self._seq = itertools.count()
        self._active: int | None = None

    # ---- conversations ----

    def upsert_conversation(self, conversation: Conversation) -> None:
        state = self._state(conversation.id)
        state.conversation = conversation
        state.unread = conversation.unread_count
        self._notify(conversation.id)

    def apply_conversation_update(self, event: ConversationUpdated) -> None:
        state = self._state(event.conversation_id)
        if state.conversation is None:
            state.conversation = Conversation(id=event.conversation_id)
        changes = {
            name: value
            for name, value in (
                ("status", event.status),
                ("assigned_team_id", event.assigned_team_id),
                ("assigned_user_id", event.assigned_user_id),
            )
            if value is not None
        }
        state.conversation = replace(state.conversation, **changes)
        self._notify(event.conversation_id)

    def get_conversation(self, conversation_id: int) -> Conversation | None:
        state = self._states.get(conversation_id)
        if state is None or state.conversation is None:
            return None
        return replace(state.conversation, unread_count=state.unread)

    def set_active(self, conversation_id: int | None) -> None:
        self._active = conversation_id

    @property
    def active_conversation_id(self) -> int | None:
        return self._active

    # ---- merge entry points ----

    def load_page(self, conversation_id: int, messages: Iterable[Message]) -> int:
        """Upsert one REST history page. Returns how many entries changed."""
        state = self._state(conversation_id)
        changed = sum(1 for m in messages if self._upsert(state, m) is not None)
        if changed:
            self._notify(conversation_id)
        return changed

    def apply_push(self, message: Message, correlation_id: str | None = None) -> bool:
        """Merge a realtime event (or confirmed send); resolve its pending entry."""
        state = self._state(message.conversation_id)
        outcome = self._upsert(state, message)
        resolved = self._resolve_pending(correlation_id or message.client_message_id)
        if outcome == "created" and message.is_from_contact and message.conversation_id != self._active:
            state.unread += 1
        if outcome is not None or resolved:
            self._notify(message.conversation_id)
        return outcome is not None

    def confirm(self, temp_id: str, message: Message) -> None:
        self.apply_push(message, correlation_id=temp_id)

    # ---- pending sends ----

    def add_pending(
        self,
        conversation_id: int,
        message_type: MessageType,
        content: str | None,
        *,
        state: PendingState = PendingState.UPLOADING,
    ) -> PendingSend:
        pending = PendingSend(
            temp_id=new_correlation_id(),
            conversation_id=conversation_id,
            message_type=message_type,
            content=content,
            state=state,
            created_at=self._clock.now(),
        )
        self._state(conversation_id).pending[pending.temp_id] = pending
        self._pending_owner[pending.temp_id] = conversation_id
        self._notify(conversation_id)
        return pending

    def mark_pending(self, temp_id: str, state: PendingState, error: str | None = None) -> None:
        conversation_id = self._pending_owner.get(temp_id)
        if conversation_id is None:
            return
        pending = self._states[conversation_id].pending[temp_id]
        self._states[conversation_id].pending[temp_id] = replace(pending, state=state, error=error)
        self._notify(conversation_id)

    def mark_failed(self, temp_id: str, error: str) -> None:
        self.mark_pending(temp_id, PendingState.FAILED, error)

    def discard_pending(self, temp_id: str) -> None:
        """Drop a failed entry the user gave up on."""
        conversation_id = self._pending_owner.get(temp_id)
        if not self._resolve_pending(temp_id):
            logger.debug("No pending send %s to discard", temp_id)
            return
        self._notify(conversation_id)  # type: ignore[arg-type]

    # ---- read / delete state ----

    def mark_as_read(self, conversation_id: int) -> bool:
        state = self._states.get(conversation_id)
        if state is None or state.unread == 0:
            return False
        state.unread = 0
        self._notify(conversation_id)
        return True

    def hide(self, conversation_id: int, message_id: str) -> bool:
        return self._flag(conversation_id, message_id, is_deleted_by_user=True)

    def mark_deleted(self, conversation_id: int, message_id: str) -> bool:
        return self._flag(conversation_id, message_id, is_deleted=True)

    # ---- ephemeral state ----

    def set_typing(self, conversation_id: int, is_typing: bool) -> None:
        state = self._state(conversation_id)
        if state.typing != is_typing:
            state.typing = is_typing
            self._notify(conversation_id)

    def set_presence(self, user_id: int, online: bool) -> None:
        self._presence[user_id] = online

    def is_online(self, user_id: int) -> bool:
        return self._presence.get(user_id, False)

    # ---- reads ----

    def messages(self, conversation_id: int) -> tuple[Message, ...]:
        state = self._states.get(conversation_id)
        if state is None:
            return ()
        return tuple(state.entries[mid].message for mid in state.order)

    def get_message(self, conversation_id: int, message_id: str) -> Message | None:
        state = self._states.get(conversation_id)
        entry = state.entries.get(message_id) if state else None
        return entry.message if entry else None

    def pending(self, conversation_id: int) -> tuple[PendingSend, ...]:
        state = self._states.get(conversation_id)
        return tuple(state.pending.values()) if state else ()

    def message_count(self, conversation_id: int) -> int:
        state = self._states.get(conversation_id)
        return len(state.entries) if state else 0

    def snapshot(self, conversation_id: int) -> ConversationView:
        state = self._states.get(conversation_id) or _ConversationState()
        return ConversationView(
            conversation_id=conversation_id,
            conversation=state.conversation,
            messages=tuple(state.entries[mid].message for mid in state.order),
            pending=tuple(state.pending.values()),
            typing=state.typing,
            unread_count=state.unread,
        )

    def subscribe(self, conversation_id: int, listener: Listener) -> Callable[[], None]:
        listeners = self._listeners.setdefault(conversation_id, [])
        listeners.append(listener)

        def unsubscribe() -> None:
            if listener in listeners:
                listeners.remove(listener)

        return unsubscribe

    # ---- internals ----

    def _state(self, conversation_id: int) -> _ConversationState:
        state = self._states.get(conversation_id)
        if state is None:
            state = self._states[conversation_id] = _ConversationState()
        return state

    def _upsert(self, state: _ConversationState, message: Message) -> str | None:
        """Insert or merge by id. Returns "created", "updated" or None (no-op)."""
        entry = state.entries.get(message.id)
        if entry is None:
            entry = _Entry(message.normalized(), next(self._seq), self._clock.now())
            state.entries[message.id] = entry
            state.order.append(message.id)
            if len(state.order) > 1 and state.entries[state.order[-2]].key > entry.key:
                self._sort(state)
            return "created"

        merged = merge_messages(entry.message, message)
        if merged == entry.message:
            return None
        old_key = entry.key
        entry.message = merged
        if entry.key != old_key and not self._in_place(state, message.id):
            self._sort(state)
        return "updated"

    def _in_place(self, state: _ConversationState, message_id: str) -> bool:
        index = state.order.index(message_id)
        key = state.entries[message_id].key
        if index > 0 and state.entries[state.order[index - 1]].key > key:
            return False
        if index < len(state.order) - 1 and state.entries[state.order[index + 1]].key < key:
            return False
        return True

    @staticmethod
    def _sort(state: _ConversationState) -> None:
        state.order.sort(key=lambda mid: state.entries[mid].key)

    def _resolve_pending(self, correlation_id: str | None) -> bool:
        if not correlation_id:
            return False
        conversation_id = self._pending_owner.pop(correlation_id, None)
        if conversation_id is None:
            return False
        self._states[conversation_id].pending.pop(correlation_id, None)
        return True

    def _flag(self, conversation_id: int, message_id: str, **flags: bool) -> bool:
        state = self._states.get(conversation_id)
        entry = state.entries.get(message_id) if state else None
        if entry is None:
            logger.debug("Flag %s on unknown message %s/%s", flags, conversation_id, message_id)
            return False
        updated = replace(entry.message, **flags)
        if updated == entry.message:
            return False
        entry.message = updated
        self._notify(conversation_id)
        return True

    def _notify(self, conversation_id: int) -> None:
        listeners = self._listeners.get(conversation_id)
        if not listeners:
            return
        view = self.snapshot(conversation_id)
        for listener in list(listeners):
            try:
                listener(view)
            except Exception:
                logger.exception("Conversation listener failed for %s", conversation_id)
