from __future__ import annotations

from dataclasses import dataclass

from inbox_pipeline.domain.entities.message import Message


@dataclass(frozen=True, slots=True)
class MessageCreated:
    message: Message
    correlation_id: str | None = None


@dataclass(frozen=True, slots=True)
class MessageUpdated:
    message: Message


@dataclass(frozen=True, slots=True)
class MessageDeleted:
    conversation_id: int
    message_id: str
    for_everyone: bool = True
