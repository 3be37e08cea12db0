"""Shared test fixtures."""
from __future__ import annotations

import asyncio
import itertools
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Callable

import pytest

from inbox_pipeline.application.dto.draft import MessageDraft
from inbox_pipeline.application.dto.transfer import MediaFile, RemoteRef
from inbox_pipeline.application.exceptions import AppError, MediaPermissionError, NotFoundError
from inbox_pipeline.application.ports.media import AudioConstraints
from inbox_pipeline.application.ports.realtime import ConnectionLost
from inbox_pipeline.config import Settings
from inbox_pipeline.domain.entities.audio import EncodedAudio
from inbox_pipeline.domain.entities.conversation import Conversation
from inbox_pipeline.domain.entities.message import Message
from inbox_pipeline.domain.entities.metadata import GenericMetadata, MessageMetadata
from inbox_pipeline.domain.entities.quick_reply import QuickReply
from inbox_pipeline.domain.value_objects.enums import ConversationStatus, MessageType, TransferKind

NOW = datetime(2025, 3, 14, 12, 0, tzinfo=timezone.utc)

_ids = itertools.count(1)


@pytest.fixture
def test_settings() -> Settings:
    return Settings(
        API_BASE_URL="http://backend.test/api",
        WS_URL="ws://backend.test/ws",
        RECORDING_TICK_SECONDS=3600,
        WS_RECONNECT_DELAY_SECONDS=0.01,
    )


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock()


def make_conversation(
    *,
    conversation_id: int = 42,
    contact_phone: str | None = "5511999990000",
    status: ConversationStatus = ConversationStatus.OPEN,
    unread_count: int = 0,
) -> Conversation:
    return Conversation(
        id=conversation_id,
        contact_id=7,
        contact_phone=contact_phone,
        channel="whatsapp",
        channel_id=1,
        status=status,
        unread_count=unread_count,
    )


def make_message(
    *,
    message_id: str | None = None,
    conversation_id: int = 42,
    is_from_contact: bool = True,
    message_type: MessageType = MessageType.TEXT,
    content: str | None = "hello",
    metadata: MessageMetadata | None = None,
    sent_at: datetime | None = NOW,
    delivered_at: datetime | None = None,
    read_at: datetime | None = None,
    **extra: Any,
) -> Message:
    return Message(
        id=message_id or f"m{next(_ids)}",
        conversation_id=conversation_id,
        is_from_contact=is_from_contact,
        message_type=message_type,
        content=content,
        metadata=metadata or GenericMetadata(),
        sent_at=sent_at,
        delivered_at=delivered_at,
        read_at=read_at,
        **extra,
    )


def make_audio(seconds: int = 3) -> EncodedAudio:
    return EncodedAudio(data=b"OggS" + b"\x00" * 60, mime_type="audio/ogg;codecs=opus", duration=seconds)


def make_file(name: str = "photo.png", mime_type: str = "image/png", size: int = 1024) -> MediaFile:
    return MediaFile(file_name=name, data=b"\x89" * size, mime_type=mime_type)


@dataclass
class FixedClock:
    current: datetime = NOW

    def now(self) -> datetime:
        return self.current

    def advance(self, **kwargs: float) -> None:
        self.current += timedelta(**kwargs)


@dataclass
class FakeGateway:
    """In-memory ``GatewayApi``.

    Queue an ``AppError`` in ``fail`` under a method name to make its next
    call raise it.
    """

    conversations: dict[int, Conversation] = field(default_factory=dict)
    history: dict[int, list[Message]] = field(default_factory=dict)
    quick_replies: list[QuickReply] = field(default_factory=list)
    audio_urls: dict[str, str] = field(default_factory=dict)
    media_content: dict[str, str] = field(default_factory=dict)
    fail: dict[str, list[AppError]] = field(default_factory=dict)
    calls: list[tuple[str, Any]] = field(default_factory=list)
    created: list[tuple[int, MessageDraft]] = field(default_factory=list)
    push_only: bool = False
    gateway_deleted: bool = True
    _seq: itertools.count = field(default_factory=lambda: itertools.count(1000))

    def _record(self, name: str, args: Any) -> None:
        self.calls.append((name, args))
        queued = self.fail.get(name)
        if queued:
            raise queued.pop(0)

    def count(self, name: str) -> int:
        return sum(1 for call, _ in self.calls if call == name)

    def _stored(self, conversation_id: int, message_type: MessageType, content: str | None, **extra: Any) -> Message:
        return Message(
            id=str(next(self._seq)),
            conversation_id=conversation_id,
            is_from_contact=False,
            message_type=message_type,
            content=content,
            sent_at=NOW,
            **extra,
        )

    async def list_messages(self, conversation_id: int, *, limit: int, offset: int = 0) -> list[Message]:
        self._record("list_messages", (conversation_id, limit, offset))
        newest_first = sorted(self.history.get(conversation_id, []), key=lambda m: m.sent_at or NOW, reverse=True)
        return newest_first[offset: offset + limit]

    async def get_conversation(self, conversation_id: int) -> Conversation:
        self._record("get_conversation", conversation_id)
        if conversation_id not in self.conversations:
            raise NotFoundError(f"Conversation {conversation_id} not found")
        return self.conversations[conversation_id]

    async def create_message(self, conversation_id: int, draft: MessageDraft) -> Message:
        self._record("create_message", (conversation_id, draft))
        self.created.append((conversation_id, draft))
        return self._stored(
            conversation_id,
            draft.message_type,
            draft.content,
            is_internal_note=draft.is_internal_note,
            author_name=draft.author_name,
            author_id=draft.author_id,
            client_message_id=draft.client_message_id,
        )

    async def send_media(
        self,
        kind: TransferKind,
        conversation_id: int,
        contact_phone: str,
        file: MediaFile,
        *,
        caption: str | None = None,
    ) -> RemoteRef:
        self._record("send_media", (kind, conversation_id, contact_phone, file.file_name, caption))
        return RemoteRef(kind=kind, url=f"https://cdn.test/{file.file_name}", gateway_message_id="gw-up-1")

    async def send_audio(
        self,
        conversation_id: int,
        contact_phone: str,
        audio: EncodedAudio,
        *,
        client_message_id: str | None = None,
    ) -> Message | None:
        self._record("send_audio", (conversation_id, contact_phone, audio.duration, client_message_id))
        if self.push_only:
            return None
        return self._stored(conversation_id, MessageType.AUDIO, "https://cdn.test/a.ogg", client_message_id=client_message_id)

    async def send_link(
        self,
        conversation_id: int,
        contact_phone: str,
        url: str,
        text: str,
        *,
        client_message_id: str | None = None,
    ) -> Message | None:
        self._record("send_link", (conversation_id, contact_phone, url, text, client_message_id))
        if self.push_only:
            return None
        return self._stored(conversation_id, MessageType.TEXT, f"{text} {url}", client_message_id=client_message_id)

    async def send_reaction(self, contact_phone: str, target_message_id: str, emoji: str) -> dict[str, Any]:
        self._record("send_reaction", (contact_phone, target_message_id, emoji))
        return {"success": True, "messageId": "gw-react-1"}

    async def remove_reaction(self, contact_phone: str, target_message_id: str) -> dict[str, Any]:
        self._record("remove_reaction", (contact_phone, target_message_id))
        return {"success": True}

    async def delete_received(self, message_id: str) -> None:
        self._record("delete_received", message_id)

    async def delete_sent(self, message_id: str, *, gateway_message_id: str, contact_phone: str | None) -> bool:
        self._record("delete_sent", (message_id, gateway_message_id, contact_phone))
        return self.gateway_deleted

    async def delete_gateway_message(self, gateway_message_id: str, contact_phone: str | None) -> None:
        self._record("delete_gateway_message", (gateway_message_id, contact_phone))

    async def fetch_audio_url(self, message_id: str) -> str:
        self._record("fetch_audio_url", message_id)
        if message_id not in self.audio_urls:
            raise NotFoundError(f"No audio for message {message_id}")
        return self.audio_urls[message_id]

    async def fetch_media_content(self, message_id: str) -> str:
        self._record("fetch_media_content", message_id)
        if message_id not in self.media_content:
            raise NotFoundError(f"No media content for message {message_id}")
        return self.media_content[message_id]

    async def mark_read(self, conversation_id: int) -> None:
        self._record("mark_read", conversation_id)

    async def list_quick_replies(self) -> list[QuickReply]:
        self._record("list_quick_replies", None)
        return list(self.quick_replies)


# ---- media devices ----


@dataclass
class FakeStream:
    stops: int = 0

    def stop(self) -> None:
        self.stops += 1


@dataclass
class FakeRecorder:
    mime_type: str
    chunks: list[bytes] = field(default_factory=lambda: [b"chunk-1", b"chunk-2"])
    on_chunk: Callable[[bytes], None] | None = None
    started: bool = False
    stopped: bool = False
    aborted: bool = False
    release: asyncio.Event | None = None

    def start(self, on_chunk: Callable[[bytes], None]) -> None:
        self.started = True
        self.on_chunk = on_chunk

    async def stop(self) -> None:
        self.stopped = True
        if self.release is not None:
            await self.release.wait()
        assert self.on_chunk is not None
        for chunk in self.chunks:
            self.on_chunk(chunk)

    def abort(self) -> None:
        self.aborted = True


@dataclass
class FakeMediaDevices:
    supported: tuple[str, ...] = ("audio/ogg;codecs=opus", "audio/mp4")
    error: MediaPermissionError | None = None
    streams: list[FakeStream] = field(default_factory=list)
    recorders: list[FakeRecorder] = field(default_factory=list)
    constraints: list[AudioConstraints] = field(default_factory=list)
    suspend: bool = False

    async def get_user_media(self, constraints: AudioConstraints) -> FakeStream:
        self.constraints.append(constraints)
        if self.error is not None:
            raise self.error
        if self.suspend:
            await asyncio.sleep(0)
        stream = FakeStream()
        self.streams.append(stream)
        return stream

    def is_type_supported(self, mime_type: str) -> bool:
        return mime_type in self.supported

    def create_recorder(self, stream: FakeStream, mime_type: str) -> FakeRecorder:
        recorder = FakeRecorder(mime_type)
        self.recorders.append(recorder)
        return recorder

    @property
    def stream_stops(self) -> int:
        return sum(s.stops for s in self.streams)


@dataclass
class FakePreviewHandle:
    data: bytes
    playing: bool = False
    released: bool = False

    def play(self) -> None:
        self.playing = True

    def pause(self) -> None:
        self.playing = False

    def release(self) -> None:
        self.released = True


@dataclass
class FakePreviewPlayer:
    handles: list[FakePreviewHandle] = field(default_factory=list)

    def load(self, data: bytes, mime_type: str) -> FakePreviewHandle:
        handle = FakePreviewHandle(data)
        self.handles.append(handle)
        return handle


# ---- realtime ----


@dataclass
class FakeConnection:
    """Scripted socket: yields queued frames, then drops (or waits for close)."""

    inbound: list[dict[str, Any]] = field(default_factory=list)
    sent: list[dict[str, Any]] = field(default_factory=list)
    hold_open: bool = True
    closed: bool = False
    suspend_send: bool = False

    def __post_init__(self) -> None:
        self._queue: asyncio.Queue[dict[str, Any] | None] = asyncio.Queue()
        for frame in self.inbound:
            self._queue.put_nowait(frame)
        if not self.hold_open:
            self._queue.put_nowait(None)

    def push(self, frame: dict[str, Any]) -> None:
        self._queue.put_nowait(frame)

    def drop(self) -> None:
        self._queue.put_nowait(None)

    async def send(self, frame: dict[str, Any]) -> None:
        if self.suspend_send:
            await asyncio.sleep(0)
        if self.closed:
            raise ConnectionLost("closed")
        self.sent.append(frame)

    async def frames(self):
        while True:
            frame = await self._queue.get()
            if frame is None:
                self.closed = True
                raise ConnectionLost("dropped")
            yield frame

    async def close(self) -> None:
        self.closed = True


@dataclass
class FakeConnector:
    connections: list[FakeConnection] = field(default_factory=list)
    opened: list[FakeConnection] = field(default_factory=list)
    attempts: int = 0
    failures: int = 0

    async def __call__(self) -> FakeConnection:
        self.attempts += 1
        if self.failures:
            self.failures -= 1
            raise ConnectionLost("refused")
        if not self.connections:
            conn = FakeConnection()
        else:
            conn = self.connections.pop(0)
        self.opened.append(conn)
        return conn
