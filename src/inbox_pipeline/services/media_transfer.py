"""Media Transfer Adapter: attachment uploads and on-demand media fetches."""
from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, TypeVar

from inbox_pipeline.application.dto.result import Result
from inbox_pipeline.application.dto.transfer import MediaFile, PlayableRef, RemoteRef
from inbox_pipeline.application.exceptions import (
    AppError,
    PreconditionError,
    TransferError,
    TransferErrorKind,
)
from inbox_pipeline.application.ports.gateway import GatewayApi
from inbox_pipeline.config import Settings, settings as default_settings
from inbox_pipeline.domain.entities.audio import EncodedAudio
from inbox_pipeline.domain.entities.message import Message
from inbox_pipeline.domain.value_objects.enums import TransferKind

logger = logging.getLogger(__name__)

T = TypeVar("T")

DOCUMENT_MIME_TYPES = frozenset(
    {
        "application/pdf",
        "application/msword",
        "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
        "application/vnd.ms-excel",
        "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        "application/vnd.ms-powerpoint",
        "application/vnd.openxmlformats-officedocument.presentationml.presentation",
        "application/zip",
        "application/x-rar-compressed",
        "text/plain",
        "text/csv",
    }
)


class MediaTransferAdapter:
    """Uploads validate locally first; fetches are cached per session.

    Both successful and failed fetches are remembered until ``forget`` is
    called, and concurrent fetches for the same message share one request.
    """

    def __init__(self, gateway: GatewayApi, settings: Settings = default_settings) -> None:
        self._gateway = gateway
        self._settings = settings
        self._audio: dict[str, PlayableRef] = {}
        self._media: dict[str, PlayableRef] = {}
        self._failed: dict[str, AppError] = {}
        self._inflight: dict[str, asyncio.Task[PlayableRef]] = {}

    # ---- uploads ----

    async def upload(
        self,
        file: MediaFile,
        kind: TransferKind,
        conversation_id: int,
        contact_phone: str | None,
        *,
        caption: str | None = None,
        abort: asyncio.Event | None = None,
    ) -> Result[RemoteRef]:
        try:
            self._validate(file, kind, contact_phone)
        except PreconditionError as exc:
            logger.info("Rejected %s upload %r: %s", kind, file.file_name, exc.detail)
            return Result.failure(exc)

        logger.info("Uploading %s %r (%d bytes) to conversation %s", kind, file.file_name, file.size, conversation_id)
        try:
            ref = await _abortable(
                self._gateway.send_media(kind, conversation_id, contact_phone, file, caption=caption),  # type: ignore[arg-type]
                abort,
            )
        except AppError as exc:
            logger.warning("Upload of %r failed: %s", file.file_name, exc.detail)
            return Result.failure(exc)
        return Result.success(ref)

    async def upload_audio(
        self,
        audio: EncodedAudio,
        conversation_id: int,
        contact_phone: str | None,
        *,
        client_message_id: str | None = None,
        abort: asyncio.Event | None = None,
    ) -> Result[Message | None]:
        if not contact_phone:
            return Result.failure(PreconditionError("Contact has no phone number"))
        if audio.size == 0:
            return Result.failure(PreconditionError("Recording is empty"))
        try:
            message = await _abortable(
                self._gateway.send_audio(
                    conversation_id, contact_phone, audio, client_message_id=client_message_id
                ),
                abort,
            )
        except AppError as exc:
            logger.warning("Audio upload to conversation %s failed: %s", conversation_id, exc.detail)
            return Result.failure(exc)
        return Result.success(message)

    def _validate(self, file: MediaFile, kind: TransferKind, contact_phone: str | None) -> None:
        if not contact_phone:
            raise PreconditionError("Contact has no phone number")
        if file.size == 0:
            raise PreconditionError(f"{file.file_name} is empty")

        mime = file.mime_type.split(";")[0].strip().lower()
        if kind is TransferKind.IMAGE:
            accepted, limit = mime.startswith("image/"), self._settings.MAX_IMAGE_BYTES
        elif kind is TransferKind.VIDEO:
            accepted, limit = mime.startswith("video/"), self._settings.MAX_VIDEO_BYTES
        else:
            accepted, limit = mime in DOCUMENT_MIME_TYPES, self._settings.MAX_DOCUMENT_BYTES
        if not accepted:
            raise PreconditionError(f"{file.mime_type} is not a valid {kind} type")
        if file.size > limit:
            raise PreconditionError(f"{file.file_name} exceeds the {limit // (1024 * 1024)} MB {kind} limit")

    # ---- fetches ----

    async def fetch_audio_by_message_id(self, message_id: str) -> Result[PlayableRef]:
        return await self._cached(f"audio:{message_id}", self._audio, message_id, self._fetch_audio)

    async def fetch_media_by_message_id(self, message_id: str) -> Result[PlayableRef]:
        return await self._cached(f"media:{message_id}", self._media, message_id, self._fetch_media)

    def forget(self, message_id: str) -> None:
        """Drop cached results for a message so the next fetch retries."""
        self._audio.pop(message_id, None)
        self._media.pop(message_id, None)
        self._failed.pop(f"audio:{message_id}", None)
        self._failed.pop(f"media:{message_id}", None)

    async def _fetch_audio(self, message_id: str) -> PlayableRef:
        return PlayableRef(await self._gateway.fetch_audio_url(message_id))

    async def _fetch_media(self, message_id: str) -> PlayableRef:
        return PlayableRef(await self._gateway.fetch_media_content(message_id))

    async def _cached(
        self,
        key: str,
        cache: dict[str, PlayableRef],
        message_id: str,
        fetch: Callable[[str], Awaitable[PlayableRef]],
    ) -> Result[PlayableRef]:
        if message_id in cache:
            return Result.success(cache[message_id])
        if key in self._failed:
            return Result.failure(self._failed[key])

        task = self._inflight.get(key)
        if task is None:
            task = asyncio.ensure_future(fetch(message_id))
            self._inflight[key] = task
            task.add_done_callback(lambda _: self._inflight.pop(key, None))
        try:
            ref = await asyncio.shield(task)
        except AppError as exc:
            logger.info("Fetch %s failed: %s", key, exc.detail)
            self._failed[key] = exc
            return Result.failure(exc)
        cache[message_id] = ref
        return Result.success(ref)


async def _abortable(coro: Awaitable[T], abort: asyncio.Event | None) -> T:
    """Await ``coro`` unless ``abort`` is set first, then cancel it."""
    if abort is None:
        return await coro
    if abort.is_set():
        if asyncio.iscoroutine(coro):
            coro.close()
        raise TransferError(TransferErrorKind.CANCELLED, "Aborted before start")

    request = asyncio.ensure_future(coro)
    aborted = asyncio.ensure_future(abort.wait())
    try:
        await asyncio.wait({request, aborted}, return_when=asyncio.FIRST_COMPLETED)
    except asyncio.CancelledError:
        request.cancel()
        raise
    finally:
        aborted.cancel()
    if request.done():
        return request.result()
    request.cancel()
    try:
        await request
    except asyncio.CancelledError:
        pass
    raise TransferError(TransferErrorKind.CANCELLED, "Upload aborted")
