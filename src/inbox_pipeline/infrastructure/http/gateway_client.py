"""aiohttp client for the REST backend and its messaging-gateway routes."""
from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Any, Iterator

import aiohttp

from inbox_pipeline.application.dto.draft import MessageDraft
from inbox_pipeline.application.dto.transfer import MediaFile, RemoteRef
from inbox_pipeline.application.exceptions import NotFoundError, TransferError, TransferErrorKind
from inbox_pipeline.config import Settings, settings as default_settings
from inbox_pipeline.domain.entities.audio import EncodedAudio
from inbox_pipeline.domain.entities.conversation import Conversation
from inbox_pipeline.domain.entities.message import Message
from inbox_pipeline.domain.entities.quick_reply import QuickReply
from inbox_pipeline.domain.value_objects.enums import TransferKind
from inbox_pipeline.infrastructure.http.correlation import HEADER, current_correlation_id
from inbox_pipeline.infrastructure.http.mappers import (
    conversation_from_payload,
    message_from_json,
    payload_to_entity,
    quick_reply_from_payload,
)
from inbox_pipeline.infrastructure.http.schemas import (
    ConversationPayload,
    CreateMessageRequest,
    GatewayAck,
    QuickReplyPayload,
)

logger = logging.getLogger(__name__)


class AiohttpGateway:
    """Implements ``application.ports.gateway.GatewayApi``.

    Every failure is raised as an ``AppError``: timeouts, connection problems
    and 4xx/5xx answers map to distinct ``TransferError`` kinds, 404 maps to
    ``NotFoundError``. A 2xx body that is not valid JSON, does not fit its
    schema, or is a gateway ack with ``success: false`` is a
    ``SERVER_REJECTED`` transfer error.
    """

    def __init__(self, session: aiohttp.ClientSession, settings: Settings = default_settings) -> None:
        self._session = session
        self._settings = settings
        self._base = settings.API_BASE_URL.rstrip("/")

    # ---- history ----

    async def list_messages(self, conversation_id: int, *, limit: int, offset: int = 0) -> list[Message]:
        data = await self._request(
            "GET",
            f"/conversations/{conversation_id}/messages",
            params={"limit": limit, "offset": offset},
        )
        with _decoding("GET", "messages"):
            return [message_from_json(item) for item in _array(data)]

    async def get_conversation(self, conversation_id: int) -> Conversation:
        data = await self._request("GET", f"/conversations/{conversation_id}")
        with _decoding("GET", "conversation"):
            return conversation_from_payload(ConversationPayload.model_validate(data))

    async def mark_read(self, conversation_id: int) -> None:
        await self._request("POST", f"/conversations/{conversation_id}/messages/mark-read")

    async def list_quick_replies(self) -> list[QuickReply]:
        data = await self._request("GET", "/quick-replies")
        with _decoding("GET", "quick-replies"):
            return [quick_reply_from_payload(QuickReplyPayload.model_validate(item)) for item in _array(data)]

    # ---- sends ----

    async def create_message(self, conversation_id: int, draft: MessageDraft) -> Message:
        body = CreateMessageRequest(
            content=draft.content,
            message_type=draft.message_type.value,
            is_internal_note=draft.is_internal_note or None,
            author_name=draft.author_name,
            author_id=draft.author_id,
            client_message_id=draft.client_message_id,
            metadata=draft.metadata or None,
        ).to_body()
        data = await self._request("POST", f"/conversations/{conversation_id}/messages", json=body)
        with _decoding("POST", "messages"):
            return message_from_json(data)

    async def send_media(
        self,
        kind: TransferKind,
        conversation_id: int,
        contact_phone: str,
        file: MediaFile,
        *,
        caption: str | None = None,
    ) -> RemoteRef:
        form = aiohttp.FormData()
        form.add_field("phone", contact_phone)
        form.add_field("conversationId", str(conversation_id))
        if caption:
            form.add_field("caption", caption)
        form.add_field(kind.value, file.data, filename=file.file_name, content_type=file.mime_type)

        timeout = self._settings.HTTP_TIMEOUT_SECONDS
        if kind is TransferKind.VIDEO:
            timeout = self._settings.VIDEO_UPLOAD_TIMEOUT_SECONDS

        data = await self._request("POST", f"/gateway/send-{kind.value}", data=form, timeout=timeout)
        ack = _gateway_ack(data, f"send-{kind.value}")
        return RemoteRef(kind=kind, url=ack.file_url or ack.url, gateway_message_id=ack.gateway_id)

    async def send_audio(
        self,
        conversation_id: int,
        contact_phone: str,
        audio: EncodedAudio,
        *,
        client_message_id: str | None = None,
    ) -> Message | None:
        form = aiohttp.FormData()
        form.add_field("phone", contact_phone)
        form.add_field("conversationId", str(conversation_id))
        form.add_field("duration", str(audio.duration))
        if client_message_id:
            form.add_field("clientMessageId", client_message_id)
        extension = audio.mime_type.split("/")[1].split(";")[0]
        form.add_field("audio", audio.data, filename=f"audio.{extension}", content_type=audio.mime_type)
        data = await self._request("POST", "/gateway/send-audio", data=form)
        return _ack_message(data, "send-audio")

    async def send_link(
        self,
        conversation_id: int,
        contact_phone: str,
        url: str,
        text: str,
        *,
        client_message_id: str | None = None,
    ) -> Message | None:
        body = {
            "phone": contact_phone,
            "conversationId": conversation_id,
            "url": url,
            "text": text,
            "clientMessageId": client_message_id,
        }
        data = await self._request("POST", "/gateway/send-link", json=body)
        return _ack_message(data, "send-link")

    async def send_reaction(self, contact_phone: str, target_message_id: str, emoji: str) -> dict[str, Any]:
        body = {"phone": contact_phone, "messageId": target_message_id, "reaction": emoji}
        return _object(await self._request("POST", "/gateway/send-reaction", json=body))

    async def remove_reaction(self, contact_phone: str, target_message_id: str) -> dict[str, Any]:
        body = {"phone": contact_phone, "messageId": target_message_id}
        return _object(await self._request("POST", "/gateway/remove-reaction", json=body))

    # ---- deletes ----

    async def delete_received(self, message_id: str) -> None:
        await self._request("PATCH", f"/messages/{message_id}/delete-received")

    async def delete_sent(
        self,
        message_id: str,
        *,
        gateway_message_id: str,
        contact_phone: str | None,
    ) -> bool:
        """Hard delete; returns whether the gateway copy was removed too."""
        body = {"zapiMessageId": gateway_message_id, "phone": contact_phone}
        data = _object(await self._request("PATCH", f"/messages/{message_id}/delete-sent", json=body))
        return bool(data.get("zapiDeleted") or data.get("deletedForEveryone"))

    async def delete_gateway_message(self, gateway_message_id: str, contact_phone: str | None) -> None:
        params = {"phone": contact_phone} if contact_phone else None
        await self._request("DELETE", f"/gateway/messages/{gateway_message_id}", params=params)

    # ---- on-demand media ----

    async def fetch_audio_url(self, message_id: str) -> str:
        data = _object(await self._request("GET", f"/messages/{message_id}/audio"))
        url = data.get("audioUrl")
        if not url:
            raise NotFoundError(f"No audio for message {message_id}")
        return url

    async def fetch_media_content(self, message_id: str) -> str:
        data = _object(await self._request("GET", f"/messages/{message_id}/media"))
        content = data.get("content")
        if not isinstance(content, str) or not content:
            raise NotFoundError(f"No media content for message {message_id}")
        return content

    # ---- plumbing ----

    def _headers(self) -> dict[str, str]:
        headers = {HEADER: current_correlation_id()}
        if self._settings.API_TOKEN:
            headers["Authorization"] = f"Bearer {self._settings.API_TOKEN}"
        return headers

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json: Any = None,
        data: Any = None,
        params: dict[str, Any] | None = None,
        timeout: float | None = None,
    ) -> Any:
        url = f"{self._base}{path}"
        client_timeout = aiohttp.ClientTimeout(total=timeout or self._settings.HTTP_TIMEOUT_SECONDS)
        try:
            async with self._session.request(
                method,
                url,
                json=json,
                data=data,
                params=params,
                headers=self._headers(),
                timeout=client_timeout,
            ) as resp:
                try:
                    body = await _read_body(resp)
                except ValueError as exc:
                    logger.warning("%s %s answered %s with malformed JSON", method, path, resp.status)
                    raise TransferError(
                        TransferErrorKind.SERVER_REJECTED,
                        f"{method} {path} returned malformed JSON",
                        status=resp.status,
                    ) from exc
                if resp.status == 404:
                    raise NotFoundError(_error_detail(body, resp.status))
                if resp.status >= 400:
                    raise TransferError(
                        TransferErrorKind.SERVER_REJECTED,
                        _error_detail(body, resp.status),
                        status=resp.status,
                    )
                return body
        except TimeoutError as exc:
            logger.warning("%s %s timed out after %ss", method, path, client_timeout.total)
            raise TransferError(TransferErrorKind.TIMEOUT, f"{method} {path} timed out") from exc
        except aiohttp.ClientError as exc:
            logger.warning("%s %s failed: %s", method, path, exc)
            raise TransferError(TransferErrorKind.NETWORK_FAILURE, str(exc)) from exc


async def _read_body(resp: aiohttp.ClientResponse) -> Any:
    if resp.content_type == "application/json":
        return await resp.json()
    text = await resp.text()
    return {"raw": text} if text else None


def _error_detail(body: Any, status: int) -> str:
    if isinstance(body, dict):
        detail = body.get("error") or body.get("detail") or body.get("raw")
        if detail:
            return f"HTTP {status}: {detail}"
    return f"HTTP {status}"


@contextmanager
def _decoding(method: str, what: str) -> Iterator[None]:
    """Turn a body that does not fit its wire model into a transfer error."""
    try:
        yield
    except ValueError as exc:
        logger.warning("Unexpected %s %s response: %s", method, what, exc)
        raise TransferError(TransferErrorKind.SERVER_REJECTED, f"Unexpected {what} response") from exc


def _array(body: Any) -> list[Any]:
    if body is None:
        return []
    if not isinstance(body, list):
        raise ValueError(f"expected a JSON array, got {type(body).__name__}")
    return body


def _object(body: Any) -> dict[str, Any]:
    if body is None:
        return {}
    if not isinstance(body, dict):
        raise TransferError(
            TransferErrorKind.SERVER_REJECTED,
            f"Expected a JSON object, got {type(body).__name__}",
        )
    return body


def _gateway_ack(body: Any, route: str) -> GatewayAck:
    with _decoding("POST", route):
        ack = GatewayAck.model_validate(_object(body))
    if not ack.success:
        logger.warning("Gateway rejected %s: %s", route, ack.error or "no reason given")
        raise TransferError(TransferErrorKind.SERVER_REJECTED, ack.error or f"Gateway rejected {route}")
    return ack


def _ack_message(body: Any, route: str) -> Message | None:
    ack = _gateway_ack(body, route)
    if ack.message is None:
        return None
    with _decoding("POST", route):
        return payload_to_entity(ack.message)
