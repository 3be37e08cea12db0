"""aiohttp-backed realtime connection."""
from __future__ import annotations

import json
import logging
from typing import Any, AsyncIterator

import aiohttp

from inbox_pipeline.application.ports.realtime import ConnectionLost
from inbox_pipeline.config import Settings, settings as default_settings

logger = logging.getLogger(__name__)


class AiohttpRealtimeConnection:
    """Implements ``application.ports.realtime.RealtimeConnection``."""

    def __init__(self, ws: aiohttp.ClientWebSocketResponse) -> None:
        self._ws = ws

    async def send(self, frame: dict[str, Any]) -> None:
        if self._ws.closed:
            raise ConnectionLost("socket is closed")
        try:
            await self._ws.send_json(frame)
        except (ConnectionResetError, aiohttp.ClientError) as exc:
            raise ConnectionLost(str(exc)) from exc

    async def frames(self) -> AsyncIterator[dict[str, Any]]:
        async for msg in self._ws:
            if msg.type == aiohttp.WSMsgType.TEXT:
                try:
                    frame = json.loads(msg.data)
                except ValueError:
                    logger.warning("Invalid JSON frame: %s", msg.data[:200])
                    continue
                if isinstance(frame, dict):
                    yield frame
            elif msg.type == aiohttp.WSMsgType.ERROR:
                raise ConnectionLost(str(self._ws.exception()))
        raise ConnectionLost(f"socket closed (code={self._ws.close_code})")

    async def close(self) -> None:
        await self._ws.close()


class AiohttpConnector:
    """Opens a fresh socket on every call; the transport owns reconnects."""

    def __init__(self, session: aiohttp.ClientSession, settings: Settings = default_settings) -> None:
        self._session = session
        self._settings = settings

    async def __call__(self) -> AiohttpRealtimeConnection:
        params = {"token": self._settings.API_TOKEN} if self._settings.API_TOKEN else None
        try:
            ws = await self._session.ws_connect(
                self._settings.WS_URL,
                params=params,
                heartbeat=self._settings.WS_HEARTBEAT_SECONDS,
            )
        except (aiohttp.ClientError, TimeoutError) as exc:
            raise ConnectionLost(f"connect failed: {exc}") from exc
        logger.info("Realtime socket connected to %s", self._settings.WS_URL)
        return AiohttpRealtimeConnection(ws)
