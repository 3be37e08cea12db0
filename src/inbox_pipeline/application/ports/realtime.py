from __future__ import annotations

from typing import Any, AsyncIterator, Protocol


class ConnectionLost(Exception):
    """The realtime socket dropped; the transport reconnects."""


class RealtimeConnection(Protocol):
    async def send(self, frame: dict[str, Any]) -> None: ...

    def frames(self) -> AsyncIterator[dict[str, Any]]:
        """Yield decoded inbound frames; raise ``ConnectionLost`` on drop."""
        ...

    async def close(self) -> None: ...


class RealtimeConnector(Protocol):
    async def __call__(self) -> RealtimeConnection: ...
