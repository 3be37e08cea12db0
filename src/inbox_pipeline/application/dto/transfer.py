from __future__ import annotations

from dataclasses import dataclass

from inbox_pipeline.domain.value_objects.enums import TransferKind


@dataclass(frozen=True, slots=True)
class MediaFile:
    file_name: str
    data: bytes
    mime_type: str

    @property
    def size(self) -> int:
        return len(self.data)


@dataclass(frozen=True, slots=True)
class RemoteRef:
    """Where the gateway stored an uploaded attachment."""

    kind: TransferKind | str
    url: str | None
    gateway_message_id: str | None = None


@dataclass(frozen=True, slots=True)
class PlayableRef:
    url: str


@dataclass(frozen=True, slots=True)
class Ack:
    gateway_message_id: str | None = None
