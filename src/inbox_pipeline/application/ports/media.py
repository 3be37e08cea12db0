"""Host-provided audio device ports (browser media APIs or a native stand-in)."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Protocol


@dataclass(frozen=True, slots=True)
class AudioConstraints:
    echo_cancellation: bool = True
    noise_suppression: bool = True
    auto_gain_control: bool = True


class MediaStream(Protocol):
    def stop(self) -> None:
        """Stop every track; releases the microphone."""
        ...


class MediaRecorder(Protocol):
    mime_type: str

    def start(self, on_chunk: Callable[[bytes], None]) -> None: ...

    async def stop(self) -> None:
        """Stop and wait until the final chunk was delivered."""
        ...

    def abort(self) -> None:
        """Stop immediately, dropping any unflushed data."""
        ...


class MediaDevices(Protocol):
    async def get_user_media(self, constraints: AudioConstraints) -> MediaStream:
        """Raise ``MediaPermissionError`` when access is denied or no device exists."""
        ...

    def is_type_supported(self, mime_type: str) -> bool: ...

    def create_recorder(self, stream: MediaStream, mime_type: str) -> MediaRecorder: ...


class PreviewHandle(Protocol):
    def play(self) -> None: ...

    def pause(self) -> None: ...

    def release(self) -> None:
        """Free the underlying object URL / buffer."""
        ...


class AudioPreviewPlayer(Protocol):
    def load(self, data: bytes, mime_type: str) -> PreviewHandle: ...
