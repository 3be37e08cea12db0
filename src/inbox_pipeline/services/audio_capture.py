"""Audio Capture Engine: microphone recording with a local preview.

State machine: ``inactive -> recording -> preview -> inactive``. One session
exists per engine. Every path back to ``inactive`` (cancel, send, teardown)
stops the microphone stream and releases the preview handle exactly once.
"""
from __future__ import annotations

import asyncio
import logging

from inbox_pipeline.application.dto.result import Result
from inbox_pipeline.application.exceptions import MediaPermissionError, PermissionReason, RecordingStateError
from inbox_pipeline.application.ports.media import (
    AudioConstraints,
    AudioPreviewPlayer,
    MediaDevices,
    MediaRecorder,
    MediaStream,
    PreviewHandle,
)
from inbox_pipeline.config import Settings, settings as default_settings
from inbox_pipeline.domain.entities.audio import EncodedAudio
from inbox_pipeline.domain.value_objects.enums import RecordingState

logger = logging.getLogger(__name__)

MIME_PREFERENCE = ("audio/webm;codecs=opus", "audio/ogg;codecs=opus", "audio/mp4")


class RecordingSession:
    __slots__ = ("state", "elapsed", "mime_type", "stream", "recorder", "chunks", "audio", "preview", "_stream_live")

    def __init__(self, stream: MediaStream, recorder: MediaRecorder, mime_type: str) -> None:
        self.state = RecordingState.RECORDING
        self.elapsed = 0
        self.mime_type = mime_type
        self.stream = stream
        self.recorder = recorder
        self.chunks: list[bytes] = []
        self.audio: EncodedAudio | None = None
        self.preview: PreviewHandle | None = None
        self._stream_live = True

    def release_stream(self) -> None:
        if self._stream_live:
            self._stream_live = False
            self.stream.stop()

    def release_preview(self) -> None:
        if self.preview is not None:
            self.preview.release()
            self.preview = None


class AudioCaptureEngine:
    def __init__(
        self,
        devices: MediaDevices,
        settings: Settings = default_settings,
        player: AudioPreviewPlayer | None = None,
    ) -> None:
        self._devices = devices
        self._settings = settings
        self._player = player
        self._session: RecordingSession | None = None
        self._ticker: asyncio.Task[None] | None = None
        self._starting = asyncio.Lock()

    @property
    def state(self) -> RecordingState:
        return self._session.state if self._session else RecordingState.INACTIVE

    @property
    def elapsed(self) -> int:
        return self._session.elapsed if self._session else 0

    @property
    def session(self) -> RecordingSession | None:
        return self._session

    # ---- recording ----

    async def start_recording(self) -> Result[RecordingSession]:
        async with self._starting:
            return await self._start()

    async def _start(self) -> Result[RecordingSession]:
        if self._session is not None:
            logger.info("Discarding active %s session before a new recording", self._session.state)
            self.cancel_recording()

        try:
            stream = await self._devices.get_user_media(
                AudioConstraints(echo_cancellation=True, noise_suppression=True, auto_gain_control=True)
            )
        except MediaPermissionError as exc:
            logger.info("Microphone unavailable: %s", exc.reason)
            return Result.failure(exc)

        mime_type = next((m for m in MIME_PREFERENCE if self._devices.is_type_supported(m)), None)
        if mime_type is None:
            stream.stop()
            return Result.failure(MediaPermissionError(PermissionReason.OTHER, "No supported audio format"))

        recorder = self._devices.create_recorder(stream, mime_type)
        session = RecordingSession(stream, recorder, mime_type)
        recorder.start(session.chunks.append)
        self._session = session
        self._ticker = asyncio.create_task(self._run_ticker(), name="recording-ticker")
        logger.debug("Recording started (%s)", mime_type)
        return Result.success(session)

    async def tick(self) -> None:
        """Advance the elapsed counter by one second; stops itself at the cap."""
        session = self._session
        if session is None or session.state is not RecordingState.RECORDING:
            return
        session.elapsed += 1
        if session.elapsed >= self._settings.RECORDING_MAX_SECONDS:
            logger.info("Recording reached %ss limit; stopping", self._settings.RECORDING_MAX_SECONDS)
            await self._finish(session)

    async def stop_recording(self) -> EncodedAudio:
        session = self._session
        if session is None:
            raise RecordingStateError("No recording in progress")
        if session.state is RecordingState.RECORDING:
            await self._finish(session)
        assert session.audio is not None
        return session.audio

    def cancel_recording(self) -> None:
        """Discard the session and release the microphone and preview right away."""
        session = self._session
        if session is None:
            raise RecordingStateError("No recording to cancel")
        self._stop_ticker()
        if session.state is RecordingState.RECORDING:
            session.recorder.abort()
        session.chunks.clear()
        session.release_stream()
        session.release_preview()
        self._session = None
        logger.debug("Recording cancelled")

    def take_for_send(self) -> EncodedAudio:
        """Hand the previewed recording to the composer and reset to inactive."""
        session = self._session
        if session is None or session.state is not RecordingState.PREVIEW or session.audio is None:
            raise RecordingStateError("Nothing recorded to send")
        session.release_stream()
        session.release_preview()
        self._session = None
        return session.audio

    # ---- preview ----

    def play_preview(self) -> None:
        self._preview_handle().play()

    def pause_preview(self) -> None:
        self._preview_handle().pause()

    def _preview_handle(self) -> PreviewHandle:
        session = self._session
        if session is None or session.state is not RecordingState.PREVIEW:
            raise RecordingStateError("No recording to preview")
        if session.preview is None:
            raise RecordingStateError("Preview playback is not available")
        return session.preview

    # ---- teardown ----

    async def aclose(self) -> None:
        if self._session is not None:
            self.cancel_recording()
        if self._ticker is not None:
            await asyncio.gather(self._ticker, return_exceptions=True)
            self._ticker = None

    # ---- internals ----

    async def _run_ticker(self) -> None:
        interval = self._settings.RECORDING_TICK_SECONDS
        while self.state is RecordingState.RECORDING:
            await asyncio.sleep(interval)
            await self.tick()

    def _stop_ticker(self) -> None:
        ticker = self._ticker
        if ticker is not None and ticker is not asyncio.current_task():
            ticker.cancel()

    async def _finish(self, session: RecordingSession) -> None:
        self._stop_ticker()
        await session.recorder.stop()
        if self._session is not session:
            raise RecordingStateError("Recording was cancelled while stopping")
        session.release_stream()
        data = b"".join(session.chunks)
        duration = min(session.elapsed, self._settings.RECORDING_MAX_SECONDS)
        session.audio = EncodedAudio(data=data, mime_type=session.mime_type, duration=duration)
        if self._player is not None:
            session.preview = self._player.load(data, session.mime_type)
        session.state = RecordingState.PREVIEW
        logger.debug("Recording stopped: %ss, %d bytes", duration, len(data))
