from __future__ import annotations

import asyncio

import pytest

from inbox_pipeline.application.exceptions import MediaPermissionError, PermissionReason, RecordingStateError
from inbox_pipeline.domain.value_objects.enums import RecordingState
from inbox_pipeline.services.audio_capture import AudioCaptureEngine
from tests.conftest import FakeMediaDevices, FakePreviewPlayer


@pytest.fixture
def devices() -> FakeMediaDevices:
    return FakeMediaDevices()


@pytest.fixture
def player() -> FakePreviewPlayer:
    return FakePreviewPlayer()


@pytest.fixture
async def engine(devices, player, test_settings):
    engine = AudioCaptureEngine(devices, test_settings, player)
    yield engine
    await engine.aclose()


@pytest.mark.asyncio
async def test_start_requests_processed_microphone(engine, devices):
    result = await engine.start_recording()

    assert result.ok
    assert engine.state is RecordingState.RECORDING
    (constraints,) = devices.constraints
    assert constraints.echo_cancellation and constraints.noise_suppression and constraints.auto_gain_control


@pytest.mark.asyncio
async def test_picks_first_supported_opus_container(engine, devices):
    session = (await engine.start_recording()).unwrap()

    assert session.mime_type == "audio/ogg;codecs=opus"
    assert devices.recorders[0].mime_type == "audio/ogg;codecs=opus"


@pytest.mark.asyncio
async def test_stop_encodes_whole_seconds(engine, player):
    await engine.start_recording()
    for _ in range(4):
        await engine.tick()

    audio = await engine.stop_recording()

    assert audio.duration == 4
    assert audio.data == b"chunk-1chunk-2"
    assert engine.state is RecordingState.PREVIEW
    assert player.handles[0].data == audio.data


@pytest.mark.asyncio
async def test_recording_cap_auto_stops(engine, devices, test_settings):
    await engine.start_recording()

    for _ in range(test_settings.RECORDING_MAX_SECONDS + 20):
        await engine.tick()

    assert engine.state is RecordingState.PREVIEW
    audio = await engine.stop_recording()
    assert audio.duration == 300
    assert devices.recorders[0].stopped


@pytest.mark.asyncio
async def test_cancel_releases_microphone(engine, devices):
    await engine.start_recording()
    await engine.tick()

    engine.cancel_recording()

    assert engine.state is RecordingState.INACTIVE
    assert devices.recorders[0].aborted
    assert devices.stream_stops == len(devices.streams) == 1


@pytest.mark.asyncio
async def test_cancel_from_preview_releases_preview_once(engine, devices, player):
    await engine.start_recording()
    await engine.stop_recording()

    engine.cancel_recording()

    assert player.handles[0].released
    assert devices.stream_stops == 1


@pytest.mark.asyncio
async def test_restart_cancels_previous_session(engine, devices):
    await engine.start_recording()
    await engine.start_recording()

    assert len(devices.streams) == 2
    assert devices.streams[0].stops == 1
    assert devices.streams[1].stops == 0


@pytest.mark.asyncio
async def test_stop_while_inactive_raises(engine):
    with pytest.raises(RecordingStateError):
        await engine.stop_recording()


def test_cancel_while_inactive_raises(devices):
    with pytest.raises(RecordingStateError):
        AudioCaptureEngine(devices).cancel_recording()


@pytest.mark.asyncio
async def test_take_for_send_resets(engine, devices, player):
    await engine.start_recording()
    await engine.tick()
    await engine.stop_recording()

    audio = engine.take_for_send()

    assert audio.duration == 1
    assert engine.state is RecordingState.INACTIVE
    assert player.handles[0].released
    assert devices.stream_stops == 1


@pytest.mark.asyncio
async def test_take_for_send_requires_preview(engine):
    await engine.start_recording()

    with pytest.raises(RecordingStateError):
        engine.take_for_send()


@pytest.mark.asyncio
async def test_preview_playback_is_local(engine, player):
    await engine.start_recording()
    await engine.stop_recording()

    engine.play_preview()
    assert player.handles[0].playing
    engine.pause_preview()
    assert not player.handles[0].playing


@pytest.mark.asyncio
@pytest.mark.parametrize("reason", list(PermissionReason))
async def test_permission_errors_are_reported(devices, reason):
    devices.error = MediaPermissionError(reason)
    engine = AudioCaptureEngine(devices)

    result = await engine.start_recording()

    assert result.error.reason is reason
    assert engine.state is RecordingState.INACTIVE


@pytest.mark.asyncio
async def test_no_supported_format_releases_stream(devices):
    devices.supported = ()
    engine = AudioCaptureEngine(devices)

    result = await engine.start_recording()

    assert isinstance(result.error, MediaPermissionError)
    assert devices.stream_stops == 1


@pytest.mark.asyncio
async def test_aclose_releases_everything(devices, player, test_settings):
    engine = AudioCaptureEngine(devices, test_settings, player)
    await engine.start_recording()

    await engine.aclose()
    await engine.aclose()

    assert engine.state is RecordingState.INACTIVE
    assert devices.stream_stops == 1


@pytest.mark.asyncio
async def test_overlapping_starts_keep_one_session(engine, devices):
    devices.suspend = True

    first, second = await asyncio.gather(engine.start_recording(), engine.start_recording())
    assert first.ok and second.ok
    assert engine.session is second.value
    assert devices.recorders[0].aborted
    assert devices.streams[0].stops == 1

    await engine.aclose()

    assert len(devices.streams) == 2
    assert devices.stream_stops == 2


@pytest.mark.asyncio
async def test_cancel_during_stop_loads_no_preview(engine, devices, player):
    await engine.start_recording()
    recorder = devices.recorders[0]
    recorder.release = asyncio.Event()

    stopping = asyncio.create_task(engine.stop_recording())
    await asyncio.sleep(0)
    engine.cancel_recording()
    recorder.release.set()

    with pytest.raises(RecordingStateError):
        await stopping
    assert player.handles == []
    assert engine.state is RecordingState.INACTIVE
    assert devices.stream_stops == 1
