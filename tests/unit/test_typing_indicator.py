from __future__ import annotations

import asyncio

import pytest

from inbox_pipeline.services.typing_indicator import TypingIndicator


class Recorder:
    def __init__(self) -> None:
        self.events: list[tuple[int, bool]] = []

    async def __call__(self, conversation_id: int, is_typing: bool) -> None:
        self.events.append((conversation_id, is_typing))


@pytest.fixture
def emitted() -> Recorder:
    return Recorder()


@pytest.mark.asyncio
async def test_one_start_per_burst(emitted):
    typing = TypingIndicator(emitted, idle_seconds=60)

    for text in ("O", "Ol", "Olá"):
        await typing.keystroke(42, text)

    assert emitted.events == [(42, True)]
    await typing.aclose()


@pytest.mark.asyncio
async def test_stop_on_idle(emitted):
    typing = TypingIndicator(emitted, idle_seconds=0.01)

    await typing.keystroke(42, "Olá")
    await asyncio.sleep(0.05)

    assert emitted.events == [(42, True), (42, False)]
    assert not typing.is_typing


@pytest.mark.asyncio
async def test_stop_on_send_then_new_burst(emitted):
    typing = TypingIndicator(emitted, idle_seconds=60)

    await typing.keystroke(42, "Olá")
    await typing.sent(42)
    await typing.keystroke(42, "de novo")

    assert emitted.events == [(42, True), (42, False), (42, True)]
    await typing.aclose()


@pytest.mark.asyncio
async def test_switch_conversation_stops_the_old_one(emitted):
    typing = TypingIndicator(emitted, idle_seconds=60)

    await typing.keystroke(42, "Olá")
    await typing.keystroke(43, "Oi")

    assert emitted.events == [(42, True), (42, False), (43, True)]
    await typing.aclose()
    assert emitted.events[-1] == (43, False)


@pytest.mark.asyncio
async def test_blank_text_never_starts(emitted):
    typing = TypingIndicator(emitted, idle_seconds=60)

    await typing.keystroke(42, "   ")
    await typing.sent(42)

    assert emitted.events == []


@pytest.mark.asyncio
async def test_emit_failure_is_logged_not_raised(caplog):
    async def broken(conversation_id, is_typing):
        raise RuntimeError("socket gone")

    typing = TypingIndicator(broken, idle_seconds=60)

    await typing.keystroke(42, "Olá")
    await typing.aclose()

    assert "Typing start for conversation 42 failed" in caplog.text
