from __future__ import annotations

import pytest

from inbox_pipeline.application.exceptions import TransferError, TransferErrorKind
from inbox_pipeline.domain.entities.quick_reply import QuickReply
from inbox_pipeline.domain.value_objects.enums import MessageType
from inbox_pipeline.services.quick_replies import QuickReplyPicker, filter_replies, find_trigger
from tests.conftest import FakeGateway

REPLIES = [
    QuickReply(id=1, title="Saudação", type=MessageType.TEXT, content="Olá! Como posso ajudar?", category="Atendimento"),
    QuickReply(id=2, title="Catálogo", type=MessageType.IMAGE, file_url="http://x/img.png", category="Vendas"),
    QuickReply(id=3, title="Horário", type=MessageType.TEXT, content="Atendemos das 8h às 18h", category="Atendimento"),
]


def test_find_trigger():
    assert find_trigger("/sau").query == "sau"
    assert find_trigger("oi /cat").start == 3
    assert find_trigger("/sau tudo bem") is None
    assert find_trigger("sem comando") is None


def test_filter_is_case_insensitive_over_title_content_category():
    assert [r.id for r in filter_replies(REPLIES, "CATÁ")] == [2]
    assert [r.id for r in filter_replies(REPLIES, "18h")] == [3]
    assert [r.id for r in filter_replies(REPLIES, "atendimento")] == [1, 3]
    assert len(filter_replies(REPLIES, "")) == 3


def test_navigation_wraps_around():
    picker = QuickReplyPicker(REPLIES)
    picker.update("/")

    picker.move_up()
    assert picker.selected.id == 3
    picker.move_down()
    assert picker.selected.id == 1


def test_apply_text_reply_replaces_command():
    picker = QuickReplyPicker(REPLIES)
    picker.update("Bom dia /sau")

    text = picker.apply("Bom dia /sau")

    assert text == "Bom dia Olá! Como posso ajudar?"
    assert not picker.is_open


def test_apply_media_reply_strips_command():
    picker = QuickReplyPicker(REPLIES)
    picker.update("/cat")

    assert picker.apply("/cat") == ""


def test_space_closes_picker():
    picker = QuickReplyPicker(REPLIES)
    picker.update("/sau")
    assert picker.is_open

    picker.update("/sau ")
    assert not picker.is_open
    assert picker.selected is None


def test_custom_trigger():
    picker = QuickReplyPicker(REPLIES, trigger="#")
    picker.update("#hor")

    assert [r.id for r in picker.visible] == [3]


@pytest.mark.asyncio
async def test_refresh_loads_from_gateway():
    picker = QuickReplyPicker()

    result = await picker.refresh(FakeGateway(quick_replies=REPLIES))

    assert result.unwrap() == 3


@pytest.mark.asyncio
async def test_refresh_failure_keeps_previous_list():
    gateway = FakeGateway(fail={"list_quick_replies": [TransferError(TransferErrorKind.NETWORK_FAILURE)]})
    picker = QuickReplyPicker(REPLIES)

    result = await picker.refresh(gateway)
    picker.update("/")

    assert not result.ok
    assert len(picker.visible) == 3
